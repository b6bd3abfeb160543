from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol

from core.types import BuiltTransaction, Quote, SettlementRequest, SettlementResult, TokenInfo


class QuoteService(Protocol):
    """Fetches an aggregator price route for a sell-side swap."""

    async def get_quote(
        self,
        *,
        chain_id: int,
        src: TokenInfo,
        dest: TokenInfo,
        amount: int,
        relaxed: bool = False,
    ) -> Quote:
        """Return a validated quote or raise QuoteUnavailableError."""


class TransactionBuilder(Protocol):
    """Turns a quote into calldata for the signer.

    Exactly one of `slippage_bps` and `dest_amount` may be given.
    """

    async def build(
        self,
        *,
        chain_id: int,
        src: TokenInfo,
        dest: TokenInfo,
        amount: int,
        quote: Quote,
        user_address: str,
        slippage_bps: Optional[int] = None,
        dest_amount: Optional[int] = None,
        relaxed: bool = False,
    ) -> BuiltTransaction:
        """Return an unsigned transaction or raise BuildFailedError."""


class ChainClient(Protocol):
    """Signer-bound access to one or more EVM chains.

    Implementations apply their own RPC timeouts; every method may raise on
    transport failure and callers decide whether that fails open or closed.
    """

    def signer_address(self) -> Optional[str]:
        """Checksum address derived from the signing key, or None."""

    async def get_native_balance(self, chain_id: int, address: str) -> int:
        ...

    async def get_token_balance(self, chain_id: int, token: str, owner: str) -> int:
        ...

    async def get_allowance(self, chain_id: int, token: str, owner: str, spender: str) -> int:
        ...

    async def approve(self, chain_id: int, token: str, spender: str, amount: int) -> str:
        """Send an approval, return its tx hash."""

    async def wait_for_receipt(self, chain_id: int, tx_hash: str, timeout: float) -> bool:
        """True when the transaction was mined with status 1."""

    async def send_transaction(self, chain_id: int, tx: BuiltTransaction, gas_multiplier: Decimal) -> str:
        """Sign and broadcast, return the tx hash."""

    async def get_gas_price(self, chain_id: int) -> int:
        ...


class PriceProvider(Protocol):
    """USD spot price for a token symbol on a chain."""

    async def get_usd_price(self, chain_id: int, symbol: str) -> Decimal:
        ...


class Settler(Protocol):
    """The settlement boundary as seen by the executor."""

    async def settle(self, request: SettlementRequest) -> SettlementResult:
        """Never raises; failures come back as `ok=False` results."""
