"""Shared test fixtures for pytest.

Provides fake collaborators (chain client, quote service, transaction
builder, settler) so the pipeline can be exercised without network access.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Optional

import pytest

from core.config import SettlementConfig
from core.settlement.cooldown import InMemoryCooldownStore
from core.settlement.engine import SettlementEngine
from core.settlement.errors import BuildFailedError, QuoteUnavailableError
from core.settlement.retry import RetryPolicy
from core.storage.ledger import InMemorySettlementLedger
from core.tokens.registry import TokenRegistry
from core.types import BuiltTransaction, Quote, SettlementRequest, SettlementResult, TokenInfo

TEST_PRIVATE_KEY = "0x" + "11" * 32
SIGNER = "0x19E7E376E7C213B7E7e7e46cc70A5dD086DAff2A"
RPC_URL = "http://rpc.test"
PROXY = "0x216B4B4Ba9F3e719726886d34a177484278Bfcae"

WEI = 10**18


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChainClient:
    """In-memory chain: balances, allowances and an ordered call log."""

    def __init__(self, signer: Optional[str] = SIGNER) -> None:
        self._signer = signer
        self.native_balance = 0
        self.token_balances: dict[str, int] = {}
        self.allowances: dict[str, int] = {}
        self.receipt_ok = True
        self.gas_price = 3 * 10**9
        self.fail_balance_reads = False
        self.fail_send = False
        self.send_delay = 0.0
        self.send_windows: list[tuple[int, float, float]] = []
        self.calls: list[str] = []
        self.sent: list[BuiltTransaction] = []
        self.approvals: list[tuple[str, str, int]] = []

    def signer_address(self) -> Optional[str]:
        return self._signer

    async def get_native_balance(self, chain_id: int, address: str) -> int:
        self.calls.append("native_balance")
        if self.fail_balance_reads:
            raise ConnectionError("rpc down")
        return self.native_balance

    async def get_token_balance(self, chain_id: int, token: str, owner: str) -> int:
        self.calls.append("token_balance")
        if self.fail_balance_reads:
            raise ConnectionError("rpc down")
        return self.token_balances.get(token.lower(), 0)

    async def get_allowance(self, chain_id: int, token: str, owner: str, spender: str) -> int:
        self.calls.append("allowance")
        return self.allowances.get(token.lower(), 0)

    async def approve(self, chain_id: int, token: str, spender: str, amount: int) -> str:
        self.calls.append("approve")
        self.approvals.append((token, spender, amount))
        return "0xapprove"

    async def wait_for_receipt(self, chain_id: int, tx_hash: str, timeout: float) -> bool:
        self.calls.append("receipt")
        if self.receipt_ok:
            token = self.approvals[-1][0] if self.approvals else ""
            self.allowances[token.lower()] = self.approvals[-1][2] if self.approvals else 0
        return self.receipt_ok

    async def send_transaction(self, chain_id: int, tx: BuiltTransaction, gas_multiplier: Decimal) -> str:
        self.calls.append("send")
        if self.fail_send:
            raise RuntimeError("nonce too low")
        loop = asyncio.get_running_loop()
        start = loop.time()
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        self.send_windows.append((chain_id, start, loop.time()))
        self.sent.append(tx)
        return f"0xswap{len(self.sent)}"

    async def get_gas_price(self, chain_id: int) -> int:
        return self.gas_price


def make_quote(
    amount: int = WEI,
    *,
    src_usd: Decimal = Decimal("100"),
    dest_usd: Decimal = Decimal("100"),
    gas_estimate: int = 150_000,
    gas_cost_usd: Decimal = Decimal("0"),
    proxy: Optional[str] = PROXY,
) -> Quote:
    return Quote(
        price_route={"srcAmount": str(amount), "destAmount": str(amount), "tokenTransferProxy": proxy},
        src_amount=amount,
        dest_amount=amount,
        src_usd=src_usd,
        dest_usd=dest_usd,
        gas_estimate=gas_estimate,
        gas_cost_usd=gas_cost_usd,
        token_transfer_proxy=proxy,
    )


class FakeQuoteService:
    """Returns a quote priced by `usd_per_unit` per whole source token."""

    def __init__(self, chain: Optional[FakeChainClient] = None) -> None:
        self.chain = chain
        self.usd_per_unit: dict[str, Decimal] = {}
        self.edge_pct: dict[str, Decimal] = {}
        self.gas_cost_usd = Decimal("0.05")
        self.failures_remaining = 0
        self.fail_symbols: set[str] = set()
        self.delay = 0.0
        self.calls: list[dict[str, Any]] = []

    async def get_quote(self, *, chain_id: int, src: TokenInfo, dest: TokenInfo, amount: int, relaxed: bool = False) -> Quote:
        self.calls.append({"src": src.symbol, "dest": dest.symbol, "amount": amount, "relaxed": relaxed})
        if self.chain is not None:
            self.chain.calls.append("quote")
        if self.delay:
            await asyncio.sleep(self.delay)
        if src.symbol in self.fail_symbols:
            raise QuoteUnavailableError(f"no route for {src.symbol}", is_transient=False)
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise QuoteUnavailableError("upstream 503", is_transient=True, status_code=503)

        price = self.usd_per_unit.get(src.symbol, Decimal("1"))
        src_usd = Decimal(amount) / (Decimal(10) ** src.decimals) * price
        edge = self.edge_pct.get(src.symbol, Decimal("0"))
        dest_usd = src_usd * (Decimal(1) + edge / Decimal(100))
        return make_quote(amount, src_usd=src_usd, dest_usd=dest_usd, gas_cost_usd=self.gas_cost_usd)


class FakeBuilder:
    def __init__(self, chain: Optional[FakeChainClient] = None) -> None:
        self.chain = chain
        self.failures_remaining = 0
        self.calls: list[dict[str, Any]] = []

    async def build(self, **kwargs: Any) -> BuiltTransaction:
        self.calls.append(kwargs)
        if self.chain is not None:
            self.chain.calls.append("build")
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise BuildFailedError("price impact too high", is_transient=False, status_code=400)
        return BuiltTransaction(to=PROXY, data="0xdeadbeef", value=0, gas=200_000)


class RecordingSettler:
    """Settler that records execution windows to check for overlap."""

    def __init__(self, delay: float = 0.01, results: Optional[list[SettlementResult]] = None) -> None:
        self.delay = delay
        self.results = list(results or [])
        self.requests: list[SettlementRequest] = []
        self.windows: list[tuple[int, float, float]] = []
        self.active: dict[int, int] = {}
        self.max_active: dict[int, int] = {}

    async def settle(self, request: SettlementRequest) -> SettlementResult:
        loop = asyncio.get_running_loop()
        chain = request.chain_id
        self.active[chain] = self.active.get(chain, 0) + 1
        self.max_active[chain] = max(self.max_active.get(chain, 0), self.active[chain])
        start = loop.time()
        try:
            self.requests.append(request)
            await asyncio.sleep(self.delay)
        finally:
            self.active[chain] -= 1
        self.windows.append((chain, start, loop.time()))
        if self.results:
            return self.results.pop(0)
        return SettlementResult(ok=True, tx_hash=f"0x{len(self.requests):064x}")


@pytest.fixture
def registry() -> TokenRegistry:
    return TokenRegistry()


@pytest.fixture
def chain() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def quotes(chain: FakeChainClient) -> FakeQuoteService:
    service = FakeQuoteService(chain)
    service.usd_per_unit.update({"BNB": Decimal("600"), "WLFI": Decimal("0.2"), "ASTER": Decimal("1.5")})
    return service


@pytest.fixture
def builder(chain: FakeChainClient) -> FakeBuilder:
    return FakeBuilder(chain)


@pytest.fixture
def settlement_config() -> SettlementConfig:
    return SettlementConfig(
        private_key=TEST_PRIVATE_KEY,
        rpc_urls={56: RPC_URL, 137: RPC_URL},
        enabled_chains=frozenset({56, 137}),
        retry_policy=RetryPolicy(max_attempts=2, backoff_seconds=0.0, relaxed_params_on_retry=True),
    )


@pytest.fixture
def ledger() -> InMemorySettlementLedger:
    return InMemorySettlementLedger()


@pytest.fixture
def make_engine(settlement_config, registry, quotes, builder, chain, ledger):
    """Factory for a SettlementEngine wired to the fakes."""

    def _make(config: Optional[SettlementConfig] = None, **overrides: Any) -> SettlementEngine:
        kwargs: dict[str, Any] = {
            "config": config or settlement_config,
            "registry": registry,
            "quotes": quotes,
            "builder": builder,
            "chain": chain,
            "cooldown_store": InMemoryCooldownStore(),
            "ledger": ledger,
        }
        kwargs.update(overrides)
        return SettlementEngine(**kwargs)

    return _make
