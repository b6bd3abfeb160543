from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Mapping, Optional

Lane = Literal["A", "B"]

NATIVE_TOKEN_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    address: str
    decimals: int

    @property
    def is_native(self) -> bool:
        return self.address.lower() == NATIVE_TOKEN_ADDRESS.lower()


@dataclass(frozen=True)
class Quote:
    """Validated aggregator price quote.

    `price_route` is kept opaque; it is handed back to the builder unchanged.
    """

    price_route: Mapping[str, Any]
    src_amount: int
    dest_amount: int
    src_usd: Decimal
    dest_usd: Decimal
    gas_estimate: int
    gas_cost_usd: Decimal = Decimal("0")
    token_transfer_proxy: Optional[str] = None


@dataclass(frozen=True)
class BuiltTransaction:
    to: str
    data: str
    value: int
    gas: Optional[int] = None


@dataclass(frozen=True)
class Opportunity:
    lane: Lane
    chain_id: int
    src_symbol: str
    dest_symbol: str
    amount_base_units: int
    expected_pnl_pct: Decimal
    quote: Quote
    notional_usd: Decimal
    gas_cost_usd: Decimal = Decimal("0")


@dataclass(frozen=True)
class QueuedTrade:
    chain_id: int
    src_symbol: str
    dest_symbol: str
    amount_base_units: int
    lane: Lane
    notional_usd: Decimal = Decimal("0")
    expected_pnl_pct: Decimal = Decimal("0")
    gas_cost_usd: Decimal = Decimal("0")

    @classmethod
    def from_opportunity(cls, opportunity: Opportunity) -> QueuedTrade:
        return cls(
            chain_id=opportunity.chain_id,
            src_symbol=opportunity.src_symbol,
            dest_symbol=opportunity.dest_symbol,
            amount_base_units=opportunity.amount_base_units,
            lane=opportunity.lane,
            notional_usd=opportunity.notional_usd,
            expected_pnl_pct=opportunity.expected_pnl_pct,
            gas_cost_usd=opportunity.gas_cost_usd,
        )


@dataclass(frozen=True)
class TradeResult:
    lane: Lane
    success: bool
    pnl_usd: Decimal
    timestamp: float


@dataclass
class InventoryStats:
    total_usd: Decimal
    balances: dict[int, dict[str, Decimal]] = field(default_factory=dict)
    realized_pnl: Decimal = Decimal("0")


@dataclass(frozen=True)
class SettlementRequest:
    """Single trade request as received at the settlement boundary.

    `amount` is left raw (string or int) so parsing failures surface as a
    structured validation error instead of a type error upstream.
    """

    chain_id: int
    src_symbol: str
    dest_symbol: str
    amount: Any
    from_address: str = ""
    lane: Optional[Lane] = None
    slippage_bps: Optional[int] = None
    dest_amount: Optional[int] = None


@dataclass(frozen=True)
class SettlementResult:
    ok: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    details: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the HTTP response (camelCase keys, nulls dropped)."""
        if self.ok:
            return {"ok": True, "txHash": self.tx_hash}
        payload: dict[str, Any] = {"ok": False, "error": self.error}
        if self.error_code:
            payload["errorCode"] = self.error_code
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass(frozen=True)
class SettlementRecord:
    """Ledger row for one settlement outcome."""

    chain_id: int
    src_symbol: str
    dest_symbol: str
    lane: Optional[Lane]
    amount_base_units: int
    ok: bool
    tx_hash: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
