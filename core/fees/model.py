from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from core.config import LaneConfig

BPS_IN_PERCENT = Decimal(100)
PCT_QUANT = Decimal("0.0001")


@dataclass(frozen=True)
class SwapCostEstimate:
    """Per-trade cost breakdown, every field in percent of notional."""

    notional_usd: Decimal
    gross_edge_pct: Decimal
    gas_cost_pct: Decimal
    slippage_pct: Decimal
    mev_margin_pct: Decimal
    failure_buffer_pct: Decimal

    @property
    def total_cost_pct(self) -> Decimal:
        return (self.gas_cost_pct + self.slippage_pct + self.mev_margin_pct + self.failure_buffer_pct).quantize(
            PCT_QUANT
        )

    @property
    def expected_pnl_pct(self) -> Decimal:
        return (self.gross_edge_pct - self.total_cost_pct).quantize(PCT_QUANT)


@dataclass(frozen=True)
class SwapCostModel:
    """Cost model for a single aggregator swap on one lane.

    Gas is charged against the notional; slippage, MEV margin and the
    failure buffer are flat percentages.
    """

    lane: LaneConfig
    slippage_bps: int

    def estimate_cost(
        self,
        *,
        src_usd: Decimal,
        dest_usd: Decimal,
        gas_cost_usd: Decimal,
    ) -> SwapCostEstimate:
        """Estimate costs for a quote with positive source notional."""
        if src_usd <= 0:
            raise ValueError("src_usd must be positive")

        gross_edge_pct = ((dest_usd - src_usd) / src_usd * Decimal(100)).quantize(PCT_QUANT)
        gas_cost_pct = (max(gas_cost_usd, Decimal(0)) / src_usd * Decimal(100)).quantize(PCT_QUANT)
        slippage_pct = (Decimal(self.slippage_bps) / BPS_IN_PERCENT).quantize(PCT_QUANT)

        return SwapCostEstimate(
            notional_usd=src_usd,
            gross_edge_pct=gross_edge_pct,
            gas_cost_pct=gas_cost_pct,
            slippage_pct=slippage_pct,
            mev_margin_pct=self.lane.mev_margin_pct,
            failure_buffer_pct=self.lane.failure_buffer_pct,
        )


def gas_cost_usd(gas_units: int, gas_price_wei: int, native_usd: Decimal) -> Decimal:
    """USD cost of `gas_units` at `gas_price_wei`."""
    return Decimal(gas_units) * Decimal(gas_price_wei) / Decimal(10**18) * native_usd
