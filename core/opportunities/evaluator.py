"""Opportunity evaluator: decides whether a quoted swap clears its lane's P&L threshold.

Pure function with no network calls; the scanner feeds it quotes.

Usage:
    from core.config import LANE_A
    from core.fees.model import SwapCostModel
    from core.opportunities.evaluator import evaluate_opportunity

    result = evaluate_opportunity(
        src_usd=Decimal("100"),
        dest_usd=Decimal("101"),
        gas_cost_usd=Decimal("0.05"),
        cost_model=SwapCostModel(lane=LANE_A, slippage_bps=40),
    )
    if result.decision == "PASS":
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

from core.fees.model import SwapCostEstimate, SwapCostModel

EvaluationDecision = Literal["PASS", "FAIL"]


@dataclass(frozen=True)
class EvaluationResult:
    """Result of opportunity evaluation.

    Attributes:
        decision: PASS if expected P&L clears the lane minimum
        expected_pnl_pct: Net expected P&L in percent of notional
        required_pct: Lane minimum P&L in percent
        reasons: Human-readable reason strings
        cost_estimate: Full cost breakdown
    """

    decision: EvaluationDecision
    expected_pnl_pct: Decimal
    required_pct: Decimal
    reasons: tuple[str, ...]
    cost_estimate: SwapCostEstimate


def evaluate_opportunity(
    *,
    src_usd: Decimal,
    dest_usd: Decimal,
    gas_cost_usd: Decimal,
    cost_model: SwapCostModel,
) -> EvaluationResult:
    """Evaluate a quote against its lane threshold.

    Args:
        src_usd: USD value of the amount sold
        dest_usd: USD value of the amount received
        gas_cost_usd: Estimated gas cost in USD
        cost_model: Lane + pair cost model

    Returns:
        EvaluationResult with decision and cost breakdown

    Raises:
        ValueError: If src_usd <= 0
    """
    estimate = cost_model.estimate_cost(src_usd=src_usd, dest_usd=dest_usd, gas_cost_usd=gas_cost_usd)
    required = cost_model.lane.min_pnl_pct
    expected = estimate.expected_pnl_pct

    reasons = [
        f"Gross edge {estimate.gross_edge_pct}% - costs {estimate.total_cost_pct}% "
        f"(gas {estimate.gas_cost_pct}%, slippage {estimate.slippage_pct}%, "
        f"mev {estimate.mev_margin_pct}%, buffer {estimate.failure_buffer_pct}%)"
    ]
    if expected >= required:
        decision: EvaluationDecision = "PASS"
        reasons.append(f"Expected {expected}% >= lane {cost_model.lane.lane} minimum {required}%")
    else:
        decision = "FAIL"
        reasons.append(f"Expected {expected}% < lane {cost_model.lane.lane} minimum {required}%")

    return EvaluationResult(
        decision=decision,
        expected_pnl_pct=expected,
        required_pct=required,
        reasons=tuple(reasons),
        cost_estimate=estimate,
    )
