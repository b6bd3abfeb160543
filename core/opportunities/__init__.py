from __future__ import annotations

from core.opportunities.evaluator import EvaluationDecision, EvaluationResult, evaluate_opportunity
from core.opportunities.scanner import OpportunityScanner, QuotePriceProvider

__all__ = [
    "EvaluationDecision",
    "EvaluationResult",
    "OpportunityScanner",
    "QuotePriceProvider",
    "evaluate_opportunity",
]
