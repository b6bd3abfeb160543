"""Risk management module.

Circuit breakers (global drawdown stop, lane-B loss streak stop).
"""

from .guard import RiskGuard, RiskState

__all__ = [
    "RiskGuard",
    "RiskState",
]
