"""Circuit breakers over recent trade results.

Two independent stops:

- global drawdown stop: the last N results sum to a loss at or beyond the
  threshold (as % of base capital) -> all lanes paused;
- lane-B stop: the last M lane-B results were all failures -> lane B paused.

Stops are set only by `record_result` and expire only with time; there is
no manual reset.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable

from core.config import RiskConfig
from core.types import Lane, TradeResult

logger = logging.getLogger(__name__)


@dataclass
class RiskState:
    """Current stop deadlines (epoch seconds, 0 when inactive)."""

    global_stop_until: float = 0.0
    lane_b_stop_until: float = 0.0


class RiskGuard:
    """Evaluates trade results and gates lanes."""

    def __init__(self, config: RiskConfig | None = None, clock: Callable[[], float] = time.time) -> None:
        """Initialize the guard.

        Args:
            config: Thresholds and cooldowns (defaults to RiskConfig())
            clock: Time source in epoch seconds, injectable for tests
        """
        self.config = config or RiskConfig()
        self._clock = clock
        self.state = RiskState()
        self._history: deque[TradeResult] = deque(maxlen=self.config.history_size)

    @property
    def history(self) -> list[TradeResult]:
        return list(self._history)

    def record_result(self, result: TradeResult) -> None:
        """Append a result and re-evaluate both stops."""
        self._history.append(result)
        now = self._clock()
        self._evaluate_drawdown(now)
        self._evaluate_lane_b(now)

    def _evaluate_drawdown(self, now: float) -> None:
        n = self.config.win_loss_samples
        if n <= 0 or len(self._history) < n:
            return
        recent = list(self._history)[-n:]
        pnl_sum = sum((r.pnl_usd for r in recent), Decimal("0"))
        if self.config.base_capital_usd <= 0:
            return
        pnl_pct = pnl_sum / self.config.base_capital_usd * Decimal("100")
        if pnl_pct <= self.config.drawdown_threshold_pct:
            self.state.global_stop_until = now + self.config.drawdown_cooldown_seconds
            logger.warning(
                "Global stop: last %d results sum to %.4f%% of base capital (threshold %s%%), paused for %ds",
                n,
                pnl_pct,
                self.config.drawdown_threshold_pct,
                self.config.drawdown_cooldown_seconds,
            )

    def _evaluate_lane_b(self, now: float) -> None:
        m = self.config.lane_b_stop_losses
        if m <= 0:
            return
        lane_b = [r for r in self._history if r.lane == "B"][-m:]
        if len(lane_b) == m and all(not r.success for r in lane_b):
            self.state.lane_b_stop_until = now + self.config.lane_b_cooldown_seconds
            logger.warning("Lane B stop: %d consecutive failures, paused for %ds", m, self.config.lane_b_cooldown_seconds)

    def is_global_stopped(self) -> bool:
        return self._clock() < self.state.global_stop_until

    def is_lane_b_stopped(self) -> bool:
        return self._clock() < self.state.lane_b_stop_until

    def is_lane_allowed(self, lane: Lane) -> bool:
        if self.is_global_stopped():
            return False
        if lane == "B" and self.is_lane_b_stopped():
            return False
        return True

    def get_status(self) -> dict[str, Any]:
        return {
            "isGlobalStopped": self.is_global_stopped(),
            "isLaneBStopped": self.is_lane_b_stopped(),
            "globalStopUntil": self.state.global_stop_until or None,
            "laneBStopUntil": self.state.lane_b_stop_until or None,
            "historySize": len(self._history),
        }
