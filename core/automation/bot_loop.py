"""Bot loop: the scheduler that drives scan -> gate -> enqueue.

Ticks fire at a fixed interval as independent tasks. A tick that starts
while its predecessor is still scanning is skipped, so scans never overlap.
Settlement happens in the executor, never inside a tick.

Per tick, opportunities are taken in the scanner's ranked order. At most one
lane-A trade is enqueued: the best one that passes the risk, balance and
queue gates. A lane-A candidate that fails a gate does not use up the slot,
so the next-ranked lane-A candidate is tried. Every lane-B opportunity is
considered on its own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from core.automation.audit import AuditLogger
from core.execution.executor import Executor
from core.opportunities.scanner import OpportunityScanner
from core.portfolio.inventory import InventoryManager
from core.risk.guard import RiskGuard
from core.types import QueuedTrade

logger = logging.getLogger(__name__)


class BotLoop:
    """Owns the tick schedule for one scanner / guard / inventory / executor set.

    Coordinates between:
    - Scanner (ranked opportunities)
    - Risk guard (lane gating)
    - Inventory manager (live balance check)
    - Executor (per-chain settlement queue)
    - Audit logger (records every decision)
    """

    def __init__(
        self,
        *,
        scanner: OpportunityScanner,
        risk_guard: RiskGuard,
        inventory: InventoryManager,
        executor: Executor,
        interval_seconds: float = 3.5,
        audit_logger: Optional[AuditLogger] = None,
    ) -> None:
        self.scanner = scanner
        self.risk_guard = risk_guard
        self.inventory = inventory
        self.executor = executor
        self.interval_seconds = interval_seconds
        self.audit_logger = audit_logger or executor.audit_logger

        self._scanning = False
        self._running = False
        self._run_task: Optional[asyncio.Task] = None
        self._tick_tasks: set[asyncio.Task] = set()
        self._iteration = 0
        self.skipped_ticks = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def tick(self) -> list[QueuedTrade]:
        """Run one scan and enqueue whatever passes the gates.

        Never raises. Returns the trades that were enqueued.
        """
        if self._scanning:
            self.skipped_ticks += 1
            logger.debug("Previous tick still scanning, skipping")
            return []

        self._scanning = True
        self._iteration += 1
        try:
            return await self._tick()
        except Exception as e:
            logger.exception(f"Tick {self._iteration} failed: {e}")
            self.audit_logger.log_error(f"Tick {self._iteration} failed: {e}")
            return []
        finally:
            self._scanning = False

    async def _tick(self) -> list[QueuedTrade]:
        opportunities = await self.scanner.scan()
        enqueued: list[QueuedTrade] = []
        lane_a_filled = False

        for opp in opportunities:
            pair = f"{opp.src_symbol}->{opp.dest_symbol}"
            context = {"lane": opp.lane, "chain_id": opp.chain_id, "expected_pnl_pct": str(opp.expected_pnl_pct)}

            if opp.lane == "A" and lane_a_filled:
                continue

            if not self.risk_guard.is_lane_allowed(opp.lane):
                self.audit_logger.log_trade_rejected(pair, f"lane {opp.lane} stopped by risk guard", context)
                continue

            if not await self.inventory.is_balance_sufficient(opp.chain_id, opp.src_symbol, opp.amount_base_units):
                self.audit_logger.log_trade_rejected(pair, "insufficient balance", context)
                continue

            trade = QueuedTrade.from_opportunity(opp)
            if not self.executor.enqueue(trade):
                self.audit_logger.log_trade_rejected(pair, "executor queue full", context)
                continue

            enqueued.append(trade)
            self.audit_logger.log_trade_enqueued(pair, opp.lane, context)
            logger.info("Enqueued %s lane %s (expected %s%%)", pair, opp.lane, opp.expected_pnl_pct)
            if opp.lane == "A":
                lane_a_filled = True

        return enqueued

    def _spawn_tick(self) -> None:
        task = asyncio.create_task(self.tick())
        self._tick_tasks.add(task)
        task.add_done_callback(self._tick_tasks.discard)

    async def run(self, max_iterations: Optional[int] = None) -> None:
        """Fire ticks every `interval_seconds` until stopped."""
        logger.info("Starting bot loop (interval %.1fs)", self.interval_seconds)
        self._running = True
        fired = 0
        try:
            while self._running:
                self._spawn_tick()
                fired += 1
                if max_iterations is not None and fired >= max_iterations:
                    break
                await asyncio.sleep(self.interval_seconds)
            if self._tick_tasks:
                await asyncio.gather(*self._tick_tasks, return_exceptions=True)
        except asyncio.CancelledError:
            logger.info("Bot loop cancelled")
        finally:
            self._running = False
            logger.info("Bot loop stopped")

    def start(self) -> bool:
        """Start the loop in the background. Returns False if already running."""
        if self._run_task is not None and not self._run_task.done():
            return False
        self._run_task = asyncio.create_task(self.run(), name="bot-loop")
        return True

    async def stop(self) -> None:
        """Stop ticking, cancel in-flight scans and the executor workers."""
        self._running = False
        if self._run_task is not None and not self._run_task.done():
            self._run_task.cancel()
            await asyncio.gather(self._run_task, return_exceptions=True)
        self._run_task = None
        for task in list(self._tick_tasks):
            task.cancel()
        if self._tick_tasks:
            await asyncio.gather(*self._tick_tasks, return_exceptions=True)
        await self.executor.stop()

    def get_status(self) -> dict[str, Any]:
        stats = self.inventory.get_stats()
        return {
            "running": self.is_running,
            "iteration": self._iteration,
            "skippedTicks": self.skipped_ticks,
            "risk": self.risk_guard.get_status(),
            "inventory": {
                "totalUsd": str(stats.total_usd),
                "realizedPnl": str(stats.realized_pnl),
                "balances": {
                    str(chain): {sym: str(bal) for sym, bal in by_symbol.items()}
                    for chain, by_symbol in stats.balances.items()
                },
            },
            "executor": self.executor.get_status(),
        }
