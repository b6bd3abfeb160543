"""Per-chain settlement executor.

Each chain gets a bounded FIFO queue and exactly one worker task, so at most
one settlement is in flight per chain. A full queue drops the new trade
(backpressure) instead of growing without bound.

A running settlement is never cancelled: it may already have broadcast a
swap. Exceeding `settlement_timeout` only raises a warning, and the worker keeps
waiting for the real outcome. `stop()` discards queued trades but lets the
in-flight ones finish and books them.

After every settlement the outcome is fed back into the risk guard and the
inventory manager.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional

from core.automation.audit import AuditLogger
from core.execution.interfaces import Settler
from core.portfolio.inventory import InventoryManager
from core.risk.guard import RiskGuard
from core.settlement.errors import ON_CHAIN_FAILURE, RATE_LIMITED
from core.types import QueuedTrade, SettlementRequest, SettlementResult, TradeResult

logger = logging.getLogger(__name__)


@dataclass
class ExecutorStats:
    enqueued: int = 0
    dropped: int = 0
    succeeded: int = 0
    failed: int = 0
    timed_out: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "enqueued": self.enqueued,
            "dropped": self.dropped,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "timedOut": self.timed_out,
        }


def realized_pnl(trade: QueuedTrade, result: SettlementResult) -> Decimal:
    """P&L attributed to a finished settlement.

    Success books the expected edge on the notional; an on-chain failure
    books the gas spent; anything else cost nothing.
    """
    if result.ok:
        return trade.notional_usd * trade.expected_pnl_pct / Decimal("100")
    if result.error_code == ON_CHAIN_FAILURE:
        return -trade.gas_cost_usd
    return Decimal("0")


class Executor:
    """Serializes settlement per chain."""

    def __init__(
        self,
        *,
        settler: Settler,
        risk_guard: RiskGuard,
        inventory: InventoryManager,
        queue_capacity: int = 5,
        settlement_timeout: float = 180.0,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settler = settler
        self.risk_guard = risk_guard
        self.inventory = inventory
        self.queue_capacity = queue_capacity
        self.settlement_timeout = settlement_timeout
        self.audit_logger = audit_logger or AuditLogger()
        self._clock = clock
        self._queues: dict[int, asyncio.Queue[QueuedTrade]] = {}
        self._workers: dict[int, asyncio.Task] = {}
        self._in_flight: dict[int, QueuedTrade] = {}
        self._settling: dict[int, tuple[QueuedTrade, asyncio.Future]] = {}
        self.stats = ExecutorStats()

    def enqueue(self, trade: QueuedTrade) -> bool:
        """Queue a trade for its chain.

        Returns False (and drops the trade) when that chain's queue is full.
        Must be called from within a running event loop.
        """
        queue = self._queues.get(trade.chain_id)
        if queue is None:
            queue = asyncio.Queue(maxsize=self.queue_capacity)
            self._queues[trade.chain_id] = queue

        try:
            queue.put_nowait(trade)
        except asyncio.QueueFull:
            self.stats.dropped += 1
            logger.warning(
                "Executor queue full for chain %s (%d), dropping %s->%s",
                trade.chain_id,
                self.queue_capacity,
                trade.src_symbol,
                trade.dest_symbol,
            )
            return False

        self.stats.enqueued += 1
        self._ensure_worker(trade.chain_id)
        return True

    def _ensure_worker(self, chain_id: int) -> None:
        worker = self._workers.get(chain_id)
        if worker is None or worker.done():
            self._workers[chain_id] = asyncio.create_task(self._worker(chain_id), name=f"executor-{chain_id}")

    async def _worker(self, chain_id: int) -> None:
        queue = self._queues[chain_id]
        while True:
            trade = await queue.get()
            self._in_flight[chain_id] = trade
            try:
                await self._process(trade)
            except Exception as e:
                logger.exception(f"Executor worker error on chain {chain_id}: {e}")
                self.audit_logger.log_error(f"Executor worker error on chain {chain_id}: {e}")
            finally:
                self._in_flight.pop(chain_id, None)
                queue.task_done()

    async def _process(self, trade: QueuedTrade) -> None:
        pair = f"{trade.src_symbol}->{trade.dest_symbol}"
        request = SettlementRequest(
            chain_id=trade.chain_id,
            src_symbol=trade.src_symbol,
            dest_symbol=trade.dest_symbol,
            amount=trade.amount_base_units,
            lane=trade.lane,
        )
        task = asyncio.ensure_future(self.settler.settle(request))
        self._settling[trade.chain_id] = (trade, task)
        try:
            result = await self._await_outcome(trade, pair, task)
        except Exception:
            self._settling.pop(trade.chain_id, None)
            raise
        # On cancellation the entry stays so that stop() can book it.
        self._settling.pop(trade.chain_id, None)
        self._complete(trade, result)

    async def _await_outcome(self, trade: QueuedTrade, pair: str, task: asyncio.Future) -> SettlementResult:
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.settlement_timeout)
        except asyncio.TimeoutError:
            self.stats.timed_out += 1
            logger.warning(
                "Settlement for %s on chain %s still running after %.0fs, waiting for its outcome",
                pair,
                trade.chain_id,
                self.settlement_timeout,
            )
            self.audit_logger.log_settlement_timeout(
                pair, self.settlement_timeout, context={"chain_id": trade.chain_id, "lane": trade.lane}
            )
        return await asyncio.shield(task)

    def _complete(self, trade: QueuedTrade, result: SettlementResult) -> None:
        pair = f"{trade.src_symbol}->{trade.dest_symbol}"
        if result.ok:
            self.stats.succeeded += 1
        else:
            self.stats.failed += 1
        self.audit_logger.log_settlement(
            pair,
            result.ok,
            result.tx_hash or f"{result.error_code}: {result.error}",
            context={"chain_id": trade.chain_id, "lane": trade.lane},
        )
        self._feedback(trade, result)

    def _feedback(self, trade: QueuedTrade, result: SettlementResult) -> None:
        if result.error_code == RATE_LIMITED:
            # Deduplicated, nothing was attempted.
            return
        pnl = realized_pnl(trade, result)
        self.risk_guard.record_result(
            TradeResult(lane=trade.lane, success=result.ok, pnl_usd=pnl, timestamp=self._clock())
        )
        if pnl != 0:
            self.inventory.add_realized_pnl(pnl)

    async def join(self) -> None:
        """Wait until every queued trade has been settled."""
        for queue in list(self._queues.values()):
            await queue.join()

    async def stop(self) -> None:
        """Stop all workers.

        Queued trades that have not started are discarded. Settlements already
        running are awaited (up to `settlement_timeout`) and their outcomes are
        booked like any other.
        """
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()
        self._in_flight.clear()
        for queue in self._queues.values():
            while not queue.empty():
                queue.get_nowait()
                queue.task_done()

        settling = list(self._settling.values())
        self._settling.clear()
        for trade, task in settling:
            await self._finish_on_stop(trade, task)

    async def _finish_on_stop(self, trade: QueuedTrade, task: asyncio.Future) -> None:
        pair = f"{trade.src_symbol}->{trade.dest_symbol}"
        try:
            result = await asyncio.wait_for(asyncio.shield(task), timeout=self.settlement_timeout)
        except asyncio.TimeoutError:
            logger.error("Settlement for %s on chain %s still running at shutdown, outcome not booked", pair, trade.chain_id)
            self.audit_logger.log_error(
                f"Settlement for {pair} on chain {trade.chain_id} still running at shutdown",
                context={"pair": pair, "chain_id": trade.chain_id},
            )
            return
        except Exception as e:
            logger.exception(f"Settlement for {pair} on chain {trade.chain_id} failed during shutdown: {e}")
            self.audit_logger.log_error(f"Settlement for {pair} on chain {trade.chain_id} failed during shutdown: {e}")
            return
        self._complete(trade, result)

    def queue_depths(self) -> dict[int, int]:
        return {chain_id: queue.qsize() for chain_id, queue in self._queues.items()}

    def get_status(self) -> dict[str, Any]:
        return {
            "queueDepths": self.queue_depths(),
            "inFlight": {
                chain_id: f"{t.src_symbol}->{t.dest_symbol}" for chain_id, t in self._in_flight.items()
            },
            "stats": self.stats.to_dict(),
        }
