"""Tests for the per-chain settlement executor."""

import asyncio
from decimal import Decimal

import pytest

from conftest import WEI, FakeClock, RecordingSettler
from core.automation import AuditLogger
from core.config import RiskConfig
from core.execution.executor import Executor, realized_pnl
from core.portfolio import InventoryManager
from core.risk import RiskGuard
from core.settlement.errors import ON_CHAIN_FAILURE, QUOTE_UNAVAILABLE, RATE_LIMITED
from core.types import QueuedTrade, SettlementResult


def _trade(chain_id: int = 56, src: str = "BNB", lane: str = "A", amount: int = 10**17) -> QueuedTrade:
    return QueuedTrade(
        chain_id=chain_id,
        src_symbol=src,
        dest_symbol="USDT",
        amount_base_units=amount,
        lane=lane,
        notional_usd=Decimal("100"),
        expected_pnl_pct=Decimal("0.5"),
        gas_cost_usd=Decimal("0.2"),
    )


def _executor(settler, *, capacity: int = 5, timeout: float = 5.0, guard=None, inventory=None) -> Executor:
    return Executor(
        settler=settler,
        risk_guard=guard or RiskGuard(RiskConfig(), clock=FakeClock()),
        inventory=inventory or InventoryManager(),
        queue_capacity=capacity,
        settlement_timeout=timeout,
        audit_logger=AuditLogger(),
    )


# ========== P&L Attribution Tests ==========


class TestRealizedPnl:
    def test_success_books_expected_edge(self) -> None:
        assert realized_pnl(_trade(), SettlementResult(ok=True, tx_hash="0x1")) == Decimal("0.5")

    def test_on_chain_failure_books_gas(self) -> None:
        result = SettlementResult(ok=False, error="reverted", error_code=ON_CHAIN_FAILURE)
        assert realized_pnl(_trade(), result) == Decimal("-0.2")

    def test_pre_submission_failure_costs_nothing(self) -> None:
        result = SettlementResult(ok=False, error="no route", error_code=QUOTE_UNAVAILABLE)
        assert realized_pnl(_trade(), result) == Decimal("0")


# ========== Serialization Tests ==========


class TestSerialization:
    @pytest.mark.asyncio
    async def test_same_chain_never_overlaps(self) -> None:
        settler = RecordingSettler(delay=0.02)
        executor = _executor(settler)

        for _ in range(4):
            assert executor.enqueue(_trade(chain_id=56)) is True
        await executor.join()

        assert settler.max_active[56] == 1
        windows = sorted((start, end) for chain, start, end in settler.windows if chain == 56)
        for (_, prev_end), (next_start, _) in zip(windows, windows[1:]):
            assert next_start >= prev_end

    @pytest.mark.asyncio
    async def test_fifo_order_per_chain(self) -> None:
        settler = RecordingSettler(delay=0.0)
        executor = _executor(settler)

        for amount in (1, 2, 3):
            executor.enqueue(_trade(amount=amount))
        await executor.join()

        assert [r.amount for r in settler.requests] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_different_chains_run_concurrently(self) -> None:
        settler = RecordingSettler(delay=0.05)
        executor = _executor(settler)

        executor.enqueue(_trade(chain_id=56))
        executor.enqueue(_trade(chain_id=137, src="POL"))
        await executor.join()

        (_, start_a, end_a), (_, start_b, end_b) = sorted(settler.windows, key=lambda w: w[0])
        assert start_a < end_b and start_b < end_a
        await executor.stop()

    @pytest.mark.asyncio
    async def test_request_carries_lane(self) -> None:
        settler = RecordingSettler(delay=0.0)
        executor = _executor(settler)

        executor.enqueue(_trade(lane="B", src="WLFI"))
        await executor.join()

        assert settler.requests[0].lane == "B"
        assert settler.requests[0].from_address == ""


# ========== Backpressure Tests ==========


class TestBackpressure:
    @pytest.mark.asyncio
    async def test_full_queue_drops_new_trades(self) -> None:
        settler = RecordingSettler(delay=0.0)
        executor = _executor(settler, capacity=2)

        accepted = [executor.enqueue(_trade(amount=i)) for i in range(1, 5)]

        assert accepted == [True, True, False, False]
        assert executor.stats.dropped == 2
        assert executor.queue_depths() == {56: 2}
        await executor.join()
        assert [r.amount for r in settler.requests] == [1, 2]

    @pytest.mark.asyncio
    async def test_capacity_is_per_chain(self) -> None:
        executor = _executor(RecordingSettler(delay=0.0), capacity=1)

        assert executor.enqueue(_trade(chain_id=56)) is True
        assert executor.enqueue(_trade(chain_id=137, src="POL")) is True
        assert executor.enqueue(_trade(chain_id=56)) is False
        await executor.join()


# ========== Feedback Tests ==========


class TestFeedback:
    @pytest.mark.asyncio
    async def test_success_feeds_guard_and_inventory(self) -> None:
        guard = RiskGuard(RiskConfig(), clock=FakeClock())
        inventory = InventoryManager()
        executor = _executor(RecordingSettler(delay=0.0), guard=guard, inventory=inventory)

        executor.enqueue(_trade())
        await executor.join()

        assert len(guard.history) == 1
        assert guard.history[0].success is True
        assert guard.history[0].pnl_usd == Decimal("0.5")
        assert inventory.get_stats().realized_pnl == Decimal("0.5")
        assert executor.stats.succeeded == 1

    @pytest.mark.asyncio
    async def test_rate_limited_result_is_not_recorded(self) -> None:
        guard = RiskGuard(RiskConfig(), clock=FakeClock())
        settler = RecordingSettler(
            delay=0.0,
            results=[SettlementResult(ok=False, error="cooldown(30s): ...", error_code=RATE_LIMITED)],
        )
        executor = _executor(settler, guard=guard)

        executor.enqueue(_trade())
        await executor.join()

        assert guard.history == []
        assert executor.stats.failed == 1

    @pytest.mark.asyncio
    async def test_lane_b_failures_trip_lane_b_stop(self) -> None:
        guard = RiskGuard(RiskConfig(lane_b_stop_losses=3), clock=FakeClock())
        failure = SettlementResult(ok=False, error="no route", error_code=QUOTE_UNAVAILABLE)
        executor = _executor(RecordingSettler(delay=0.0, results=[failure] * 3), guard=guard)

        for _ in range(3):
            executor.enqueue(_trade(lane="B", src="WLFI"))
        await executor.join()

        assert guard.is_lane_b_stopped() is True
        assert guard.is_lane_allowed("A") is True

    @pytest.mark.asyncio
    async def test_timeout_waits_for_real_outcome(self) -> None:
        guard = RiskGuard(RiskConfig(), clock=FakeClock())
        settler = RecordingSettler(delay=0.2)
        executor = _executor(settler, timeout=0.05, guard=guard)

        executor.enqueue(_trade())
        await executor.join()

        assert len(settler.windows) == 1
        assert [r.success for r in guard.history] == [True]
        assert executor.stats.timed_out == 1
        assert executor.stats.succeeded == 1
        assert executor.stats.failed == 0
        assert executor.audit_logger.get_events(event_type="trade_timed_out")
        assert executor.audit_logger.get_events(event_type="trade_failed") == []

    @pytest.mark.asyncio
    async def test_timeout_keeps_chain_serialized(self) -> None:
        settler = RecordingSettler(delay=0.1)
        executor = _executor(settler, timeout=0.02)

        executor.enqueue(_trade(amount=1))
        executor.enqueue(_trade(amount=2))
        await executor.join()

        assert settler.max_active[56] == 1
        assert [r.amount for r in settler.requests] == [1, 2]
        assert executor.get_status()["stats"]["timedOut"] == 2

    @pytest.mark.asyncio
    async def test_settler_exception_keeps_worker_alive(self) -> None:
        class _ExplodingSettler(RecordingSettler):
            async def settle(self, request):
                if not self.requests:
                    self.requests.append(request)
                    raise RuntimeError("boom")
                return await super().settle(request)

        settler = _ExplodingSettler(delay=0.0)
        executor = _executor(settler)

        executor.enqueue(_trade(amount=1))
        executor.enqueue(_trade(amount=2))
        await executor.join()

        assert [r.amount for r in settler.requests] == [1, 2]
        assert executor.audit_logger.get_events(event_type="error")


# ========== Lifecycle Tests ==========


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_stop_discards_pending_but_finishes_in_flight(self) -> None:
        guard = RiskGuard(RiskConfig(), clock=FakeClock())
        settler = RecordingSettler(delay=0.2)
        executor = _executor(settler, guard=guard)

        for _ in range(3):
            executor.enqueue(_trade())
        await asyncio.sleep(0.01)
        await executor.stop()

        assert executor.queue_depths() == {56: 0}
        assert len(settler.requests) == 1
        assert len(settler.windows) == 1
        assert [r.success for r in guard.history] == [True]
        assert executor.stats.succeeded == 1
        assert executor.get_status()["inFlight"] == {}

    @pytest.mark.asyncio
    async def test_stop_during_submission_keeps_ledger_row(self, make_engine, chain, ledger) -> None:
        guard = RiskGuard(RiskConfig(), clock=FakeClock())
        chain.native_balance = 10 * WEI
        chain.send_delay = 0.1
        executor = _executor(make_engine(), guard=guard)

        executor.enqueue(_trade(amount=WEI))
        for _ in range(200):
            if "send" in chain.calls:
                break
            await asyncio.sleep(0.005)
        await executor.stop()

        records = await ledger.recent()
        assert len(records) == 1
        assert records[0].ok is True
        assert records[0].tx_hash == "0xswap1"
        assert [r.success for r in guard.history] == [True]
        settled = executor.audit_logger.get_events(event_type="trade_settled")
        assert "0xswap1" in settled[0].message

    @pytest.mark.asyncio
    async def test_status_reports_in_flight(self) -> None:
        settler = RecordingSettler(delay=0.1)
        executor = _executor(settler)

        executor.enqueue(_trade())
        await asyncio.sleep(0.02)
        status = executor.get_status()

        assert status["inFlight"] == {56: "BNB->USDT"}
        assert status["stats"]["enqueued"] == 1
        await executor.stop()
