"""Audit trail for bot decisions.

Every scheduler decision (enqueue, rejection) and every settlement outcome
is recorded as a structured event with enough context to replay why a trade
did or did not happen. Timestamps are timezone-aware UTC.
"""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional

EventType = Literal[
    "trade_enqueued",
    "trade_rejected",
    "trade_settled",
    "trade_failed",
    "trade_timed_out",
    "error",
]

Severity = Literal["debug", "info", "warning", "error"]


@dataclass
class AuditEvent:
    """Structured audit event."""

    event_type: EventType
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    severity: Severity = "info"
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result


class AuditLogger:
    """Bounded in-memory audit log (oldest events are evicted)."""

    def __init__(self, maxlen: int = 500) -> None:
        self.events: deque[AuditEvent] = deque(maxlen=maxlen)

    def log(self, event: AuditEvent) -> None:
        self.events.append(event)

    def log_trade_enqueued(self, pair: str, lane: str, context: Optional[dict[str, Any]] = None) -> None:
        self.log(
            AuditEvent(
                event_type="trade_enqueued",
                message=f"Trade enqueued: {pair} (lane {lane})",
                context={"pair": pair, "lane": lane, **(context or {})},
            )
        )

    def log_trade_rejected(self, pair: str, reason: str, context: Optional[dict[str, Any]] = None) -> None:
        self.log(
            AuditEvent(
                event_type="trade_rejected",
                message=f"Trade rejected for {pair}: {reason}",
                severity="warning",
                context={"pair": pair, "reason": reason, **(context or {})},
            )
        )

    def log_settlement(
        self,
        pair: str,
        ok: bool,
        detail: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log a settlement outcome (tx hash on success, error code on failure)."""
        self.log(
            AuditEvent(
                event_type="trade_settled" if ok else "trade_failed",
                message=f"Settlement {'OK' if ok else 'FAILED'} for {pair}: {detail}",
                severity="info" if ok else "warning",
                context={"pair": pair, "ok": ok, "detail": detail, **(context or {})},
            )
        )

    def log_settlement_timeout(self, pair: str, seconds: float, context: Optional[dict[str, Any]] = None) -> None:
        """Log a settlement that is still running past its timeout. Its outcome is logged separately."""
        self.log(
            AuditEvent(
                event_type="trade_timed_out",
                message=f"Settlement for {pair} still running after {seconds:.0f}s",
                severity="warning",
                context={"pair": pair, "timeout_seconds": seconds, **(context or {})},
            )
        )

    def log_error(self, error_message: str, context: Optional[dict[str, Any]] = None) -> None:
        self.log(AuditEvent(event_type="error", message=error_message, severity="error", context=context or {}))

    def get_events(
        self,
        event_type: Optional[EventType] = None,
        severity: Optional[Severity] = None,
        pair: Optional[str] = None,
    ) -> list[AuditEvent]:
        """Get filtered audit events."""
        return [
            e
            for e in self.events
            if (event_type is None or e.event_type == event_type)
            and (severity is None or e.severity == severity)
            and (pair is None or e.context.get("pair") == pair)
        ]

    def clear(self) -> None:
        """Clear all events (for testing)."""
        self.events.clear()

    def to_json_list(self, limit: Optional[int] = None) -> list[dict[str, Any]]:
        events = list(self.events)
        if limit is not None:
            events = events[-limit:]
        return [e.to_dict() for e in events]
