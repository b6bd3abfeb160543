"""Automation: the bot loop scheduler (`core.automation.bot_loop`) and its audit trail."""

from .audit import AuditEvent, AuditLogger

__all__ = [
    "AuditEvent",
    "AuditLogger",
]
