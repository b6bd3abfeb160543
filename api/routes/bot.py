"""Bot loop control and status."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from api.deps import get_runtime
from core.runtime import Runtime

router = APIRouter(prefix="/bot", tags=["bot"])


@router.get("/status")
async def bot_status(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    """Risk guard state, inventory, executor queues and scheduler flag."""
    return runtime.bot.get_status()


@router.post("/start")
async def start_bot(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    started = runtime.bot.start()
    return {"started": started, "running": True}


@router.post("/stop")
async def stop_bot(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    was_running = runtime.bot.is_running
    await runtime.bot.stop()
    return {"stopped": was_running, "running": False}


@router.get("/audit")
async def bot_audit(
    limit: int = Query(100, ge=1, le=500),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    events = runtime.audit_logger.to_json_list(limit=limit)
    return {"events": events, "count": len(events)}
