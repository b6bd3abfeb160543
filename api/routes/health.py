"""Liveness endpoint."""

from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Depends

from api.deps import get_runtime
from core.runtime import Runtime
from core.tokens.registry import CHAIN_NAMES

router = APIRouter(prefix="/health", tags=["health"])

# Track API start time
_api_start_time = time.time()


@router.get("")
async def health_check(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    settlement = runtime.config.settlement
    return {
        "status": "ok",
        "uptime_seconds": int(time.time() - _api_start_time),
        "chains": {
            str(chain_id): {
                "name": CHAIN_NAMES.get(chain_id, str(chain_id)),
                "rpc_configured": bool(settlement.rpc_url(chain_id)),
            }
            for chain_id in sorted(settlement.enabled_chains)
        },
        "signer_configured": runtime.chain.signer_address() is not None,
        "bot_running": runtime.bot.is_running,
    }
