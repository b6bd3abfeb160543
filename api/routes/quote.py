"""Read-only quote endpoint (no signing, no cooldown)."""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from api.deps import get_runtime
from core.runtime import Runtime
from core.settlement.engine import parse_amount
from core.settlement.errors import QuoteUnavailableError, ValidationError, truncate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quote", tags=["quote"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})


@router.get("")
async def get_quote(
    chainId: Optional[int] = Query(None),
    srcSymbol: Optional[str] = Query(None),
    destSymbol: Optional[str] = Query(None),
    amountWei: Optional[str] = Query(None),
    runtime: Runtime = Depends(get_runtime),
) -> JSONResponse:
    if chainId is None or not srcSymbol or not destSymbol or not amountWei:
        return _error(400, "Missing params: chainId, srcSymbol, destSymbol, amountWei are required")

    if chainId not in runtime.config.settlement.enabled_chains:
        return _error(400, f"Chain {chainId} is not enabled")

    src = runtime.registry.resolve(chainId, srcSymbol)
    dest = runtime.registry.resolve(chainId, destSymbol)
    if src is None or dest is None:
        return _error(400, f"Unsupported token pair {srcSymbol}/{destSymbol} on chain {chainId}")

    try:
        amount = parse_amount(amountWei)
    except ValidationError as e:
        return _error(400, e.message)

    try:
        quote = await runtime.quotes.get_quote(chain_id=chainId, src=src, dest=dest, amount=amount)
    except QuoteUnavailableError as e:
        logger.warning("Quote failed for %s->%s on %s: %s", src.symbol, dest.symbol, chainId, e)
        return _error(502, truncate(e.message))

    return JSONResponse(
        content={
            "ok": True,
            "chainId": chainId,
            "src": src.symbol,
            "dest": dest.symbol,
            "amountInWei": str(amount),
            "expectedOutWei": str(quote.dest_amount),
            "gasEstimate": quote.gas_estimate,
            "srcUsd": str(quote.src_usd),
            "destUsd": str(quote.dest_usd),
            "ts": int(time.time() * 1000),
        }
    )
