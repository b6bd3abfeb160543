"""Settlement endpoint and settlement history."""

from __future__ import annotations

from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from api.deps import get_runtime
from core.runtime import Runtime
from core.storage.ledger import record_to_dict
from core.types import SettlementRequest

router = APIRouter(prefix="/trade", tags=["trade"])


class TradeRequest(BaseModel):
    """Body of POST /trade. Field names follow the wire format."""

    chainId: int
    srcSymbol: str = Field(..., min_length=1)
    destSymbol: str = Field(..., min_length=1)
    amountWei: Union[int, str]
    fromAddress: str = ""
    slippageBps: Optional[int] = Field(None, ge=0, le=10_000)
    destAmount: Optional[int] = Field(None, gt=0)


@router.post("")
async def execute_trade(body: TradeRequest, runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
    """Settle one swap.

    Domain failures come back as HTTP 200 with `{"ok": false, "error": ..., "errorCode": ...}`.
    """
    request = SettlementRequest(
        chain_id=body.chainId,
        src_symbol=body.srcSymbol,
        dest_symbol=body.destSymbol,
        amount=body.amountWei,
        from_address=body.fromAddress,
        slippage_bps=body.slippageBps,
        dest_amount=body.destAmount,
    )
    result = await runtime.engine.settle(request)
    return JSONResponse(status_code=200, content=result.to_dict())


@router.get("/history")
async def trade_history(
    limit: int = Query(50, ge=1, le=500, description="Max records, newest first"),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    records = await runtime.ledger.recent(limit)
    return {"records": [record_to_dict(r) for r in records], "count": len(records)}
