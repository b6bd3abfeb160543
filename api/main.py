"""FastAPI application for the settlement endpoint and bot control.

Endpoints:
- POST /trade - Settle one swap (structured result, never a 5xx for domain failures)
- GET /trade/history - Recent settlement outcomes
- GET /quote - Aggregator quote without signing
- GET /bot/status - Risk guard, inventory and executor state
- POST /bot/start, POST /bot/stop - Scheduler control
- GET /bot/audit - Recent scheduler decisions
- GET /health - Liveness

Configuration comes from the environment (see core.config.load_config).
No authentication (local network only).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from api.routes import bot, health, quote, trade

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    runtime = getattr(app.state, "runtime", None)
    if runtime is not None:
        await runtime.close()
        logger.info("Runtime closed")


app = FastAPI(
    title="DEX Settlement Bot API",
    description="Risk-gated DEX swap settlement and bot control",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(trade.router)
app.include_router(quote.router)
app.include_router(bot.router)
app.include_router(health.router)


@app.exception_handler(Exception)
async def global_exception_handler(_request, exc):
    """Global exception handler to ensure consistent error responses."""
    logger.exception("Unhandled API error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": "An unexpected error occurred. Check server logs for full trace.",
        },
    )
