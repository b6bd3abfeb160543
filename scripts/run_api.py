#!/usr/bin/env python3
"""Run the settlement API server.

Usage:
    python scripts/run_api.py [--host HOST] [--port PORT]

Environment:
    TRADER_PRIVATE_KEY / EXECUTION_PRIVATE_KEY - Signing key (required to settle)
    TRADER_ADDRESS - Expected signer address (optional)
    RPC_URL_BSC, RPC_URL_POLYGON - Per-chain RPC endpoints
    KV_REST_API_URL, KV_REST_API_TOKEN - Shared cooldown store (optional)
    DATABASE_URL - Settlement ledger database (optional, in-memory otherwise)

Examples:
    python scripts/run_api.py
    python scripts/run_api.py --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

# Ensure imports work when invoked as a script
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

import uvicorn  # noqa: E402


def main() -> int:
    """Run the API server."""
    parser = argparse.ArgumentParser(description="Run the FastAPI settlement server.")
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger("run_api")

    if not (os.environ.get("TRADER_PRIVATE_KEY") or os.environ.get("EXECUTION_PRIVATE_KEY")):
        logger.warning("No signing key configured: POST /trade will answer MISSING_SIGNING_KEY")

    logger.info("Starting settlement API on %s:%s", args.host, args.port)

    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )

    return 0


if __name__ == "__main__":
    sys.exit(main())
