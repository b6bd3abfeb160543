#!/usr/bin/env python3
"""Run the bot loop headless (no HTTP server).

Usage:
    python scripts/run_bot.py [--iterations N] [--interval SECONDS]

Stops on Ctrl+C after draining the executor queues.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Ensure imports work when invoked as a script
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from core.config import load_config  # noqa: E402
from core.runtime import build_runtime  # noqa: E402

logger = logging.getLogger("run_bot")


async def _run(iterations: int | None, interval: float | None) -> None:
    config = load_config()
    if interval is not None:
        config = replace(config, loop_interval_seconds=interval)
    runtime = build_runtime(config)
    try:
        await runtime.bot.run(max_iterations=iterations)
        await runtime.executor.join()
    finally:
        await runtime.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the scan/gate/settle loop without the API.")
    parser.add_argument("--iterations", type=int, default=None, help="Stop after N ticks (default: run forever)")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between ticks (default: 3.5)")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        asyncio.run(_run(args.iterations, args.interval))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
