"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from core.runtime import Runtime, build_runtime


def get_runtime(request: Request) -> Runtime:
    """Return the app's Runtime, building it from the environment on first use."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        runtime = build_runtime()
        request.app.state.runtime = runtime
    return runtime
