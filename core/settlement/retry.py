"""Retry policy for aggregator calls (quote and build)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from core.settlement.errors import CONFLICTING_RISK_PARAMS, QuoteUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Uniform retry rule.

    With the defaults a failed call is retried exactly once, and the retry is
    sent with the relaxed parameter set. Without relaxed params only transient
    failures are retried, since resending the same request cannot change a
    permanent rejection.
    """

    max_attempts: int = 2
    backoff_seconds: float = 0.0
    relaxed_params_on_retry: bool = True

    def should_retry(self, attempt: int, error: QuoteUnavailableError) -> bool:
        if attempt >= self.max_attempts:
            return False
        if error.code == CONFLICTING_RISK_PARAMS:
            return False
        return self.relaxed_params_on_retry or error.is_transient


async def run_with_retry(
    policy: RetryPolicy,
    operation: Callable[[bool], Awaitable[T]],
    label: str,
) -> T:
    """Run `operation(relaxed)` under `policy`.

    The first attempt always runs with `relaxed=False`; later attempts pass
    `relaxed=policy.relaxed_params_on_retry`.
    """
    attempt = 0
    while True:
        attempt += 1
        relaxed = attempt > 1 and policy.relaxed_params_on_retry
        try:
            return await operation(relaxed)
        except QuoteUnavailableError as e:
            if not policy.should_retry(attempt, e):
                raise
            logger.warning(
                "%s failed (attempt %d/%d): %s. Retrying%s",
                label,
                attempt,
                policy.max_attempts,
                e,
                " with relaxed params" if policy.relaxed_params_on_retry else "",
            )
            if policy.backoff_seconds > 0:
                await asyncio.sleep(policy.backoff_seconds * attempt)
