"""Settlement error taxonomy.

Every pipeline step raises a `SettlementError` subclass carrying a stable
machine-readable code. The engine boundary turns these into a structured
`SettlementResult`; nothing here is ever raised to an HTTP caller.
"""

from __future__ import annotations

from typing import Optional

import httpx

# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

RATE_LIMITED = "RATE_LIMITED"
UNSUPPORTED_CHAIN = "UNSUPPORTED_CHAIN"
UNSUPPORTED_TOKEN = "UNSUPPORTED_TOKEN"
IDENTICAL_TOKENS = "IDENTICAL_TOKENS"
INVALID_AMOUNT = "INVALID_AMOUNT"
MISSING_SIGNING_KEY = "MISSING_SIGNING_KEY"
MISSING_RPC_URL = "MISSING_RPC_URL"
SIGNER_ADDRESS_MISMATCH = "SIGNER_ADDRESS_MISMATCH"
INSUFFICIENT_NATIVE_BALANCE = "INSUFFICIENT_NATIVE_BALANCE"
INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
BELOW_MIN_NOTIONAL = "BELOW_MIN_NOTIONAL"
QUOTE_UNAVAILABLE = "QUOTE_UNAVAILABLE"
QUOTE_BELOW_FLOOR = "QUOTE_BELOW_FLOOR"
BUILD_FAILED = "BUILD_FAILED"
CONFLICTING_RISK_PARAMS = "CONFLICTING_RISK_PARAMS"
ON_CHAIN_FAILURE = "ON_CHAIN_FAILURE"
INTERNAL_ERROR = "INTERNAL_ERROR"

DETAIL_LIMIT = 200


def truncate(text: object, limit: int = DETAIL_LIMIT) -> str:
    """Shorten diagnostic text before it leaves the process."""
    value = str(text)
    if len(value) <= limit:
        return value
    return value[:limit]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class SettlementError(Exception):
    """Base class for all settlement failures."""

    code: str = INTERNAL_ERROR
    is_transient: bool = False

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = truncate(details) if details else None


class ConfigurationError(SettlementError):
    """Missing or invalid operator configuration. Never retried."""


class ValidationError(SettlementError):
    """Malformed or unsupported request."""


class RateLimitedError(SettlementError):
    code = RATE_LIMITED


class InsufficientBalanceError(SettlementError):
    code = INSUFFICIENT_BALANCE


class QuoteUnavailableError(SettlementError):
    code = QUOTE_UNAVAILABLE

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
        is_transient: bool = True,
        status_code: int | None = None,
    ):
        super().__init__(message, code=code, details=details)
        self.is_transient = is_transient
        self.status_code = status_code


class BuildFailedError(QuoteUnavailableError):
    code = BUILD_FAILED


class OnChainFailureError(SettlementError):
    code = ON_CHAIN_FAILURE


# ---------------------------------------------------------------------------
# HTTP classification
# ---------------------------------------------------------------------------


def is_transient_status(status_code: int) -> bool:
    """429 and 5xx are worth retrying; other 4xx are not."""
    if status_code == 429:
        return True
    return 500 <= status_code < 600


def classify_http_error(
    exc: Exception,
    error_cls: type[QuoteUnavailableError] = QuoteUnavailableError,
    context: str = "aggregator request",
) -> QuoteUnavailableError:
    """Map an httpx failure onto the aggregator error taxonomy.

    Args:
        exc: Exception raised by httpx (status, timeout or transport error)
        error_cls: QuoteUnavailableError or BuildFailedError
        context: Short label used in the message

    Returns:
        An error instance with `is_transient` set from the failure kind
    """
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        body = exc.response.text
        return error_cls(
            f"{context} failed with HTTP {status}",
            details=body,
            is_transient=is_transient_status(status),
            status_code=status,
        )
    if isinstance(exc, httpx.TimeoutException):
        return error_cls(f"{context} timed out", details=str(exc), is_transient=True)
    if isinstance(exc, httpx.HTTPError):
        return error_cls(f"{context} network error", details=str(exc), is_transient=True)
    return error_cls(f"{context} failed", details=str(exc), is_transient=False)
