"""ParaSwap aggregator client (quote + transaction build).

Responses are validated into `Quote` / `BuiltTransaction` before anything
else sees them; a payload missing a required field is treated as an
unavailable quote rather than passed along.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

import httpx

from core.settlement.errors import (
    CONFLICTING_RISK_PARAMS,
    BuildFailedError,
    QuoteUnavailableError,
    classify_http_error,
)
from core.types import BuiltTransaction, Quote, TokenInfo

logger = logging.getLogger(__name__)


def _to_int(value: Any, field_name: str, error_cls: type[QuoteUnavailableError]) -> int:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        raise error_cls(f"invalid {field_name} in aggregator response", is_transient=False) from None


def _to_decimal(value: Any, default: Optional[Decimal] = None) -> Decimal:
    if value is None or value == "":
        if default is None:
            raise QuoteUnavailableError("missing USD valuation in price route", is_transient=False)
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise QuoteUnavailableError(f"invalid USD valuation: {value!r}", is_transient=False) from None


def parse_price_route(route: Any) -> Quote:
    """Validate a raw `priceRoute` object into a Quote."""
    if not isinstance(route, Mapping):
        raise QuoteUnavailableError("aggregator response has no priceRoute", is_transient=False)

    src_amount = _to_int(route.get("srcAmount"), "srcAmount", QuoteUnavailableError)
    dest_amount = _to_int(route.get("destAmount"), "destAmount", QuoteUnavailableError)
    if dest_amount <= 0:
        raise QuoteUnavailableError("aggregator returned zero destAmount", is_transient=False)

    gas_cost = route.get("gasCost")
    return Quote(
        price_route=dict(route),
        src_amount=src_amount,
        dest_amount=dest_amount,
        src_usd=_to_decimal(route.get("srcUSD")),
        dest_usd=_to_decimal(route.get("destUSD")),
        gas_estimate=_to_int(gas_cost, "gasCost", QuoteUnavailableError) if gas_cost not in (None, "") else 0,
        gas_cost_usd=_to_decimal(route.get("gasCostUSD"), default=Decimal("0")),
        token_transfer_proxy=route.get("tokenTransferProxy") or None,
    )


def parse_transaction(payload: Any) -> BuiltTransaction:
    if not isinstance(payload, Mapping):
        raise BuildFailedError("build response is not an object", is_transient=False)
    to = payload.get("to")
    data = payload.get("data")
    if not to or not data:
        raise BuildFailedError("build response missing to/data", details=str(payload), is_transient=False)
    gas = payload.get("gas")
    return BuiltTransaction(
        to=str(to),
        data=str(data),
        value=_to_int(payload.get("value") or 0, "value", BuildFailedError),
        gas=_to_int(gas, "gas", BuildFailedError) if gas not in (None, "") else None,
    )


class ParaSwapClient:
    """Async client for the ParaSwap v5 REST API.

    Implements both QuoteService and TransactionBuilder.
    """

    DEFAULT_BASE_URL = "https://api.paraswap.io"

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"Accept": "application/json", "User-Agent": "dexsettle/1.0"},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def get_quote(
        self,
        *,
        chain_id: int,
        src: TokenInfo,
        dest: TokenInfo,
        amount: int,
        relaxed: bool = False,
    ) -> Quote:
        params: dict[str, Any] = {
            "srcToken": src.address,
            "destToken": dest.address,
            "amount": str(amount),
            "network": chain_id,
            "side": "SELL",
            "srcDecimals": src.decimals,
            "destDecimals": dest.decimals,
        }
        if relaxed:
            params["ignoreBadUsdPrice"] = "true"

        try:
            response = await self._get_client().get(f"{self.base_url}/prices", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise classify_http_error(e, QuoteUnavailableError, "quote request") from e
        except ValueError as e:
            raise QuoteUnavailableError("quote response is not JSON", is_transient=True) from e

        if isinstance(payload, Mapping) and payload.get("error"):
            raise QuoteUnavailableError(f"aggregator rejected quote: {payload['error']}", is_transient=False)

        quote = parse_price_route(payload.get("priceRoute") if isinstance(payload, Mapping) else None)
        logger.debug(
            "Quote %s->%s on %s: src=%s dest=%s srcUSD=%s destUSD=%s",
            src.symbol,
            dest.symbol,
            chain_id,
            quote.src_amount,
            quote.dest_amount,
            quote.src_usd,
            quote.dest_usd,
        )
        return quote

    async def build(
        self,
        *,
        chain_id: int,
        src: TokenInfo,
        dest: TokenInfo,
        amount: int,
        quote: Quote,
        user_address: str,
        slippage_bps: Optional[int] = None,
        dest_amount: Optional[int] = None,
        relaxed: bool = False,
    ) -> BuiltTransaction:
        if slippage_bps is not None and dest_amount is not None:
            raise BuildFailedError(
                "slippage and destAmount cannot be combined",
                code=CONFLICTING_RISK_PARAMS,
                is_transient=False,
            )

        body: dict[str, Any] = {
            "srcToken": src.address,
            "destToken": dest.address,
            "srcAmount": str(amount),
            "srcDecimals": src.decimals,
            "destDecimals": dest.decimals,
            "userAddress": user_address,
            "priceRoute": dict(quote.price_route),
        }
        if slippage_bps is not None:
            body["slippage"] = int(slippage_bps)
        if dest_amount is not None:
            body["destAmount"] = str(dest_amount)

        params = {"ignoreChecks": "true", "ignoreGasEstimate": "true"} if relaxed else None

        try:
            response = await self._get_client().post(
                f"{self.base_url}/transactions/{chain_id}",
                params=params,
                json=body,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            text = e.response.text
            if "slippage" in text.lower() and "destamount" in text.lower():
                raise BuildFailedError(
                    "aggregator rejected combined slippage and destAmount",
                    code=CONFLICTING_RISK_PARAMS,
                    details=text,
                    is_transient=False,
                ) from e
            raise classify_http_error(e, BuildFailedError, "build request") from e
        except httpx.HTTPError as e:
            raise classify_http_error(e, BuildFailedError, "build request") from e
        except ValueError as e:
            raise BuildFailedError("build response is not JSON", is_transient=True) from e

        return parse_transaction(payload)
