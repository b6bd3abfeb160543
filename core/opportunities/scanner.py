"""Opportunity scanner: quotes every configured pair and keeps the ones that clear their lane threshold."""

from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Optional

from core.config import LaneConfig, PairConfig
from core.execution.interfaces import ChainClient, PriceProvider, QuoteService
from core.fees.model import SwapCostModel, gas_cost_usd
from core.opportunities.evaluator import evaluate_opportunity
from core.portfolio.inventory import InventoryManager
from core.tokens.registry import TokenRegistry, is_stablecoin
from core.types import Opportunity, Quote

logger = logging.getLogger(__name__)

REFERENCE_STABLES: dict[int, str] = {56: "USDT", 137: "USDC"}


class QuotePriceProvider:
    """USD price of a token from a reference quote of one whole unit.

    Stablecoins are priced at $1. Prices are cached for `ttl_seconds`.
    """

    def __init__(
        self,
        quotes: QuoteService,
        registry: TokenRegistry,
        *,
        reference_stables: Optional[Mapping[int, str]] = None,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._quotes = quotes
        self._registry = registry
        self._reference = dict(reference_stables or REFERENCE_STABLES)
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: dict[tuple[int, str], tuple[Decimal, float]] = {}

    async def get_usd_price(self, chain_id: int, symbol: str) -> Decimal:
        if is_stablecoin(symbol):
            return Decimal("1")

        key = (chain_id, symbol.upper())
        cached = self._cache.get(key)
        now = self._clock()
        if cached is not None and now - cached[1] < self._ttl:
            return cached[0]

        token = self._registry.resolve(chain_id, symbol)
        ref_symbol = self._reference.get(chain_id)
        ref = self._registry.resolve(chain_id, ref_symbol) if ref_symbol else None
        if token is None or ref is None:
            raise ValueError(f"cannot price {symbol} on chain {chain_id}")

        quote = await self._quotes.get_quote(chain_id=chain_id, src=token, dest=ref, amount=10**token.decimals)
        price = quote.src_usd if quote.src_usd > 0 else quote.dest_usd
        if price <= 0:
            raise ValueError(f"reference quote for {symbol} returned no USD value")
        self._cache[key] = (price, now)
        return price


class OpportunityScanner:
    """Produces ranked opportunities for one tick.

    Quotes are fanned out concurrently, bounded by `max_parallel_quotes`.
    A failure or timeout on one pair is logged and that pair is skipped.
    """

    def __init__(
        self,
        *,
        pairs: Iterable[PairConfig],
        lanes: Mapping[str, LaneConfig],
        inventory: InventoryManager,
        quotes: QuoteService,
        prices: PriceProvider,
        registry: TokenRegistry,
        enabled_chains: Iterable[int],
        chain: Optional[ChainClient] = None,
        max_parallel_quotes: int = 6,
        quote_timeout: float = 10.0,
        default_gas_price_wei: int = 10**9,
    ) -> None:
        self.pairs = tuple(pairs)
        self.lanes = dict(lanes)
        self.inventory = inventory
        self.quotes = quotes
        self.prices = prices
        self.registry = registry
        self.enabled_chains = frozenset(enabled_chains)
        self.chain = chain
        self.max_parallel_quotes = max(1, max_parallel_quotes)
        self.quote_timeout = quote_timeout
        self.default_gas_price_wei = default_gas_price_wei

    async def scan(self) -> list[Opportunity]:
        pairs = [p for p in self.pairs if p.chain_id in self.enabled_chains]
        semaphore = asyncio.Semaphore(self.max_parallel_quotes)

        async def _bounded(pair: PairConfig) -> Optional[Opportunity]:
            async with semaphore:
                try:
                    return await asyncio.wait_for(self._evaluate_pair(pair), timeout=self.quote_timeout)
                except asyncio.TimeoutError:
                    logger.warning("Quote timed out for %s->%s on %s", pair.src_symbol, pair.dest_symbol, pair.chain_id)
                except Exception as e:
                    logger.warning(
                        "Skipping %s->%s on %s: %s", pair.src_symbol, pair.dest_symbol, pair.chain_id, e
                    )
                return None

        results = await asyncio.gather(*(_bounded(p) for p in pairs))
        opportunities = [o for o in results if o is not None]
        opportunities.sort(key=lambda o: o.expected_pnl_pct, reverse=True)
        logger.info("Scan complete: %d/%d pairs passed", len(opportunities), len(pairs))
        return opportunities

    async def _evaluate_pair(self, pair: PairConfig) -> Optional[Opportunity]:
        src = self.registry.resolve(pair.chain_id, pair.src_symbol)
        dest = self.registry.resolve(pair.chain_id, pair.dest_symbol)
        if src is None or dest is None:
            logger.warning("Pair %s->%s not in registry for chain %s", pair.src_symbol, pair.dest_symbol, pair.chain_id)
            return None
        lane_cfg = self.lanes[pair.lane]

        size_usd = self.inventory.calculate_trade_size(pair.lane)
        price = await self.prices.get_usd_price(pair.chain_id, src.symbol)
        if price <= 0:
            return None
        amount = int(size_usd / price * (Decimal(10) ** src.decimals))
        if amount <= 0:
            return None

        quote = await self.quotes.get_quote(chain_id=pair.chain_id, src=src, dest=dest, amount=amount)
        if quote.src_usd <= 0:
            logger.debug("Quote for %s->%s has no USD valuation", src.symbol, dest.symbol)
            return None

        gas_usd = await self._gas_cost_usd(pair.chain_id, quote)
        result = evaluate_opportunity(
            src_usd=quote.src_usd,
            dest_usd=quote.dest_usd,
            gas_cost_usd=gas_usd,
            cost_model=SwapCostModel(lane=lane_cfg, slippage_bps=pair.slippage_bps),
        )
        if result.decision != "PASS":
            logger.debug("%s->%s lane %s: %s", src.symbol, dest.symbol, pair.lane, "; ".join(result.reasons))
            return None

        return Opportunity(
            lane=pair.lane,
            chain_id=pair.chain_id,
            src_symbol=src.symbol,
            dest_symbol=dest.symbol,
            amount_base_units=amount,
            expected_pnl_pct=result.expected_pnl_pct,
            quote=quote,
            notional_usd=quote.src_usd,
            gas_cost_usd=gas_usd,
        )

    async def _gas_cost_usd(self, chain_id: int, quote: Quote) -> Decimal:
        if quote.gas_cost_usd > 0:
            return quote.gas_cost_usd
        if quote.gas_estimate <= 0:
            return Decimal("0")

        native = self.registry.native_token(chain_id)
        if native is None:
            return Decimal("0")
        gas_price = self.default_gas_price_wei
        if self.chain is not None:
            try:
                gas_price = await self.chain.get_gas_price(chain_id)
            except Exception as e:
                logger.debug("Gas price read failed on %s, using default: %s", chain_id, e)
        native_usd = await self.prices.get_usd_price(chain_id, native.symbol)
        return gas_cost_usd(quote.gas_estimate, gas_price, native_usd)
