"""Wires one complete bot instance from a BotConfig.

Every collaborator is constructed here and handed down explicitly; nothing
in the pipeline reaches for a process-wide instance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from core.automation.audit import AuditLogger
from core.automation.bot_loop import BotLoop
from core.chain.client import Web3ChainClient
from core.config import BotConfig, load_config
from core.execution.executor import Executor
from core.execution.interfaces import ChainClient, QuoteService, TransactionBuilder
from core.market_data.paraswap import ParaSwapClient
from core.opportunities.scanner import OpportunityScanner, QuotePriceProvider
from core.portfolio.inventory import InventoryManager
from core.risk.guard import RiskGuard
from core.settlement.cooldown import CooldownStore, build_cooldown_store
from core.settlement.engine import SettlementEngine
from core.storage.ledger import SettlementLedger, build_ledger
from core.tokens.registry import TokenRegistry

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    config: BotConfig
    registry: TokenRegistry
    quotes: QuoteService
    chain: ChainClient
    engine: SettlementEngine
    inventory: InventoryManager
    risk_guard: RiskGuard
    executor: Executor
    scanner: OpportunityScanner
    bot: BotLoop
    ledger: SettlementLedger
    audit_logger: AuditLogger

    async def close(self) -> None:
        await self.bot.stop()
        close = getattr(self.quotes, "close", None)
        if close is not None:
            await close()


def build_runtime(
    config: Optional[BotConfig] = None,
    *,
    quotes: Optional[QuoteService] = None,
    builder: Optional[TransactionBuilder] = None,
    chain: Optional[ChainClient] = None,
    cooldown_store: Optional[CooldownStore] = None,
    ledger: Optional[SettlementLedger] = None,
) -> Runtime:
    """Assemble scanner, guard, inventory, executor, engine and bot loop.

    Collaborators may be overridden (tests pass fakes); the rest are built
    from `config`, which defaults to `load_config()`.
    """
    config = config or load_config()
    settlement = config.settlement
    registry = TokenRegistry()

    if quotes is None:
        paraswap = ParaSwapClient(base_url=settlement.aggregator_url, timeout=settlement.http_timeout_seconds)
        quotes = paraswap
        builder = builder or paraswap
    elif builder is None:
        builder = quotes  # type: ignore[assignment]

    chain = chain or Web3ChainClient(
        settlement.rpc_urls,
        settlement.private_key,
        rpc_timeout=settlement.rpc_timeout_seconds,
    )
    cooldown_store = cooldown_store or build_cooldown_store(
        settlement.kv_rest_url,
        settlement.kv_rest_token,
        timeout=settlement.http_timeout_seconds,
    )
    ledger = ledger or build_ledger(config.database_url)
    audit_logger = AuditLogger()

    engine = SettlementEngine(
        config=settlement,
        registry=registry,
        quotes=quotes,
        builder=builder,
        chain=chain,
        cooldown_store=cooldown_store,
        ledger=ledger,
    )
    inventory = InventoryManager(
        seed_capital_usd=config.seed_capital_usd,
        lanes=config.lanes,
        registry=registry,
        chain=chain,
        native_gas_reserve_wei=settlement.native_gas_reserve_wei,
    )
    risk_guard = RiskGuard(config.risk)
    executor = Executor(
        settler=engine,
        risk_guard=risk_guard,
        inventory=inventory,
        queue_capacity=config.queue_capacity,
        settlement_timeout=config.settlement_timeout_seconds,
        audit_logger=audit_logger,
    )
    scanner = OpportunityScanner(
        pairs=config.pairs,
        lanes=config.lanes,
        inventory=inventory,
        quotes=quotes,
        prices=QuotePriceProvider(quotes, registry),
        registry=registry,
        enabled_chains=settlement.enabled_chains,
        chain=chain,
        max_parallel_quotes=config.max_parallel_quotes,
        quote_timeout=settlement.http_timeout_seconds,
        default_gas_price_wei=int(config.default_gas_price_gwei * Decimal(10**9)),
    )
    bot = BotLoop(
        scanner=scanner,
        risk_guard=risk_guard,
        inventory=inventory,
        executor=executor,
        interval_seconds=config.loop_interval_seconds,
        audit_logger=audit_logger,
    )
    logger.info(
        "Runtime built: chains=%s pairs=%d interval=%.1fs",
        sorted(settlement.enabled_chains),
        len(config.pairs),
        config.loop_interval_seconds,
    )
    return Runtime(
        config=config,
        registry=registry,
        quotes=quotes,
        chain=chain,
        engine=engine,
        inventory=inventory,
        risk_guard=risk_guard,
        executor=executor,
        scanner=scanner,
        bot=bot,
        ledger=ledger,
        audit_logger=audit_logger,
    )
