"""Runtime configuration for the scanner, risk guard, executor and settlement engine.

All values have safe defaults except secrets. Secrets (signing key, cooldown
store token, database URL) are read from the environment and never logged.
Missing secrets are not an error here; the settlement engine fails closed with
an explicit configuration error code when it needs them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional

from core.settlement.retry import RetryPolicy
from core.types import Lane


def _env_bool(name: str, default: bool, env: Mapping[str, str]) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_first(env: Mapping[str, str], *names: str) -> str:
    for name in names:
        value = env.get(name, "").strip()
        if value:
            return value
    return ""


@dataclass(frozen=True)
class LaneConfig:
    """Sizing and threshold rules for one strategy lane.

    Percent fields are expressed in percent units (3.0 == 3%).
    """

    lane: Lane
    min_pnl_pct: Decimal
    size_pct: Decimal
    min_usd: Decimal
    max_usd: Decimal
    mev_margin_pct: Decimal
    failure_buffer_pct: Decimal


LANE_A = LaneConfig(
    lane="A",
    min_pnl_pct=Decimal("0.25"),
    size_pct=Decimal("3.0"),
    min_usd=Decimal("15"),
    max_usd=Decimal("120"),
    mev_margin_pct=Decimal("0.15"),
    failure_buffer_pct=Decimal("0.10"),
)

LANE_B = LaneConfig(
    lane="B",
    min_pnl_pct=Decimal("0.90"),
    size_pct=Decimal("1.5"),
    min_usd=Decimal("10"),
    max_usd=Decimal("60"),
    mev_margin_pct=Decimal("0.60"),
    failure_buffer_pct=Decimal("0.10"),
)


@dataclass(frozen=True)
class PairConfig:
    """A candidate pair the scanner sweeps every tick."""

    lane: Lane
    chain_id: int
    src_symbol: str
    dest_symbol: str
    slippage_bps: int


BSC_CHAIN_ID = 56
POLYGON_CHAIN_ID = 137

DEFAULT_PAIRS: tuple[PairConfig, ...] = (
    PairConfig(lane="A", chain_id=BSC_CHAIN_ID, src_symbol="BNB", dest_symbol="USDT", slippage_bps=40),
    PairConfig(lane="A", chain_id=BSC_CHAIN_ID, src_symbol="BNB", dest_symbol="USD1", slippage_bps=60),
    PairConfig(lane="B", chain_id=BSC_CHAIN_ID, src_symbol="WLFI", dest_symbol="USD1", slippage_bps=150),
    PairConfig(lane="B", chain_id=BSC_CHAIN_ID, src_symbol="ASTER", dest_symbol="USD1", slippage_bps=150),
)


@dataclass(frozen=True)
class RiskConfig:
    """Circuit-breaker thresholds for the risk guard."""

    win_loss_samples: int = 10  # N most recent results for the drawdown sum
    drawdown_threshold_pct: Decimal = Decimal("-1.0")  # vs base capital
    base_capital_usd: Decimal = Decimal("5000")
    drawdown_cooldown_seconds: float = 30 * 60
    lane_b_stop_losses: int = 3  # M consecutive lane-B failures
    lane_b_cooldown_seconds: float = 60 * 60
    history_size: int = 50


@dataclass(frozen=True)
class SettlementConfig:
    """Settlement boundary configuration.

    `private_key`, `kv_rest_token` are secrets: do not log them.
    """

    private_key: str = ""
    trader_address: str = ""
    rpc_urls: Mapping[int, str] = field(default_factory=dict)
    kv_rest_url: str = ""
    kv_rest_token: str = ""

    aggregator_url: str = "https://api.paraswap.io"
    enabled_chains: frozenset[int] = frozenset({BSC_CHAIN_ID})

    cooldown_seconds: int = 30
    native_gas_reserve_wei: int = 5 * 10**15  # 0.005 native units
    balance_haircut: Decimal = Decimal("0.995")
    min_stable_notional_usd: Decimal = Decimal("2")
    min_quote_notional_usd: Decimal = Decimal("1")
    default_slippage_bps: int = 100
    gas_limit_multiplier: Decimal = Decimal("1.5")

    http_timeout_seconds: float = 10.0
    rpc_timeout_seconds: float = 30.0
    receipt_timeout_seconds: float = 120.0
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    def rpc_url(self, chain_id: int) -> str:
        return self.rpc_urls.get(chain_id, "")


@dataclass(frozen=True)
class BotConfig:
    """Scheduler and executor configuration."""

    loop_interval_seconds: float = 3.5
    max_parallel_quotes: int = 6
    queue_capacity: int = 5
    settlement_timeout_seconds: float = 180.0
    seed_capital_usd: Decimal = Decimal("5000")
    default_gas_price_gwei: Decimal = Decimal("1")
    lanes: Mapping[str, LaneConfig] = field(default_factory=lambda: {"A": LANE_A, "B": LANE_B})
    pairs: tuple[PairConfig, ...] = DEFAULT_PAIRS
    risk: RiskConfig = field(default_factory=RiskConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    database_url: Optional[str] = None


def load_config(env: Optional[Mapping[str, str]] = None) -> BotConfig:
    """Build the runtime configuration from environment variables."""
    env = os.environ if env is None else env

    enabled_chains = set()
    if _env_bool("ENABLE_BSC", True, env):
        enabled_chains.add(BSC_CHAIN_ID)
    if _env_bool("ENABLE_POLYGON", False, env):
        enabled_chains.add(POLYGON_CHAIN_ID)

    rpc_urls: dict[int, str] = {}
    bsc_rpc = _env_first(env, "RPC_URL_BSC")
    polygon_rpc = _env_first(env, "RPC_URL_POLYGON")
    if bsc_rpc:
        rpc_urls[BSC_CHAIN_ID] = bsc_rpc
    if polygon_rpc:
        rpc_urls[POLYGON_CHAIN_ID] = polygon_rpc

    settlement = SettlementConfig(
        private_key=_env_first(env, "TRADER_PRIVATE_KEY", "EXECUTION_PRIVATE_KEY"),
        trader_address=_env_first(env, "TRADER_ADDRESS"),
        rpc_urls=rpc_urls,
        kv_rest_url=_env_first(env, "KV_REST_API_URL", "UPSTASH_REDIS_REST_URL"),
        kv_rest_token=_env_first(env, "KV_REST_API_TOKEN", "UPSTASH_REDIS_REST_TOKEN"),
        aggregator_url=_env_first(env, "PARASWAP_API_URL") or "https://api.paraswap.io",
        enabled_chains=frozenset(enabled_chains),
    )

    loop_ms = _env_first(env, "BOT_LOOP_MS")
    return BotConfig(
        loop_interval_seconds=int(loop_ms) / 1000 if loop_ms else 3.5,
        settlement=settlement,
        database_url=_env_first(env, "DATABASE_URL") or None,
    )
