"""Inventory manager - capital tracking and trade sizing.

Trade size compounds with realized P&L: each lane risks a fixed percentage
of (seed capital + realized P&L), clamped to the lane's USD bounds.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Mapping, Optional

from core.config import LANE_A, LANE_B, LaneConfig
from core.execution.interfaces import ChainClient
from core.tokens.registry import TokenRegistry
from core.types import InventoryStats

logger = logging.getLogger(__name__)


class InventoryManager:
    """Tracks capital, realized P&L and last-seen on-chain balances.

    Not thread-safe; intended to be owned by a single event loop.
    """

    def __init__(
        self,
        *,
        seed_capital_usd: Decimal = Decimal("5000"),
        lanes: Optional[Mapping[str, LaneConfig]] = None,
        registry: Optional[TokenRegistry] = None,
        chain: Optional[ChainClient] = None,
        native_gas_reserve_wei: int = 0,
    ) -> None:
        """Initialize inventory manager.

        Args:
            seed_capital_usd: Starting capital used as the sizing base
            lanes: Lane configs keyed by lane name
            registry: Token registry used to resolve symbols for balance reads
            chain: Chain client for live balance reads (None = always insufficient)
            native_gas_reserve_wei: Native balance held back for gas
        """
        self._stats = InventoryStats(total_usd=seed_capital_usd)
        self._lanes = dict(lanes) if lanes is not None else {"A": LANE_A, "B": LANE_B}
        self._registry = registry or TokenRegistry()
        self._chain = chain
        self._gas_reserve = native_gas_reserve_wei

    # ========== Sizing ==========

    def calculate_trade_size(self, lane: str) -> Decimal:
        """Return the USD notional for the next trade on `lane`.

        Raises:
            ValueError: If the lane is unknown
        """
        try:
            cfg = self._lanes[lane]
        except KeyError:
            raise ValueError(f"Unknown lane: {lane}") from None

        capital = self._stats.total_usd + self._stats.realized_pnl
        size = capital * cfg.size_pct / Decimal("100")
        return min(max(size, cfg.min_usd), cfg.max_usd)

    def add_realized_pnl(self, pnl_usd: Decimal) -> None:
        self._stats.realized_pnl += Decimal(pnl_usd)
        logger.debug("Realized P&L %+.4f USD, cumulative %.4f", pnl_usd, self._stats.realized_pnl)

    # ========== Balances ==========

    async def is_balance_sufficient(self, chain_id: int, symbol: str, amount: int) -> bool:
        """Check the signer's live balance against `amount` base units.

        Native assets must cover `amount` plus the gas reserve. Any failure
        (unknown token, no signer, RPC error) reports insufficient.
        """
        if amount <= 0:
            return False
        token = self._registry.resolve(chain_id, symbol)
        if token is None or self._chain is None:
            return False
        owner = self._chain.signer_address()
        if not owner:
            return False

        try:
            if token.is_native:
                balance = await self._chain.get_native_balance(chain_id, owner)
            else:
                balance = await self._chain.get_token_balance(chain_id, token.address, owner)
        except Exception as e:
            logger.warning("Balance read failed for %s on chain %s: %s", token.symbol, chain_id, e)
            return False

        self._stats.balances.setdefault(chain_id, {})[token.symbol] = Decimal(balance) / (Decimal(10) ** token.decimals)

        required = amount + self._gas_reserve if token.is_native else amount
        return balance >= required

    def get_stats(self) -> InventoryStats:
        return InventoryStats(
            total_usd=self._stats.total_usd,
            balances={chain: dict(by_symbol) for chain, by_symbol in self._stats.balances.items()},
            realized_pnl=self._stats.realized_pnl,
        )
