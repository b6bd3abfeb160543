"""Static token registry for the supported chains.

Symbols are resolved case-insensitively, with a small alias table for legacy
tickers (ASTR -> ASTER, MATIC -> POL).
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from core.types import NATIVE_TOKEN_ADDRESS, TokenInfo

logger = logging.getLogger(__name__)

CHAIN_NAMES: dict[int, str] = {
    56: "BNB Chain",
    137: "Polygon",
}

# Stable assets are valued at $1 for minimum-notional checks.
STABLECOINS: frozenset[str] = frozenset({"USDT", "USDC", "DAI", "BUSD", "FDUSD", "TUSD", "USDP", "USD1"})

SYMBOL_ALIASES: dict[str, str] = {
    "ASTR": "ASTER",
    "MATIC": "POL",
    "WMATIC": "POL",
}

_DEFAULT_TOKENS: dict[int, dict[str, TokenInfo]] = {
    56: {
        "BNB": TokenInfo("BNB", NATIVE_TOKEN_ADDRESS, 18),
        "ETH": TokenInfo("ETH", "0x2170ed0880ac9a755fd29b2688956bd959f933f8", 18),
        "LINK": TokenInfo("LINK", "0xF8A0BF9cF54Bb92F17374d9e9A321E6a111a51bD", 18),
        "CAKE": TokenInfo("CAKE", "0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82", 18),
        "SHIB": TokenInfo("SHIB", "0x2859e4544c4bb03966803b044a93563bd2d0dd4d", 18),
        "USDT": TokenInfo("USDT", "0x55d398326f99059fF775485246999027B3197955", 18),
        "USDC": TokenInfo("USDC", "0x8ac76a51cc950d9822d68b83fe1ad97b32cd580d", 18),
        "USD1": TokenInfo("USD1", "0x8d0d000ee44948fc98c9b98a4fa4921476f08b0d", 18),
        "WLFI": TokenInfo("WLFI", "0x47474747477b199288bF72a1D702f7Fe0Fb1DEeA", 18),
        "ASTER": TokenInfo("ASTER", "0x000Ae314E2A2172a039B26378814C252734f556A", 18),
    },
    137: {
        "POL": TokenInfo("POL", NATIVE_TOKEN_ADDRESS, 18),
        "USDT": TokenInfo("USDT", "0xc2132D05D31c914a87C6611C10748AEb04B58e8F", 6),
        "USDC": TokenInfo("USDC", "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359", 6),
    },
}


def normalize_symbol(symbol: str) -> str:
    key = (symbol or "").strip().upper()
    return SYMBOL_ALIASES.get(key, key)


def is_stablecoin(symbol: str) -> bool:
    return normalize_symbol(symbol) in STABLECOINS


class TokenRegistry:
    """Maps (chain_id, symbol) to token metadata."""

    def __init__(self, tokens: Optional[Mapping[int, Mapping[str, TokenInfo]]] = None) -> None:
        source = _DEFAULT_TOKENS if tokens is None else tokens
        self._tokens: dict[int, dict[str, TokenInfo]] = {
            chain_id: {normalize_symbol(sym): info for sym, info in by_symbol.items()}
            for chain_id, by_symbol in source.items()
        }

    def is_supported_chain(self, chain_id: int) -> bool:
        return chain_id in self._tokens

    def resolve(self, chain_id: int, symbol: str) -> Optional[TokenInfo]:
        """Return token metadata, or None when the chain or symbol is unknown."""
        by_symbol = self._tokens.get(chain_id)
        if by_symbol is None:
            return None
        return by_symbol.get(normalize_symbol(symbol))

    def native_token(self, chain_id: int) -> Optional[TokenInfo]:
        for info in self._tokens.get(chain_id, {}).values():
            if info.is_native:
                return info
        return None
