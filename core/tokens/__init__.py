"""Token metadata for supported chains."""

from core.tokens.registry import CHAIN_NAMES, STABLECOINS, TokenRegistry, is_stablecoin, normalize_symbol

__all__ = ["CHAIN_NAMES", "STABLECOINS", "TokenRegistry", "is_stablecoin", "normalize_symbol"]
