"""Market data: DEX aggregator quotes and transaction builds."""

from core.market_data.paraswap import ParaSwapClient, parse_price_route, parse_transaction

__all__ = [
    "ParaSwapClient",
    "parse_price_route",
    "parse_transaction",
]
