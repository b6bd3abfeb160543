"""Portfolio module.

Capital tracking, compounding trade sizing and live balance checks.
"""

from .inventory import InventoryManager

__all__ = [
    "InventoryManager",
]
