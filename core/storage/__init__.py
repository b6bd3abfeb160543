"""Storage implementations.

The settlement ledger lives here: in-memory by default, SQLAlchemy-backed
when a database URL is configured.
"""

from .ledger import (
    InMemorySettlementLedger,
    SettlementLedger,
    SqlSettlementLedger,
    build_ledger,
    record_to_dict,
)

__all__ = [
    "InMemorySettlementLedger",
    "SettlementLedger",
    "SqlSettlementLedger",
    "build_ledger",
    "record_to_dict",
]
