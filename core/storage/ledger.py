"""Settlement ledger: an append-only record of every settlement outcome."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Optional, Protocol, Sequence

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    desc,
    select,
)

from core.types import SettlementRecord

logger = logging.getLogger(__name__)


class SettlementLedger(Protocol):
    async def append(self, record: SettlementRecord) -> None:
        ...

    async def recent(self, limit: int = 50) -> Sequence[SettlementRecord]:
        """Newest first."""
        ...


class InMemorySettlementLedger:
    """Bounded in-process ledger (default when no database is configured)."""

    def __init__(self, maxlen: int = 1000) -> None:
        self._records: deque[SettlementRecord] = deque(maxlen=maxlen)

    async def append(self, record: SettlementRecord) -> None:
        self._records.append(record)

    async def recent(self, limit: int = 50) -> Sequence[SettlementRecord]:
        items = list(self._records)[-limit:] if limit > 0 else []
        return list(reversed(items))

    def __len__(self) -> int:
        return len(self._records)


metadata = MetaData()

settlement_records = Table(
    "settlement_records",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("chain_id", Integer, nullable=False),
    Column("src_symbol", String(32), nullable=False),
    Column("dest_symbol", String(32), nullable=False),
    Column("lane", String(1), nullable=True),
    # uint256 amounts do not fit BIGINT; stored as decimal text
    Column("amount_base_units", String(80), nullable=False),
    Column("ok", Boolean, nullable=False),
    Column("tx_hash", String(80), nullable=True),
    Column("error_code", String(64), nullable=True),
    Column("error", String(255), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("created_ts", BigInteger, nullable=False),
)


class SqlSettlementLedger:
    """SQLAlchemy Core ledger.

    SQLAlchemy engines are synchronous; calls run in a worker thread so the
    event loop is never blocked on the database.
    """

    def __init__(self, database_url: str, *, create_tables: bool = True) -> None:
        self._database_url = database_url
        self._engine: Any | None = None
        self._create_tables = create_tables

    def _get_engine(self) -> Any:
        if self._engine is None:
            # Do not log the URL (it may contain secrets).
            self._engine = create_engine(self._database_url, echo=False, pool_pre_ping=True)
            if self._create_tables:
                metadata.create_all(self._engine)
        return self._engine

    def _append_sync(self, record: SettlementRecord) -> None:
        engine = self._get_engine()
        with engine.begin() as conn:
            conn.execute(
                settlement_records.insert().values(
                    chain_id=record.chain_id,
                    src_symbol=record.src_symbol,
                    dest_symbol=record.dest_symbol,
                    lane=record.lane,
                    amount_base_units=str(record.amount_base_units),
                    ok=record.ok,
                    tx_hash=record.tx_hash,
                    error_code=record.error_code,
                    error=(record.error or "")[:255] or None,
                    created_at=record.created_at,
                    created_ts=int(record.created_at.timestamp() * 1000),
                )
            )

    def _recent_sync(self, limit: int) -> list[SettlementRecord]:
        engine = self._get_engine()
        stmt = select(settlement_records).order_by(desc(settlement_records.c.id)).limit(limit)
        with engine.begin() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [
            SettlementRecord(
                chain_id=row["chain_id"],
                src_symbol=row["src_symbol"],
                dest_symbol=row["dest_symbol"],
                lane=row["lane"],
                amount_base_units=int(row["amount_base_units"]),
                ok=bool(row["ok"]),
                tx_hash=row["tx_hash"],
                error_code=row["error_code"],
                error=row["error"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def append(self, record: SettlementRecord) -> None:
        await asyncio.to_thread(self._append_sync, record)

    async def recent(self, limit: int = 50) -> Sequence[SettlementRecord]:
        return await asyncio.to_thread(self._recent_sync, limit)


def build_ledger(database_url: Optional[str]) -> SettlementLedger:
    if database_url:
        logger.info("Using SQL settlement ledger")
        return SqlSettlementLedger(database_url)
    return InMemorySettlementLedger()


def record_to_dict(record: SettlementRecord) -> dict[str, Any]:
    return {
        "chainId": record.chain_id,
        "src": record.src_symbol,
        "dest": record.dest_symbol,
        "lane": record.lane,
        "amountWei": str(record.amount_base_units),
        "ok": record.ok,
        "txHash": record.tx_hash,
        "errorCode": record.error_code,
        "error": record.error,
        "createdAt": record.created_at.isoformat(),
    }
