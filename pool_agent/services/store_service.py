"""
Store service: settlement lookups and batched upserts.

Upserts are split into fixed-size batches written concurrently, each in its
own session. A failing batch is logged and reported; the others still commit.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from pool_agent.core.logging import get_logger
from pool_agent.models.models import Base, ProcessedPost

logger = get_logger(__name__)

# Settlement markers: an upsert carrying a blank value keeps the stored one
STICKY_COLUMNS = ("transaction_hash", "pool_id")


@dataclass(frozen=True)
class SettledRecord:
    id: str
    transaction_hash: str
    pool_id: str | None = None


@dataclass
class UpsertReport:
    written: int = 0
    failed_batches: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_batches


class PostStore:
    def __init__(self, engine: AsyncEngine, batch_size: int = 10) -> None:
        self.engine = engine
        self.batch_size = batch_size
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)

    async def find_settled(self, ids: list[str]) -> list[SettledRecord]:
        """Posts among `ids` that already carry a non-empty transaction hash."""
        if not ids:
            return []
        stmt = select(
            ProcessedPost.post_id, ProcessedPost.transaction_hash, ProcessedPost.pool_id
        ).where(
            ProcessedPost.post_id.in_(ids),
            ProcessedPost.transaction_hash.is_not(None),
            ProcessedPost.transaction_hash != "",
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()
        return [SettledRecord(id=row[0], transaction_hash=row[1], pool_id=row[2]) for row in rows]

    def _insert(self, table_name: str):
        table = Base.metadata.tables[table_name]
        if self.engine.dialect.name == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)

    async def _upsert_batch(
        self, index: int, table_name: str, batch: list[dict[str, Any]], conflict_key: str
    ) -> int:
        stmt = self._insert(table_name).values(batch)
        set_ = {column: stmt.excluded[column] for column in batch[0] if column != conflict_key}
        for column in STICKY_COLUMNS:
            if column in set_:
                set_[column] = func.coalesce(
                    func.nullif(stmt.excluded[column], ""), stmt.table.c[column]
                )
        stmt = stmt.on_conflict_do_update(index_elements=[conflict_key], set_=set_)
        async with self._sessions() as session:
            await session.execute(stmt)
            await session.commit()
        logger.info("upsert_batch_committed", table=table_name, batch=index + 1, records=len(batch))
        return len(batch)

    async def upsert_records(
        self, table_name: str, records: list[dict[str, Any]], conflict_key: str
    ) -> UpsertReport:
        report = UpsertReport()
        if not records:
            return report

        batches = [
            records[i : i + self.batch_size] for i in range(0, len(records), self.batch_size)
        ]
        logger.info("upserting", table=table_name, records=len(records), batches=len(batches))

        results = await asyncio.gather(
            *(
                self._upsert_batch(index, table_name, batch, conflict_key)
                for index, batch in enumerate(batches)
            ),
            return_exceptions=True,
        )
        for index, outcome in enumerate(results):
            if isinstance(outcome, BaseException):
                logger.error("upsert_batch_failed", table=table_name, batch=index + 1, error=str(outcome))
                report.failed_batches.append(index + 1)
            else:
                report.written += outcome
        return report
