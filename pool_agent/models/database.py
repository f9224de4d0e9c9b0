"""
Async database engine factory.

Uses SQLAlchemy 2.0 async engine with asyncpg (Postgres) or aiosqlite (dev).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from pool_agent.models.models import Base

if TYPE_CHECKING:
    from pool_agent.core.config import Settings


def build_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_pre_ping=True,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create missing tables (dev / sqlite). Production schemas are managed externally."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
