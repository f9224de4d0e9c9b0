"""
SQLAlchemy 2.0 ORM models.

Two tables: the processed-post ledger (also the settlement lookup for the
eligibility filter) and the pool grading ledger.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ProcessedPost(Base):
    __tablename__ = "truth_social_posts"

    post_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    pool_id: Mapped[str | None] = mapped_column(String(80), nullable=True)
    string_content: Mapped[str] = mapped_column(Text)
    json_content: Mapped[dict[str, Any]] = mapped_column(JSON)
    # "" until the pool is on-chain; a non-empty hash marks the post as settled
    transaction_hash: Mapped[str] = mapped_column(String(80), default="", index=True)
    skip_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    betting_pool_idea: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )


class PoolGrading(Base):
    __tablename__ = "pool_gradings"

    pool_id: Mapped[str] = mapped_column(String(80), primary_key=True)
    question: Mapped[str] = mapped_column(Text)
    result: Mapped[str | None] = mapped_column(String(50), nullable=True)
    result_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    grading_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    evidence_json: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    skip_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    graded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
