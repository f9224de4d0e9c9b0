"""
Pydantic v2 schemas for API request/response validation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


# ── Pipeline trigger ────────────────────────────────────────
class TriggerRequest(BaseModel):
    pipeline: Literal["generation", "grading"] = "generation"
    account_id: str | None = Field(
        default=None, description="Truth Social account to monitor (generation only)"
    )


class TriggerResponse(BaseModel):
    run_id: str
    pipeline: str
    status: str = "started"
    message: str = "Pipeline execution started in background"


# ── Run status ──────────────────────────────────────────────
class RunStatusResponse(BaseModel):
    run_id: str
    pipeline: str
    status: Literal["running", "completed", "failed"]
    started_at: datetime
    completed_at: datetime | None = None
    item_count: int = 0
    dispositions: dict[str, int] = Field(default_factory=dict)
    error: str | None = None


# ── Health check ────────────────────────────────────────────
class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = "0.1.0"
    environment: str
    database: str = "connected"
