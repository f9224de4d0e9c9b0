"""
LangGraph pipeline state: a keyed collection of independent work items.

Each pipeline carries `items: dict[id, WorkItem]`. Stages return partial
collections containing only the items they touched; the `merge_items`
reducer on the channel folds them into the running collection, so parallel
stages (news + web research) can update the same items in one step.
"""

from __future__ import annotations

import enum
import operator
from datetime import UTC, datetime
from typing import Annotated, Any, ClassVar, TypedDict

from pydantic import BaseModel, ConfigDict, Field

from pool_agent.agents.merge import merge_items


class SkipReason(str, enum.Enum):
    ALREADY_PROCESSED = "already_processed"
    TOO_OLD = "too_old"
    BATCH_LIMIT = "batch_limit"
    FAILED_IDEA_GENERATION = "failed_idea_generation"
    FAILED_IMAGE_GENERATION = "failed_image_generation"
    FAILED_QUERY_GENERATION = "failed_query_generation"
    FAILED_EVIDENCE_GATHERING = "failed_evidence_gathering"
    NO_EVIDENCE = "no_evidence"
    FAILED_GRADING = "failed_grading"


# ── Payloads (immutable source records) ─────────────────────
class TruthSocialPost(BaseModel):
    """A status from the Truth Social API. Unknown keys are kept for persistence."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    created_at: str = ""
    content: str = ""
    url: str = ""
    uri: str = ""
    language: str | None = None


class Pool(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    question: str
    options: list[str] = Field(default_factory=lambda: ["Yes", "No"])
    bets_close_at: int = 0  # unix seconds
    closure_criteria: str = ""
    closure_instructions: str = ""
    original_truth_social_post_id: str = ""
    status: str = "PENDING"


class Evidence(BaseModel):
    url: str
    summary: str
    search_query: str = ""


class TimePeriodAnalysis(BaseModel):
    period_mentioned: str = ""
    period_has_passed: bool = False
    official_results_available: bool = False


class GradingResult(BaseModel):
    result: str
    result_code: int
    probabilities: dict[str, float] = Field(default_factory=dict)
    sources: list[str] = Field(default_factory=list)
    explanation: str = ""
    time_period_analysis: TimePeriodAnalysis | None = None


# ── Work items ──────────────────────────────────────────────
class WorkItem(BaseModel):
    """
    One unit of pipeline work keyed by a stable external id.

    Merge policy per field lives in agents/merge.py: `payload` is never
    replaced, `eligible` only goes true -> false, sticky fields keep their
    first populated value, everything else is last-non-empty-write-wins.
    """

    sticky_fields: ClassVar[frozenset[str]] = frozenset(
        {"transaction_hash", "pool_id", "skip_reason"}
    )

    id: str
    eligible: bool = True
    skip_reason: SkipReason | None = None
    transaction_hash: str = ""
    pool_id: str = ""
    # Derived fields this update deliberately resets; consumed by the reducer.
    cleared_fields: frozenset[str] = Field(default_factory=frozenset, exclude=True)

    def source_timestamp(self) -> datetime | None:
        return None


class PostItem(WorkItem):
    payload: TruthSocialPost

    news_search_query: str = ""
    related_news: list[str] = Field(default_factory=list)
    web_search_query: str = ""
    related_search_results: list[str] = Field(default_factory=list)
    betting_pool_idea: str = ""
    image_prompt: str = ""
    image_url: str = ""

    def source_timestamp(self) -> datetime | None:
        raw = self.payload.created_at
        if not raw:
            return None
        try:
            ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
        return ts


class PoolItem(WorkItem):
    payload: Pool

    evidence_search_queries: list[str] = Field(default_factory=list)
    evidence: list[Evidence] = Field(default_factory=list)
    grading_result: GradingResult | None = None


def is_eligible(item: WorkItem) -> bool:
    return item.eligible


def mark_ineligible(item: WorkItem, reason: SkipReason, **updates: Any) -> WorkItem:
    """Copy of `item` excluded from further work. An existing skip reason wins."""
    return item.model_copy(
        update={"eligible": False, "skip_reason": item.skip_reason or reason, **updates}
    )


def has_eligible_items(items: dict[str, WorkItem]) -> bool:
    return any(item.eligible for item in items.values())


def summarize_dispositions(items: dict[str, WorkItem]) -> dict[str, int]:
    """Count items per final disposition: `eligible` or the skip reason."""
    counts: dict[str, int] = {}
    for item in items.values():
        key = "eligible" if item.eligible else str(getattr(item.skip_reason, "value", item.skip_reason))
        counts[key] = counts.get(key, 0) + 1
    return counts


# ── Graph state ─────────────────────────────────────────────
class GenerationState(TypedDict, total=False):
    """State for the post → betting pool graph."""

    run_id: str
    account_id: str
    items: Annotated[dict[str, PostItem], merge_items]
    error_log: Annotated[list[str], operator.add]
    current_step: str


class GradingState(TypedDict, total=False):
    """State for the open pool → graded outcome graph."""

    run_id: str
    items: Annotated[dict[str, PoolItem], merge_items]
    error_log: Annotated[list[str], operator.add]
    current_step: str
