"""
Post nodes: fetch the monitored account, decide eligibility, persist outcomes.

fetch_posts creates one PostItem per status (keyed by post id), the filter
marks already-settled / too-old / over-cap items ineligible, and the final
persist node writes every item's disposition to the post ledger.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from langchain_core.runnables import RunnableConfig
from pydantic import ValidationError

from pool_agent.agents.context import get_context
from pool_agent.agents.eligibility import EligibilityFilter, EligibilityPolicy
from pool_agent.agents.merge import merge_item
from pool_agent.agents.state import GenerationState, PostItem, SkipReason, TruthSocialPost
from pool_agent.core.logging import get_logger

logger = get_logger(__name__)

POSTS_TABLE = "truth_social_posts"


def items_from_posts(raw_posts: list[dict[str, Any]]) -> dict[str, PostItem]:
    """Build work items from raw statuses; repeated ids merge into one item."""
    items: dict[str, PostItem] = {}
    for raw in raw_posts:
        if not isinstance(raw, dict):
            logger.warning("post_payload_invalid", error=f"expected an object, got {type(raw).__name__}")
            continue
        if raw.get("id") is None:
            continue
        try:
            post = TruthSocialPost.model_validate({**raw, "id": str(raw["id"])})
        except ValidationError as e:
            logger.warning("post_payload_invalid", error=str(e))
            continue
        if not post.id:
            continue

        item = PostItem(id=post.id, payload=post)
        items[post.id] = merge_item(items[post.id], item) if post.id in items else item
    return items


async def fetch_posts_node(state: GenerationState, config: RunnableConfig) -> dict:
    """Fetch the latest statuses of the monitored account."""
    ctx = get_context(config)
    account_id = state.get("account_id") or ctx.settings.truth_social_account_id

    if ctx.posts is None:
        logger.warning("fetch_posts_skipped", reason="no Truth Social client configured")
        return {"items": {}, "error_log": ["Truth Social: no client"], "current_step": "posts_fetched"}

    raw_posts = await ctx.posts.fetch_latest_posts(account_id)
    items = items_from_posts(raw_posts)
    logger.info("posts_fetched", account_id=account_id, item_count=len(items))

    update: dict = {"items": items, "current_step": "posts_fetched"}
    if not items:
        update["error_log"] = ["Truth Social: no posts fetched"]
    return update


async def filter_processed_node(state: GenerationState, config: RunnableConfig) -> dict:
    """Mark posts that were settled before (or are too old / over the cap) ineligible."""
    ctx = get_context(config)
    items = state.get("items", {})
    if not items:
        logger.info("filter_skipped", reason="no items")
        return {"current_step": "filtered"}

    eligibility = EligibilityFilter(ctx.store, EligibilityPolicy.from_settings(ctx.settings))
    decided = await eligibility.apply(items)
    return {"items": decided, "current_step": "filtered"}


def post_record(item: PostItem) -> dict[str, Any]:
    payload = item.payload.model_dump(mode="json")
    return {
        "post_id": item.id,
        "pool_id": item.pool_id or None,
        "string_content": json.dumps(payload),
        "json_content": payload,
        "transaction_hash": item.transaction_hash or "",
        "skip_reason": item.skip_reason.value if item.skip_reason else None,
        "betting_pool_idea": item.betting_pool_idea or None,
        "image_url": item.image_url or None,
        "created_at": datetime.now(UTC),
    }


async def persist_posts_node(state: GenerationState, config: RunnableConfig) -> dict:
    """
    Upsert every item's terminal disposition.

    Posts skipped as already_processed keep the ledger row from the run that
    settled them, so they are not rewritten.
    """
    ctx = get_context(config)
    items = state.get("items", {})
    records = [
        post_record(item)
        for item in items.values()
        if item.skip_reason != SkipReason.ALREADY_PROCESSED
    ]
    if not records:
        logger.info("persist_skipped", reason="nothing new to record")
        return {"current_step": "persisted"}

    if ctx.store is None:
        logger.warning("persist_skipped", reason="no store configured", records=len(records))
        return {"error_log": ["Persist: no store"], "current_step": "persisted"}

    report = await ctx.store.upsert_records(POSTS_TABLE, records, "post_id")
    logger.info(
        "posts_persisted",
        written=report.written,
        failed_batches=report.failed_batches,
    )
    update: dict = {"current_step": "persisted"}
    if not report.ok:
        update["error_log"] = [f"Persist: batches {report.failed_batches} failed"]
    return update
