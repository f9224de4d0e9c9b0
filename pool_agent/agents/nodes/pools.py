"""
Pool creation node: submit createPool for every item with an idea.

Transactions go out sequentially (one signer, one nonce sequence). A failed or
reverted submission leaves the item without a transaction hash, so the post
is retried on the next run.
"""

from __future__ import annotations

import time

from langchain_core.runnables import RunnableConfig

from pool_agent.agents.context import get_context
from pool_agent.agents.executor import run_stage
from pool_agent.agents.state import GenerationState, PostItem
from pool_agent.core.logging import get_logger
from pool_agent.services.chain_service import CreatePoolParams, pool_id_from_events

logger = get_logger(__name__)


def has_idea(item: PostItem) -> bool:
    return item.eligible and bool(item.betting_pool_idea)


async def create_pool_node(state: GenerationState, config: RunnableConfig) -> dict:
    ctx = get_context(config)
    settings = ctx.settings
    if ctx.chain is None:
        logger.error("create_pool_skipped", reason="chain not configured")
        return {"error_log": ["Create pool: chain not configured"], "current_step": "pools_created"}

    async def work(item: PostItem) -> PostItem:
        params = CreatePoolParams(
            question=item.betting_pool_idea,
            bets_close_at=int(time.time() + settings.bets_close_after_hours * 3600),
            original_truth_social_post_id=item.id,
        )
        tx_hash = await ctx.chain.submit_pool_creation(params)
        receipt = await ctx.chain.wait_receipt(tx_hash, timeout=settings.receipt_timeout_seconds)
        if receipt.status != "success":
            logger.warning("create_pool_reverted", item_id=item.id, tx_hash=tx_hash)
            return item

        pool_id = pool_id_from_events(receipt.events)
        if pool_id is None:
            logger.warning("pool_created_event_missing", item_id=item.id, tx_hash=tx_hash)
            return item

        logger.info("pool_created", item_id=item.id, pool_id=pool_id, tx_hash=tx_hash)
        return item.model_copy(update={"transaction_hash": tx_hash, "pool_id": pool_id})

    updated = await run_stage(
        "create_pool",
        state.get("items", {}),
        work,
        failure_reason=None,
        select=has_idea,
        sequential=True,
        jitter=settings.chain_delay_seconds,
    )
    return {"items": updated, "current_step": "pools_created"}
