"""
Concurrent stage executor: per-item fan-out with failure containment.

Every selected item runs through `work` independently. A raising item never
takes its siblings down: it is marked ineligible with the stage's failure
reason, or handed back unchanged when the stage wants failures to stay
retryable in a later run (failure_reason=None).

Stages that hit a rate-limited or stateful provider (paid image generation,
on-chain submission) pass sequential=True and get a random delay between items.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Mapping
from typing import TypeVar

from pool_agent.agents.state import SkipReason, WorkItem, is_eligible, mark_ineligible
from pool_agent.core.logging import get_logger

logger = get_logger(__name__)

ItemT = TypeVar("ItemT", bound=WorkItem)


async def run_stage(
    stage: str,
    items: Mapping[str, ItemT],
    work: Callable[[ItemT], Awaitable[ItemT]],
    *,
    failure_reason: SkipReason | None,
    select: Callable[[ItemT], bool] = is_eligible,
    sequential: bool = False,
    jitter: tuple[float, float] = (0.0, 0.0),
) -> dict[str, ItemT]:
    """
    Run `work` over every selected item and return the touched items.

    Args:
        stage: Stage name used in log events.
        items: The full collection; unselected items are not dispatched and
               not included in the result.
        work: Per-item coroutine returning the updated item.
        failure_reason: Skip reason for items whose work raised, or None to
               return them unchanged.
        select: Predicate choosing which items get work (default: eligible).
        sequential: Process one item at a time with a random delay in between.
        jitter: (min, max) seconds for the inter-item delay.

    Returns:
        Partial update collection keyed by item id, one entry per dispatched item.
    """
    selected = [item for item in items.values() if select(item)]
    logger.info(
        "stage_started",
        stage=stage,
        selected=len(selected),
        total=len(items),
        sequential=sequential,
    )

    async def _guarded(item: ItemT) -> ItemT:
        try:
            return await work(item)
        except Exception as e:
            logger.error("stage_item_failed", stage=stage, item_id=item.id, error=str(e))
            if failure_reason is None:
                return item
            return mark_ineligible(item, failure_reason)

    if sequential:
        results: list[ItemT] = []
        for index, item in enumerate(selected):
            if index > 0:
                await asyncio.sleep(random.uniform(*jitter))
            results.append(await _guarded(item))
    else:
        results = list(await asyncio.gather(*(_guarded(item) for item in selected)))

    updated = {item.id: item for item in results}
    failed = sum(1 for item in results if not item.eligible)
    logger.info("stage_completed", stage=stage, processed=len(updated), ineligible=failed)
    return updated
