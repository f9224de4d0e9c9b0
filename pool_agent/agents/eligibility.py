"""
Eligibility filter: decides which items are worth model and chain spend.

Rules, applied in order to items that are still eligible:
  1. settled in a prior run (store has a non-empty transaction hash)
     -> already_processed, with the stored hash / pool id copied onto the item
  2. older than max_age_hours, only when the age rule is switched on
     -> too_old
  3. beyond the first max_items eligible items, in arrival order
     -> batch_limit

A store lookup failure fails open: no item is treated as settled. This can
reprocess a post whose settlement we could not see; it is intentional.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol, TypeVar

from pool_agent.agents.state import SkipReason, WorkItem, mark_ineligible
from pool_agent.core.logging import get_logger

if TYPE_CHECKING:
    from pool_agent.core.config import Settings
    from pool_agent.services.store_service import SettledRecord

logger = get_logger(__name__)

ItemT = TypeVar("ItemT", bound=WorkItem)


class SettlementLookup(Protocol):
    async def find_settled(self, ids: list[str]) -> list[SettledRecord]: ...


@dataclass(frozen=True)
class EligibilityPolicy:
    max_age_enabled: bool = False
    max_age_hours: float = 24.0
    max_items: int | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> EligibilityPolicy:
        return cls(
            max_age_enabled=settings.max_age_filter_enabled,
            max_age_hours=settings.max_age_hours,
            max_items=settings.max_items_per_run,
        )


def apply_batch_cap(items: dict[str, ItemT], max_items: int | None) -> dict[str, ItemT]:
    """
    Keep the first `max_items` eligible items eligible, mark the rest batch_limit.

    Order is dict insertion order, i.e. the order the fetch stage saw the items.
    There is no priority or fairness across runs: a post that keeps landing past
    the cap is only picked up once earlier posts settle.
    """
    if max_items is None:
        return dict(items)

    capped: dict[str, ItemT] = {}
    kept = 0
    for item_id, item in items.items():
        if item.eligible and kept >= max_items:
            capped[item_id] = mark_ineligible(item, SkipReason.BATCH_LIMIT)
            continue
        if item.eligible:
            kept += 1
        capped[item_id] = item

    dropped = sum(1 for item in capped.values() if item.skip_reason == SkipReason.BATCH_LIMIT)
    if dropped:
        logger.info("batch_cap_applied", kept=kept, capped=dropped, max_items=max_items)
    return capped


class EligibilityFilter:
    def __init__(self, store: SettlementLookup | None, policy: EligibilityPolicy) -> None:
        self.store = store
        self.policy = policy

    async def _settled_by_id(self, ids: list[str]) -> dict[str, SettledRecord]:
        if self.store is None or not ids:
            return {}
        try:
            records = await self.store.find_settled(ids)
        except Exception as e:
            logger.error("settlement_lookup_failed", error=str(e), fail_open=True, ids=len(ids))
            return {}
        return {record.id: record for record in records}

    def _too_old(self, item: WorkItem, now: datetime) -> bool:
        if not self.policy.max_age_enabled:
            return False
        created = item.source_timestamp()
        if created is None:
            return False
        return now - created > timedelta(hours=self.policy.max_age_hours)

    async def apply(self, items: dict[str, ItemT], now: datetime | None = None) -> dict[str, ItemT]:
        """Return an update for every item in `items` with eligibility decided."""
        now = now or datetime.now(UTC)
        settled = await self._settled_by_id([item.id for item in items.values() if item.eligible])

        decided: dict[str, ItemT] = {}
        for item_id, item in items.items():
            if not item.eligible:
                decided[item_id] = item
                continue

            record = settled.get(item_id)
            if record is not None:
                decided[item_id] = mark_ineligible(
                    item,
                    SkipReason.ALREADY_PROCESSED,
                    transaction_hash=item.transaction_hash or record.transaction_hash,
                    pool_id=item.pool_id or (record.pool_id or ""),
                )
            elif self._too_old(item, now):
                decided[item_id] = mark_ineligible(item, SkipReason.TOO_OLD)
            else:
                decided[item_id] = item

        decided = apply_batch_cap(decided, self.policy.max_items)
        logger.info(
            "eligibility_decided",
            total=len(decided),
            already_processed=sum(
                1 for i in decided.values() if i.skip_reason == SkipReason.ALREADY_PROCESSED
            ),
            eligible=sum(1 for i in decided.values() if i.eligible),
        )
        return decided
