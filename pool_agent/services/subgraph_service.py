"""
Subgraph service: open betting pools via GraphQL.
"""

from __future__ import annotations

import httpx

from pool_agent.agents.state import Pool
from pool_agent.core.logging import get_logger

logger = get_logger(__name__)

FETCH_PENDING_POOLS_QUERY = """
query fetchPendingPools {
  pools(where: {status: PENDING}) {
    id
    status
    question
    options
    betsCloseAt
    closureCriteria
    closureInstructions
    originalTruthSocialPostId
  }
}
"""


def pool_from_graphql(raw: dict) -> Pool:
    return Pool(
        id=str(raw["id"]),
        question=raw.get("question", ""),
        options=list(raw.get("options") or ["Yes", "No"]),
        bets_close_at=int(raw.get("betsCloseAt") or 0),
        closure_criteria=raw.get("closureCriteria") or "",
        closure_instructions=raw.get("closureInstructions") or "",
        original_truth_social_post_id=raw.get("originalTruthSocialPostId") or "",
        status=raw.get("status", "PENDING"),
    )


class SubgraphClient:
    def __init__(self, url: str, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.url = url
        self._transport = transport

    async def fetch_pending_pools(self) -> list[Pool]:
        async with httpx.AsyncClient(timeout=30, transport=self._transport) as client:
            resp = await client.post(self.url, json={"query": FETCH_PENDING_POOLS_QUERY})
            resp.raise_for_status()
            payload = resp.json()

        if payload.get("errors"):
            raise ValueError(f"subgraph errors: {payload['errors']}")
        pools = [pool_from_graphql(raw) for raw in payload.get("data", {}).get("pools", [])]
        logger.info("pending_pools_fetched", pool_count=len(pools))
        return pools
