"""
Research nodes: news and web context for each eligible post.

Both nodes run in the same superstep and write disjoint fields of the same
items; the items reducer folds them together. Neither writes current_step,
which is a single-value channel. A research failure leaves the item eligible:
idea generation simply works with less context.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig
from pydantic import BaseModel, Field

from pool_agent.agents.context import get_context
from pool_agent.agents.executor import run_stage
from pool_agent.agents.state import GenerationState, PostItem
from pool_agent.core.exceptions import ModelOutputError
from pool_agent.core.logging import get_logger
from pool_agent.core.security import sanitize_for_prompt

if TYPE_CHECKING:
    from pool_agent.services.llm_service import ModelClient
    from pool_agent.services.search_service import SearchResult

logger = get_logger(__name__)


class SearchQuery(BaseModel):
    query: str = Field(description="A short search engine query")


QUERY_SYSTEM_PROMPT = """You turn social media posts into search queries.
Given the post below, write ONE concise {kind} search query (max 10 words) that
would surface the events, people, or announcements the post is reacting to.
Output ONLY a JSON object: {{"query": "..."}}"""


async def extract_search_query(model: ModelClient, post_text: str, kind: str) -> str:
    result = await model.generate(
        [
            SystemMessage(content=QUERY_SYSTEM_PROMPT.format(kind=kind)),
            HumanMessage(content=f"<post>\n{post_text}\n</post>"),
        ],
        SearchQuery,
    )
    query = result.query.strip()
    if not query:
        raise ModelOutputError(f"empty {kind} search query")
    return query


def format_result(result: SearchResult) -> str:
    title = f"{result.title}: " if result.title else ""
    return f"{title}{result.content} ({result.url})"


async def research_news_node(state: GenerationState, config: RunnableConfig) -> dict:
    """Attach related news headlines (Serper) to each eligible post."""
    ctx = get_context(config)
    if ctx.news_search is None:
        logger.info("research_news_skipped", reason="no Serper API key configured")
        return {"items": {}}

    async def work(item: PostItem) -> PostItem:
        text = sanitize_for_prompt(item.payload.content)
        if not text:
            return item
        query = await extract_search_query(ctx.researcher, text, "news")
        results = await ctx.news_search.search(query)
        return item.model_copy(
            update={
                "news_search_query": query,
                "related_news": [format_result(r) for r in results],
            }
        )

    updated = await run_stage("research_news", state.get("items", {}), work, failure_reason=None)
    return {"items": updated}


async def research_web_node(state: GenerationState, config: RunnableConfig) -> dict:
    """Attach general web results (Tavily) to each eligible post."""
    ctx = get_context(config)
    if ctx.web_search is None:
        logger.info("research_web_skipped", reason="no Tavily API key configured")
        return {"items": {}}

    async def work(item: PostItem) -> PostItem:
        text = sanitize_for_prompt(item.payload.content)
        if not text:
            return item
        query = await extract_search_query(ctx.researcher, text, "web")
        results = await ctx.web_search.search(query)
        return item.model_copy(
            update={
                "web_search_query": query,
                "related_search_results": [format_result(r) for r in results],
            }
        )

    updated = await run_stage("research_web", state.get("items", {}), work, failure_reason=None)
    return {"items": updated}
