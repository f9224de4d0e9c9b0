"""
Search services: Tavily for web results, Serper for Google News.

Direct httpx calls against the REST APIs; both return SearchResult lists.
Errors propagate to the calling stage, which decides what a failure means.
"""

from __future__ import annotations

import httpx
from pydantic import BaseModel

from pool_agent.core.logging import get_logger

logger = get_logger(__name__)

_TAVILY_API_URL = "https://api.tavily.com/search"
_SERPER_NEWS_URL = "https://google.serper.dev/news"


class SearchResult(BaseModel):
    url: str
    content: str
    title: str = ""


class TavilySearchClient:
    def __init__(
        self,
        api_key: str,
        max_results: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.max_results = max_results
        self._transport = transport

    async def search(self, query: str, max_results: int | None = None) -> list[SearchResult]:
        async with httpx.AsyncClient(timeout=30, transport=self._transport) as client:
            resp = await client.post(
                _TAVILY_API_URL,
                json={
                    "api_key": self.api_key,
                    "query": query,
                    "max_results": max_results or self.max_results,
                    "include_answer": False,
                    "include_raw_content": True,
                },
            )
            resp.raise_for_status()
            data = resp.json()

        results = [
            SearchResult(
                url=r.get("url", ""),
                title=r.get("title", ""),
                content=r.get("content") or r.get("raw_content") or "",
            )
            for r in data.get("results", [])
            if r.get("url")
        ]
        logger.info("tavily_searched", query=query, result_count=len(results))
        return results


class SerperNewsClient:
    def __init__(
        self,
        api_key: str,
        max_results: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.max_results = max_results
        self._transport = transport

    async def search(self, query: str, max_results: int | None = None) -> list[SearchResult]:
        async with httpx.AsyncClient(timeout=15, transport=self._transport) as client:
            resp = await client.post(
                _SERPER_NEWS_URL,
                headers={"X-API-KEY": self.api_key},
                json={"q": query, "num": max_results or self.max_results},
            )
            resp.raise_for_status()
            data = resp.json()

        results = [
            SearchResult(
                url=item.get("link", ""),
                title=item.get("title", ""),
                content=item.get("snippet", ""),
            )
            for item in data.get("news", [])
            if item.get("link")
        ]
        logger.info("serper_searched", query=query, result_count=len(results))
        return results
