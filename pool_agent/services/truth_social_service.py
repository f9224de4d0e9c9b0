"""
Truth Social fetch service.

Requests go out through a randomly chosen proxy from settings.proxy_urls,
retrying with a different proxy up to `max_proxy_attempts` times. Without
proxies a single direct request is made. Proxy sourcing is out of scope.
"""

from __future__ import annotations

import random
from typing import Any

import httpx

from pool_agent.core.logging import get_logger

logger = get_logger(__name__)

_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class TruthSocialClient:
    def __init__(
        self,
        api_url: str = "https://truthsocial.com/api/v1",
        proxy_urls: list[str] | None = None,
        max_proxy_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.proxy_urls = list(proxy_urls or [])
        self.max_proxy_attempts = max_proxy_attempts
        self._transport = transport

    def _proxy_plan(self) -> list[str | None]:
        if not self.proxy_urls:
            return [None]
        attempts = min(self.max_proxy_attempts, len(self.proxy_urls))
        return random.sample(self.proxy_urls, attempts)

    async def fetch_page(self, url: str) -> Any | None:
        """GET `url` as JSON, rotating proxies. Returns None when every attempt fails."""
        plan = self._proxy_plan()
        for attempt, proxy in enumerate(plan, start=1):
            try:
                async with httpx.AsyncClient(
                    timeout=30,
                    proxy=proxy,
                    transport=self._transport,
                    headers={"User-Agent": _USER_AGENT, "Accept": "application/json"},
                    follow_redirects=True,
                ) as client:
                    resp = await client.get(url)
                    resp.raise_for_status()
                    return resp.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(
                    "truth_social_fetch_attempt_failed",
                    url=url,
                    attempt=attempt,
                    max_attempts=len(plan),
                    via_proxy=proxy is not None,
                    error=str(e),
                )
        return None

    async def fetch_latest_posts(self, account_id: str) -> list[dict[str, Any]]:
        """Latest statuses for `account_id`; [] on any failure."""
        url = f"{self.api_url}/accounts/{account_id}/statuses"
        data = await self.fetch_page(url)
        if not isinstance(data, list):
            logger.warning("truth_social_no_posts", account_id=account_id)
            return []
        logger.info("truth_social_fetched", account_id=account_id, post_count=len(data))
        return data
