"""
Image service: Flux (Black Forest Labs) async image jobs.

Flux is submit-then-poll: POST a prompt, get a job id, GET the result until
it reports Ready (with a sample URL) or an error.
"""

from __future__ import annotations

import asyncio
from typing import Literal

import httpx
from pydantic import BaseModel

from pool_agent.core.exceptions import ImageGenerationError, ImageGenerationTimeout
from pool_agent.core.logging import get_logger

logger = get_logger(__name__)

# Flux statuses that end a job without an image
_ERROR_STATUSES = frozenset({"Error", "Content Moderated", "Request Moderated", "Task not found"})


class ImageJob(BaseModel):
    status: Literal["pending", "ready", "error"]
    url: str | None = None
    error: str | None = None


class FluxImageClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.us1.bfl.ai/v1",
        model: str = "flux-pro-1.1",
        size: tuple[int, int] = (1024, 1024),
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.size = size
        self._transport = transport

    @property
    def _headers(self) -> dict[str, str]:
        return {"accept": "application/json", "x-key": self.api_key}

    async def submit_image_job(self, prompt: str) -> str:
        width, height = self.size
        async with httpx.AsyncClient(timeout=30, transport=self._transport) as client:
            resp = await client.post(
                f"{self.base_url}/{self.model}",
                headers=self._headers,
                json={"prompt": prompt, "width": width, "height": height},
            )
            resp.raise_for_status()
            job_id = resp.json()["id"]
        logger.info("flux_job_submitted", job_id=job_id, model=self.model)
        return job_id

    async def poll_image_job(self, job_id: str) -> ImageJob:
        """Fetch a job's status. HTTP errors read as still pending."""
        async with httpx.AsyncClient(timeout=15, transport=self._transport) as client:
            resp = await client.get(
                f"{self.base_url}/get_result",
                headers=self._headers,
                params={"id": job_id},
            )
        if resp.is_error:
            logger.warning("flux_poll_http_error", job_id=job_id, status_code=resp.status_code)
            return ImageJob(status="pending")

        data = resp.json()
        status = data.get("status", "")
        if status == "Ready" and data.get("result"):
            return ImageJob(status="ready", url=data["result"].get("sample"))
        if status in _ERROR_STATUSES:
            return ImageJob(status="error", error=data.get("error") or status)
        return ImageJob(status="pending")


async def wait_for_image(
    client: FluxImageClient,
    job_id: str,
    *,
    interval: float = 0.5,
    max_attempts: int = 30,
) -> str:
    """
    Poll `job_id` until it is ready and return the image URL.

    Raises:
        ImageGenerationError: the provider reported an error (no further polling).
        ImageGenerationTimeout: `max_attempts` polls without ready or error.
    """
    for attempt in range(1, max_attempts + 1):
        await asyncio.sleep(interval)
        job = await client.poll_image_job(job_id)
        if job.status == "ready" and job.url:
            logger.info("flux_job_ready", job_id=job_id, attempts=attempt)
            return job.url
        if job.status == "error":
            raise ImageGenerationError(f"image job {job_id} failed: {job.error or 'unknown error'}")
        logger.debug("flux_job_pending", job_id=job_id, attempt=attempt, max_attempts=max_attempts)

    raise ImageGenerationTimeout(f"image job {job_id} not ready after {max_attempts} polls")
