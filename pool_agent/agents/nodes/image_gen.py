"""
Image generation node: one illustration per betting question via Flux.

The generator model writes an image prompt, Flux renders it asynchronously and
the job is polled until ready. Paid calls: capped per run and sent one at a
time with a random pause in between. Items past the cap go on without an image.
"""

from __future__ import annotations

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig
from pydantic import BaseModel

from pool_agent.agents.context import get_context
from pool_agent.agents.executor import run_stage
from pool_agent.agents.state import GenerationState, PostItem, SkipReason
from pool_agent.core.exceptions import ModelOutputError
from pool_agent.core.logging import get_logger
from pool_agent.services.image_service import wait_for_image

logger = get_logger(__name__)


class ImagePrompt(BaseModel):
    image_prompt: str


IMAGE_SYSTEM_PROMPT = """You write prompts for an image generation model.
Given a betting pool question, describe a single vivid, photorealistic scene
that illustrates it. No text, logos or captions in the image. Max 60 words.
Output ONLY a JSON object: {"image_prompt": "..."}"""


async def generate_image_node(state: GenerationState, config: RunnableConfig) -> dict:
    """Generate images for the first `max_images_per_run` items with an idea."""
    ctx = get_context(config)
    settings = ctx.settings
    if ctx.images is None:
        logger.info("image_gen_skipped", reason="no Flux API key configured")
        return {"current_step": "images_generated"}

    candidates = [
        item
        for item in state.get("items", {}).values()
        if item.eligible and item.betting_pool_idea
    ]
    capped = {item.id: item for item in candidates[: settings.max_images_per_run]}
    if len(candidates) > len(capped):
        logger.info("image_cap_reached", generating=len(capped), without_image=len(candidates) - len(capped))

    async def work(item: PostItem) -> PostItem:
        prompt = await ctx.generator.generate(
            [
                SystemMessage(content=IMAGE_SYSTEM_PROMPT),
                HumanMessage(content=item.betting_pool_idea),
            ],
            ImagePrompt,
        )
        if not prompt.image_prompt.strip():
            raise ModelOutputError("empty image prompt")
        job_id = await ctx.images.submit_image_job(prompt.image_prompt)
        url = await wait_for_image(
            ctx.images,
            job_id,
            interval=settings.image_poll_interval_seconds,
            max_attempts=settings.image_poll_max_attempts,
        )
        return item.model_copy(update={"image_prompt": prompt.image_prompt, "image_url": url})

    updated = await run_stage(
        "generate_image",
        capped,
        work,
        failure_reason=SkipReason.FAILED_IMAGE_GENERATION,
        sequential=True,
        jitter=settings.image_delay_seconds,
    )
    return {"items": updated, "current_step": "images_generated"}
