"""Unit tests for the stage executor and image polling."""

from __future__ import annotations

import pytest

from pool_agent.agents.executor import run_stage
from pool_agent.agents.state import PostItem, SkipReason, TruthSocialPost, mark_ineligible
from pool_agent.core.exceptions import ImageGenerationError, ImageGenerationTimeout
from pool_agent.services.image_service import ImageJob, wait_for_image
from tests.fakes import FakeImages


def _items(n: int) -> dict[str, PostItem]:
    return {str(i): PostItem(id=str(i), payload=TruthSocialPost(id=str(i))) for i in range(n)}


async def _tag(item: PostItem) -> PostItem:
    if item.id == "2":
        raise RuntimeError("boom")
    return item.model_copy(update={"betting_pool_idea": f"Q{item.id}?"})


@pytest.mark.asyncio
class TestRunStage:
    async def test_failure_isolated_to_one_item(self):
        result = await run_stage("ideas", _items(5), _tag, failure_reason=SkipReason.FAILED_IDEA_GENERATION)

        assert set(result) == {"0", "1", "2", "3", "4"}
        assert result["2"].eligible is False
        assert result["2"].skip_reason == SkipReason.FAILED_IDEA_GENERATION
        for item_id in ("0", "1", "3", "4"):
            assert result[item_id].eligible is True
            assert result[item_id].skip_reason is None
            assert result[item_id].betting_pool_idea == f"Q{item_id}?"

    async def test_retryable_failure_returns_item_unchanged(self):
        items = _items(3)
        result = await run_stage("create_pool", items, _tag, failure_reason=None)
        assert result["2"] == items["2"]
        assert result["2"].eligible is True

    async def test_only_selected_items_dispatched(self):
        items = _items(3)
        items["1"] = mark_ineligible(items["1"], SkipReason.ALREADY_PROCESSED)
        seen: list[str] = []

        async def work(item: PostItem) -> PostItem:
            seen.append(item.id)
            return item

        result = await run_stage("research", items, work, failure_reason=None)
        assert sorted(seen) == ["0", "2"]
        assert set(result) == {"0", "2"}

    async def test_sequential_preserves_order(self):
        seen: list[str] = []

        async def work(item: PostItem) -> PostItem:
            seen.append(item.id)
            return item

        await run_stage("images", _items(4), work, failure_reason=None, sequential=True, jitter=(0, 0))
        assert seen == ["0", "1", "2", "3"]

    async def test_empty_collection(self):
        assert await run_stage("ideas", {}, _tag, failure_reason=None) == {}


@pytest.mark.asyncio
class TestWaitForImage:
    async def test_returns_url_once_ready(self):
        images = FakeImages(
            polls={"job-1": [ImageJob(status="pending"), ImageJob(status="ready", url="https://img/ok.png")]}
        )
        assert await wait_for_image(images, "job-1", interval=0, max_attempts=5) == "https://img/ok.png"

    async def test_error_status_raises_immediately(self):
        images = FakeImages(polls={"job-1": [ImageJob(status="error", error="Content Moderated")]})
        with pytest.raises(ImageGenerationError, match="Content Moderated"):
            await wait_for_image(images, "job-1", interval=0, max_attempts=5)

    async def test_times_out_after_max_attempts(self):
        images = FakeImages(polls={"job-1": [ImageJob(status="pending")]})
        with pytest.raises(ImageGenerationTimeout):
            await wait_for_image(images, "job-1", interval=0, max_attempts=3)
