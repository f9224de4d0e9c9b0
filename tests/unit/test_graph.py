"""End-to-end tests for the generation and grading graphs over fakes."""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from pool_agent.agents.nodes.posts import post_record
from pool_agent.agents.runner import run_generation_pipeline, run_grading_pipeline
from pool_agent.agents.state import PostItem, SkipReason, TruthSocialPost
from pool_agent.core.exceptions import ConfigurationError
from pool_agent.models.database import init_models
from pool_agent.services.image_service import ImageJob
from pool_agent.services.store_service import PostStore, SettledRecord
from tests.fakes import (
    EVIDENCE_QUERIES_PROMPT,
    IDEA_PROMPT,
    QUERY_PROMPT,
    FakeChain,
    FakeImages,
    FakePools,
    FakeSearch,
    FakeStore,
)

IDEA = "Will I sign the tariff order by the end of the week?"


@pytest.mark.asyncio
class TestGenerationPipeline:
    async def test_full_run_creates_pools(self, context):
        items = await run_generation_pipeline(context, run_id="run-1")

        assert set(items) == {"111", "222"}
        for item in items.values():
            assert item.eligible is True
            assert item.betting_pool_idea == IDEA
            assert item.news_search_query == "tariff announcement"
            assert item.related_news and item.related_search_results
            assert item.image_url == "https://img.example/1.png"
            assert item.transaction_hash.startswith("0x")
            assert item.pool_id in {"1", "2"}

        submitted = context.chain.submitted
        assert [p.original_truth_social_post_id for p in submitted] == ["111", "222"]
        assert all(p.options == ["Yes", "No"] for p in submitted)

        ledger = context.store.tables["truth_social_posts"]
        assert set(ledger) == {"111", "222"}
        assert ledger["111"]["transaction_hash"] == items["111"].transaction_hash
        assert ledger["111"]["json_content"]["account"] == {"username": "realDonaldTrump"}

    async def test_already_processed_post_is_skipped(self, context):
        context.store = FakeStore([SettledRecord(id="111", transaction_hash="0xsettled", pool_id="3")])

        items = await run_generation_pipeline(context)

        assert items["111"].eligible is False
        assert items["111"].skip_reason == SkipReason.ALREADY_PROCESSED
        assert items["111"].transaction_hash == "0xsettled"
        assert items["111"].betting_pool_idea == ""
        assert items["222"].eligible is True
        assert items["222"].betting_pool_idea == IDEA
        # settled posts keep the ledger row from the run that settled them
        assert set(context.store.tables["truth_social_posts"]) == {"222"}

    async def test_chain_failure_keeps_item_retryable(self, context):
        context.chain = FakeChain(fail_questions={IDEA})

        items = await run_generation_pipeline(context)

        for item in items.values():
            assert item.eligible is True
            assert item.skip_reason is None
            assert item.transaction_hash == ""
            assert item.pool_id == ""
        assert context.store.tables["truth_social_posts"]["111"]["transaction_hash"] == ""

    async def test_reverted_transaction_keeps_item_retryable(self, context):
        context.chain = FakeChain(revert=True)
        items = await run_generation_pipeline(context)
        assert all(i.eligible and not i.transaction_hash for i in items.values())

    async def test_image_timeout_only_fails_that_item(self, context):
        context.images = FakeImages(polls={"job-1": [ImageJob(status="pending")]})

        items = await run_generation_pipeline(context)

        assert items["111"].eligible is False
        assert items["111"].skip_reason == SkipReason.FAILED_IMAGE_GENERATION
        assert items["111"].transaction_hash == ""
        assert items["222"].eligible is True
        assert items["222"].image_url == "https://img.example/1.png"
        assert items["222"].pool_id == "1"
        assert [p.original_truth_social_post_id for p in context.chain.submitted] == ["222"]

    async def test_image_cap_lets_extra_items_through_without_image(self, context):
        context.settings = context.settings.model_copy(update={"max_images_per_run": 1})

        items = await run_generation_pipeline(context)

        assert items["111"].image_url
        assert items["222"].image_url == ""
        assert items["222"].pool_id

    async def test_no_image_client_skips_stage(self, context):
        context.images = None
        items = await run_generation_pipeline(context)
        assert all(i.eligible and i.image_url == "" and i.pool_id for i in items.values())

    async def test_idea_failure_is_isolated(self, context, sample_posts):
        sample_posts[1]["content"] = "<p>FAIL_IDEA please</p>"

        items = await run_generation_pipeline(context)

        assert items["222"].eligible is False
        assert items["222"].skip_reason == SkipReason.FAILED_IDEA_GENERATION
        assert items["111"].eligible is True
        assert items["111"].pool_id
        assert context.store.tables["truth_social_posts"]["222"]["skip_reason"] == "failed_idea_generation"

    async def test_malformed_statuses_are_skipped(self, context):
        context.posts.posts.extend(["not-a-status", {"id": None, "content": "x"}])

        items = await run_generation_pipeline(context)

        assert list(items) == ["111", "222"]
        assert all(i.pool_id for i in items.values())

    async def test_research_failure_does_not_block(self, context):
        context.news_search = FakeSearch(error=ConnectionError("serper down"))
        context.web_search = None

        items = await run_generation_pipeline(context)

        for item in items.values():
            assert item.eligible is True
            assert item.related_news == []
            assert item.related_search_results == []
            assert item.betting_pool_idea == IDEA

    async def test_html_stripped_before_prompting(self, context, model):
        await run_generation_pipeline(context)
        prompts = model.calls_for(QUERY_PROMPT)
        assert prompts
        assert all("<p>" not in p for p in prompts)

    async def test_all_ineligible_ends_after_filter(self, context, model):
        context.store = FakeStore(
            [SettledRecord(id="111", transaction_hash="0x1"), SettledRecord(id="222", transaction_hash="0x2")]
        )

        items = await run_generation_pipeline(context)

        assert all(i.skip_reason == SkipReason.ALREADY_PROCESSED for i in items.values())
        assert all(not i.related_news and not i.betting_pool_idea for i in items.values())
        assert model.calls == []
        assert context.chain.submitted == []
        assert context.store.tables == {}

    async def test_nothing_fetched_ends_early(self, context, model):
        context.posts.posts = []
        assert await run_generation_pipeline(context) == {}
        assert model.calls == []

    async def test_batch_cap(self, context):
        context.settings = context.settings.model_copy(update={"max_items_per_run": 1})
        items = await run_generation_pipeline(context)
        assert items["111"].pool_id
        assert items["222"].skip_reason == SkipReason.BATCH_LIMIT

    async def test_missing_configuration_aborts_before_any_stage(self, context, model):
        context.settings = context.settings.model_copy(update={"rpc_url": "", "private_key": ""})

        with pytest.raises(ConfigurationError) as exc_info:
            await run_generation_pipeline(context)

        assert exc_info.value.missing == ["rpc_url", "private_key"]
        assert context.posts.requested == []
        assert model.calls == []

    async def test_unbuilt_chain_client_aborts(self, context):
        context.chain = None

        with pytest.raises(ConfigurationError) as exc_info:
            await run_generation_pipeline(context)

        assert exc_info.value.missing == ["betting_contract_abi_path"]
        assert context.posts.requested == []

    async def test_grading_runs_without_chain(self, context):
        context.chain = None
        items = await run_grading_pipeline(context)
        assert items["7"].grading_result.result_code == 1

    async def test_account_override(self, context):
        await run_generation_pipeline(context, account_id="42")
        assert context.posts.requested == ["42"]


@pytest.mark.asyncio
class TestGradingPipeline:
    async def test_grades_open_pool(self, context):
        items = await run_grading_pipeline(context, run_id="grade-1")

        pool = items["7"]
        assert pool.eligible is True
        assert pool.evidence_search_queries == ["tariff order signed"]
        assert len(pool.evidence) == 1
        assert pool.evidence[0].url == "https://news.example/tariffs"
        assert pool.evidence[0].search_query == "tariff order signed"
        assert pool.grading_result.result == "option A"
        assert pool.grading_result.result_code == 1

        record = context.store.tables["pool_gradings"]["7"]
        assert record["result_code"] == 1
        assert record["skip_reason"] is None
        assert record["evidence_json"][0]["summary"] == "The order was signed on Friday."
        assert record["grading_json"]["time_period_analysis"]["period_has_passed"] is True
        assert pool.grading_result.time_period_analysis.period_mentioned == "by the end of the week"

    async def test_no_evidence(self, context):
        context.web_search = FakeSearch(results=[])

        items = await run_grading_pipeline(context)

        assert items["7"].skip_reason == SkipReason.NO_EVIDENCE
        assert items["7"].grading_result is None
        assert context.store.tables["pool_gradings"]["7"]["skip_reason"] == "no_evidence"

    async def test_failed_query_generation(self, context, model):
        model.routes[EVIDENCE_QUERIES_PROMPT] = '{"evidence_search_queries": []}'
        items = await run_grading_pipeline(context)
        assert items["7"].skip_reason == SkipReason.FAILED_QUERY_GENERATION

    async def test_subgraph_error_ends_run(self, context, model):
        context.pools = FakePools(error=ConnectionError("subgraph down"))
        assert await run_grading_pipeline(context) == {}
        assert model.calls == []

    async def test_missing_configuration(self, context):
        context.settings = context.settings.model_copy(update={"tavily_api_key": ""})
        with pytest.raises(ConfigurationError, match="grading"):
            await run_grading_pipeline(context)


@pytest.mark.asyncio
class TestIdeaPrompt:
    async def test_research_reaches_idea_prompt(self, context, model):
        await run_generation_pipeline(context)
        idea_prompts = model.calls_for(IDEA_PROMPT)
        assert len(idea_prompts) == 2
        assert all("Order expected Friday." in p for p in idea_prompts)


class OutageStore(PostStore):
    """SQLite-backed store whose settlement lookup is down."""

    lookup_down = True

    async def find_settled(self, ids):
        if self.lookup_down:
            raise ConnectionError("database unavailable")
        return await super().find_settled(ids)


@pytest_asyncio.fixture
async def outage_store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'posts.db'}")
    await init_models(engine)
    yield OutageStore(engine)
    await engine.dispose()


@pytest.mark.asyncio
class TestSettlementAcrossRuns:
    async def test_lookup_outage_keeps_stored_settlement(self, context, outage_store):
        await outage_store.upsert_records(
            "truth_social_posts",
            [post_record(PostItem(id="111", payload=TruthSocialPost(id="111"), transaction_hash="0xsettled", pool_id="3"))],
            "post_id",
        )
        context.store = outage_store
        context.chain = FakeChain(fail_questions={IDEA})

        items = await run_generation_pipeline(context)

        assert items["111"].transaction_hash == ""
        outage_store.lookup_down = False
        settled = await outage_store.find_settled(["111", "222"])
        assert [(s.id, s.transaction_hash, s.pool_id) for s in settled] == [("111", "0xsettled", "3")]
