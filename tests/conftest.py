"""
Shared pytest fixtures for unit and integration tests.

Every external collaborator has an in-memory fake (tests/fakes.py); model
calls go through the real ModelClient over a scripted chat model, so no API
keys are needed.
"""

from __future__ import annotations

import pytest

from pool_agent.agents.context import PipelineContext
from pool_agent.agents.state import Pool
from pool_agent.core.config import Settings
from pool_agent.services.llm_service import ModelClient
from tests.fakes import (
    FakeChain,
    FakeImages,
    FakePools,
    FakePosts,
    FakeSearch,
    FakeStore,
    ScriptedChatModel,
    default_routes,
)


# ── Fixtures ────────────────────────────────────────────────
@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        api_key="test-key",
        database_url="sqlite+aiosqlite:///:memory:",
        google_api_key="test-google",
        tavily_api_key="test-tavily",
        serper_api_key="test-serper",
        flux_api_key="test-flux",
        rpc_url="http://localhost:8545",
        private_key="0x" + "11" * 32,
        betting_contract_address="0x" + "22" * 20,
        subgraph_url="https://subgraph.example/graphql",
        image_poll_interval_seconds=0,
        image_poll_max_attempts=3,
        image_delay_seconds=(0, 0),
        chain_delay_seconds=(0, 0),
    )


@pytest.fixture
def sample_posts() -> list[dict]:
    return [
        {
            "id": "111",
            "created_at": "2025-03-01T12:00:00.000Z",
            "content": "<p>Big TARIFF announcement coming this Friday!</p>",
            "url": "https://truthsocial.com/@realDonaldTrump/111",
            "account": {"username": "realDonaldTrump"},
        },
        {
            "id": "222",
            "created_at": "2025-03-01T13:00:00.000Z",
            "content": "<p>Meeting with the Prime Minister next week. Great things!</p>",
            "url": "https://truthsocial.com/@realDonaldTrump/222",
        },
    ]


@pytest.fixture
def sample_pool() -> Pool:
    return Pool(
        id="7",
        question="Will I sign the tariff order by the end of the week?",
        options=["Yes", "No"],
        bets_close_at=1740830400,
        original_truth_social_post_id="111",
    )


@pytest.fixture
def model() -> ScriptedChatModel:
    return ScriptedChatModel(default_routes())


@pytest.fixture
def context(settings, model, sample_posts, sample_pool) -> PipelineContext:
    """A fully wired context over fakes; tests swap individual collaborators."""
    return PipelineContext(
        settings=settings,
        researcher=ModelClient(model, name="researcher"),
        generator=ModelClient(model, name="generator"),
        posts=FakePosts(sample_posts),
        store=FakeStore(),
        web_search=FakeSearch(),
        news_search=FakeSearch(),
        images=FakeImages(),
        chain=FakeChain(),
        pools=FakePools([sample_pool]),
    )
