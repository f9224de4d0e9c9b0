"""
Run context: settings plus every external collaborator, built once per
process and handed to graph nodes through LangGraph's RunnableConfig:

    graph.ainvoke(state, {"configurable": {"context": ctx}})

Optional collaborators are None when their credentials are absent; the stage
that needs them logs and contributes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pool_agent.core.exceptions import ConfigurationError
from pool_agent.core.logging import get_logger

if TYPE_CHECKING:
    from langchain_core.runnables import RunnableConfig
    from sqlalchemy.ext.asyncio import AsyncEngine

    from pool_agent.core.config import Settings
    from pool_agent.services.chain_service import BettingContractClient
    from pool_agent.services.image_service import FluxImageClient
    from pool_agent.services.llm_service import ModelClient
    from pool_agent.services.search_service import SerperNewsClient, TavilySearchClient
    from pool_agent.services.store_service import PostStore
    from pool_agent.services.subgraph_service import SubgraphClient
    from pool_agent.services.truth_social_service import TruthSocialClient

logger = get_logger(__name__)


@dataclass
class PipelineContext:
    settings: Settings
    researcher: ModelClient
    generator: ModelClient
    posts: TruthSocialClient | None = None
    store: PostStore | None = None
    web_search: TavilySearchClient | None = None
    news_search: SerperNewsClient | None = None
    images: FluxImageClient | None = None
    chain: BettingContractClient | None = None
    pools: SubgraphClient | None = None
    engine: AsyncEngine | None = None

    async def aclose(self) -> None:
        """Release pooled connections so short-lived processes can exit."""
        if self.engine is not None:
            await self.engine.dispose()


def build_chain_client(settings: Settings) -> BettingContractClient | None:
    """The contract client, or None when chain settings or the ABI artifact are missing."""
    from pool_agent.services.chain_service import BettingContractClient

    if not settings.chain_configured:
        return None
    try:
        return BettingContractClient.from_settings(settings)
    except ConfigurationError as e:
        logger.error("chain_unavailable", missing=e.missing)
        return None


async def build_context(settings: Settings) -> PipelineContext:
    """Wire real collaborators from settings."""
    from pool_agent.models.database import build_engine, init_models
    from pool_agent.services.image_service import FluxImageClient
    from pool_agent.services.llm_service import ModelClient
    from pool_agent.services.search_service import SerperNewsClient, TavilySearchClient
    from pool_agent.services.store_service import PostStore
    from pool_agent.services.subgraph_service import SubgraphClient
    from pool_agent.services.truth_social_service import TruthSocialClient

    engine = build_engine(settings)
    if settings.is_sqlite:
        await init_models(engine)

    context = PipelineContext(
        settings=settings,
        researcher=ModelClient.from_settings(settings, settings.model_researcher, temperature=0),
        generator=ModelClient.from_settings(settings, settings.model_generator, temperature=0.7),
        posts=TruthSocialClient(
            api_url=settings.truth_social_api_url,
            proxy_urls=settings.proxy_urls,
            max_proxy_attempts=settings.fetch_max_proxy_attempts,
        ),
        store=PostStore(engine, batch_size=settings.upsert_batch_size),
        web_search=TavilySearchClient(settings.tavily_api_key) if settings.tavily_api_key else None,
        news_search=SerperNewsClient(settings.serper_api_key) if settings.serper_api_key else None,
        images=(
            FluxImageClient(
                settings.flux_api_key, base_url=settings.flux_api_url, model=settings.flux_model
            )
            if settings.flux_api_key
            else None
        ),
        chain=build_chain_client(settings),
        pools=SubgraphClient(settings.subgraph_url) if settings.subgraph_url else None,
        engine=engine,
    )
    logger.info(
        "context_built",
        news_search=context.news_search is not None,
        web_search=context.web_search is not None,
        images=context.images is not None,
        chain=context.chain is not None,
        subgraph=context.pools is not None,
    )
    return context


def get_context(config: RunnableConfig | dict[str, Any]) -> PipelineContext:
    try:
        return config["configurable"]["context"]
    except (KeyError, TypeError) as e:
        raise RuntimeError("graph invoked without configurable.context") from e
