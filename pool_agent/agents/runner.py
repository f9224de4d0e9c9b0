"""
Pipeline runners: the single entry into each graph for cron and the API.

Required configuration is checked before any stage runs; ConfigurationError
is the only error a run raises. Everything else is contained per stage or
per item and shows up in the returned items and error log.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from pool_agent.agents.grading_graph import build_grading_graph
from pool_agent.agents.graph import build_generation_graph
from pool_agent.agents.state import PoolItem, PostItem, summarize_dispositions
from pool_agent.core.exceptions import ConfigurationError
from pool_agent.core.logging import get_logger, run_logging_context

if TYPE_CHECKING:
    from pool_agent.agents.context import PipelineContext

logger = get_logger(__name__)


async def run_generation_pipeline(
    context: PipelineContext,
    account_id: str | None = None,
    run_id: str | None = None,
) -> dict[str, PostItem]:
    missing = context.settings.missing_generation_settings()
    if not missing and context.chain is None:
        # Settings are complete but the contract client could not be built
        missing = ["betting_contract_abi_path"]
    if missing:
        raise ConfigurationError("generation", missing)

    run_id = run_id or str(uuid.uuid4())
    initial_state = {
        "run_id": run_id,
        "account_id": account_id or context.settings.truth_social_account_id,
        "items": {},
        "error_log": [],
        "current_step": "starting",
    }
    logger.info("generation_started", run_id=run_id, account_id=initial_state["account_id"])

    graph = build_generation_graph()
    with run_logging_context(run_id, "generation"):
        final = await graph.ainvoke(initial_state, {"configurable": {"context": context}})

    items = final.get("items", {})
    logger.info(
        "generation_finished",
        run_id=run_id,
        dispositions=summarize_dispositions(items),
        errors=final.get("error_log", []),
    )
    return items


async def run_grading_pipeline(
    context: PipelineContext,
    run_id: str | None = None,
) -> dict[str, PoolItem]:
    missing = context.settings.missing_grading_settings()
    if missing:
        raise ConfigurationError("grading", missing)

    run_id = run_id or str(uuid.uuid4())
    initial_state = {"run_id": run_id, "items": {}, "error_log": [], "current_step": "starting"}
    logger.info("grading_started", run_id=run_id)

    graph = build_grading_graph()
    with run_logging_context(run_id, "grading"):
        final = await graph.ainvoke(initial_state, {"configurable": {"context": context}})

    items = final.get("items", {})
    logger.info(
        "grading_finished",
        run_id=run_id,
        dispositions=summarize_dispositions(items),
        errors=final.get("error_log", []),
    )
    return items
