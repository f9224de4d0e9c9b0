"""
Grading nodes: resolve open betting pools from public evidence.

    fetch_open_pools → generate_evidence_queries → gather_evidence
                     → grade_outcome → persist_grades

Each pool becomes a PoolItem keyed by pool id. Evidence is gathered with
Tavily and summarised per result by the generator model; the final grade is
a structured model answer mapped to the contract's numeric result code.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig
from pydantic import BaseModel, Field

from pool_agent.agents.context import get_context
from pool_agent.agents.eligibility import apply_batch_cap
from pool_agent.agents.executor import run_stage
from pool_agent.agents.state import (
    Evidence,
    GradingResult,
    GradingState,
    PoolItem,
    SkipReason,
    TimePeriodAnalysis,
    mark_ineligible,
)
from pool_agent.core.exceptions import ModelOutputError
from pool_agent.core.logging import get_logger
from pool_agent.core.security import sanitize_for_prompt

logger = get_logger(__name__)

GRADINGS_TABLE = "pool_gradings"

RESULT_CODES = {
    "not resolved yet": 0,
    "option a": 1,
    "option b": 2,
    "push": 3,
}


def result_code_for(result: str) -> int:
    """Contract result code for a grading answer; unknown answers map to 4."""
    return RESULT_CODES.get(result.strip().lower(), 4)


# ═══════════════════════════════════════════════════════════════
# Structured model outputs
# ═══════════════════════════════════════════════════════════════
class EvidenceQueries(BaseModel):
    evidence_search_queries: list[str] = Field(default_factory=list)


class GradingOutput(BaseModel):
    result: str
    probabilities: dict[str, float] = Field(default_factory=dict)
    sources: list[str] = Field(default_factory=list)
    explanation: str = ""
    time_period_analysis: TimePeriodAnalysis | None = None


def describe_pool(item: PoolItem) -> str:
    pool = item.payload
    closes = datetime.fromtimestamp(pool.bets_close_at, UTC).isoformat() if pool.bets_close_at else "unknown"
    options = ", ".join(f"option {chr(65 + i)}: {o}" for i, o in enumerate(pool.options))
    return (
        f"Question: {sanitize_for_prompt(pool.question)}\n"
        f"Options: {options}\n"
        f"Bets closed at: {closes}\n"
        f"Closure criteria: {sanitize_for_prompt(pool.closure_criteria) or '(none)'}\n"
        f"Closure instructions: {sanitize_for_prompt(pool.closure_instructions) or '(none)'}"
    )


# ═══════════════════════════════════════════════════════════════
# fetch_open_pools (also the eligibility stage for grading)
# ═══════════════════════════════════════════════════════════════
async def fetch_open_pools_node(state: GradingState, config: RunnableConfig) -> dict:
    ctx = get_context(config)
    if ctx.pools is None:
        logger.warning("fetch_pools_skipped", reason="no subgraph configured")
        return {"items": {}, "error_log": ["Subgraph: not configured"], "current_step": "pools_fetched"}

    try:
        pools = await ctx.pools.fetch_pending_pools()
    except Exception as e:
        logger.error("fetch_pools_error", error=str(e))
        return {"items": {}, "error_log": [f"Subgraph error: {e}"], "current_step": "pools_fetched"}

    items = {pool.id: PoolItem(id=pool.id, payload=pool, pool_id=pool.id) for pool in pools}
    items = apply_batch_cap(items, ctx.settings.max_items_per_run)
    return {"items": items, "current_step": "pools_fetched"}


# ═══════════════════════════════════════════════════════════════
# Evidence
# ═══════════════════════════════════════════════════════════════
QUERIES_SYSTEM_PROMPT = """You research the outcome of prediction market questions.
Given a betting pool, write 2-4 web search queries that would find
authoritative reporting on whether it resolved, and how.
Output ONLY a JSON object: {"evidence_search_queries": ["...", "..."]}"""

EVIDENCE_SYSTEM_PROMPT = """You extract evidence for grading a betting pool.
Summarise what the search result below says that is relevant to the question,
in 1-3 factual sentences. Do not speculate beyond the source.
Output ONLY a JSON object: {"url": "...", "summary": "...", "search_query": "..."}"""


async def generate_evidence_queries_node(state: GradingState, config: RunnableConfig) -> dict:
    ctx = get_context(config)

    async def work(item: PoolItem) -> PoolItem:
        result = await ctx.generator.generate(
            [SystemMessage(content=QUERIES_SYSTEM_PROMPT), HumanMessage(content=describe_pool(item))],
            EvidenceQueries,
        )
        queries = [q.strip() for q in result.evidence_search_queries if q.strip()]
        if not queries:
            raise ModelOutputError("no evidence search queries")
        # New queries invalidate evidence gathered for the old ones.
        return item.model_copy(
            update={
                "evidence_search_queries": queries,
                "evidence": [],
                "cleared_fields": frozenset({"evidence"}),
            }
        )

    updated = await run_stage(
        "generate_evidence_queries",
        state.get("items", {}),
        work,
        failure_reason=SkipReason.FAILED_QUERY_GENERATION,
    )
    return {"items": updated, "current_step": "queries_generated"}


async def gather_evidence_node(state: GradingState, config: RunnableConfig) -> dict:
    ctx = get_context(config)
    if ctx.web_search is None:
        logger.warning("gather_evidence_skipped", reason="no Tavily API key configured")
        return {"current_step": "evidence_gathered"}
    per_query = ctx.settings.evidence_results_per_query

    async def work(item: PoolItem) -> PoolItem:
        pool_text = describe_pool(item)
        evidence: list[Evidence] = []
        for query in item.evidence_search_queries:
            try:
                results = await ctx.web_search.search(query, max_results=per_query)
                for doc in results:
                    summary = await ctx.generator.generate(
                        [
                            SystemMessage(content=EVIDENCE_SYSTEM_PROMPT),
                            HumanMessage(
                                content=(
                                    f"{pool_text}\n\nSearch query: {query}\nURL: {doc.url}\n"
                                    f"<result>\n{sanitize_for_prompt(doc.content)}\n</result>"
                                )
                            ),
                        ],
                        Evidence,
                    )
                    evidence.append(
                        Evidence(
                            url=summary.url or doc.url,
                            summary=summary.summary,
                            search_query=summary.search_query or query,
                        )
                    )
            except Exception as e:
                logger.warning("evidence_query_failed", item_id=item.id, query=query, error=str(e))

        if not evidence:
            return mark_ineligible(item, SkipReason.NO_EVIDENCE)
        return item.model_copy(update={"evidence": evidence})

    updated = await run_stage(
        "gather_evidence",
        state.get("items", {}),
        work,
        failure_reason=SkipReason.FAILED_EVIDENCE_GATHERING,
    )
    return {"items": updated, "current_step": "evidence_gathered"}


# ═══════════════════════════════════════════════════════════════
# Grading
# ═══════════════════════════════════════════════════════════════
GRADING_SYSTEM_PROMPT = """You grade prediction market pools from evidence.
Decide the outcome using ONLY the evidence provided. Answer with one of:
"not resolved yet" (the period has not passed or no official result exists),
"option A", "option B", or "push" (the event was cancelled or is void).
Output ONLY a JSON object:
{"result": "...", "probabilities": {"option A": 0.0, "option B": 0.0},
 "sources": ["url", ...], "explanation": "...",
 "time_period_analysis": {"period_mentioned": "...", "period_has_passed": true,
                          "official_results_available": true}}"""


def format_evidence(evidence: list[Evidence]) -> str:
    return "\n".join(
        f"[{i}] {sanitize_for_prompt(e.summary)} ({e.url})" for i, e in enumerate(evidence, 1)
    )


async def grade_outcome_node(state: GradingState, config: RunnableConfig) -> dict:
    ctx = get_context(config)
    now = datetime.now(UTC).isoformat()

    async def work(item: PoolItem) -> PoolItem:
        output = await ctx.generator.generate(
            [
                SystemMessage(content=GRADING_SYSTEM_PROMPT),
                HumanMessage(
                    content=f"Current time: {now}\n\n{describe_pool(item)}\n\nEvidence:\n{format_evidence(item.evidence)}"
                ),
            ],
            GradingOutput,
        )
        grading = GradingResult(
            result=output.result,
            result_code=result_code_for(output.result),
            probabilities=output.probabilities,
            sources=output.sources,
            explanation=output.explanation,
            time_period_analysis=output.time_period_analysis,
        )
        logger.info(
            "pool_graded",
            item_id=item.id,
            result=grading.result,
            result_code=grading.result_code,
            period_has_passed=output.time_period_analysis.period_has_passed
            if output.time_period_analysis
            else None,
        )
        return item.model_copy(update={"grading_result": grading})

    updated = await run_stage(
        "grade_outcome",
        state.get("items", {}),
        work,
        failure_reason=SkipReason.FAILED_GRADING,
    )
    return {"items": updated, "current_step": "graded"}


def grading_record(item: PoolItem) -> dict[str, Any]:
    grading = item.grading_result
    return {
        "pool_id": item.id,
        "question": item.payload.question,
        "result": grading.result if grading else None,
        "result_code": grading.result_code if grading else None,
        "grading_json": grading.model_dump(mode="json") if grading else None,
        "evidence_json": [e.model_dump(mode="json") for e in item.evidence],
        "skip_reason": item.skip_reason.value if item.skip_reason else None,
        "graded_at": datetime.now(UTC),
    }


async def persist_grades_node(state: GradingState, config: RunnableConfig) -> dict:
    """Upsert the grading outcome (or skip reason) of every fetched pool."""
    ctx = get_context(config)
    records = [grading_record(item) for item in state.get("items", {}).values()]
    if not records:
        return {"current_step": "persisted"}
    if ctx.store is None:
        logger.warning("persist_skipped", reason="no store configured", records=len(records))
        return {"error_log": ["Persist: no store"], "current_step": "persisted"}

    report = await ctx.store.upsert_records(GRADINGS_TABLE, records, "pool_id")
    logger.info("gradings_persisted", written=report.written, failed_batches=report.failed_batches)
    update: dict = {"current_step": "persisted"}
    if not report.ok:
        update["error_log"] = [f"Persist: batches {report.failed_batches} failed"]
    return update
