"""
Grading graph: open pools to graded outcomes.

  START → fetch_open_pools → (any eligible?) generate_evidence_queries | END
        → gather_evidence → grade_outcome → persist_grades → END
"""

from __future__ import annotations

from typing import Literal

from langgraph.graph import END, START, StateGraph

from pool_agent.agents.nodes.grading import (
    fetch_open_pools_node,
    gather_evidence_node,
    generate_evidence_queries_node,
    grade_outcome_node,
    persist_grades_node,
)
from pool_agent.agents.state import GradingState, has_eligible_items
from pool_agent.core.logging import get_logger

logger = get_logger(__name__)


def route_after_fetch(state: GradingState) -> Literal["generate_evidence_queries", "__end__"]:
    if has_eligible_items(state.get("items", {})):
        return "generate_evidence_queries"
    logger.info("no_eligible_items", run_id=state.get("run_id"), step="fetch_open_pools")
    return END


def build_grading_graph(checkpointer=None):
    workflow = StateGraph(GradingState)

    workflow.add_node("fetch_open_pools", fetch_open_pools_node)
    workflow.add_node("generate_evidence_queries", generate_evidence_queries_node)
    workflow.add_node("gather_evidence", gather_evidence_node)
    workflow.add_node("grade_outcome", grade_outcome_node)
    workflow.add_node("persist_grades", persist_grades_node)

    workflow.add_edge(START, "fetch_open_pools")
    workflow.add_conditional_edges(
        "fetch_open_pools", route_after_fetch, ["generate_evidence_queries", END]
    )
    workflow.add_edge("generate_evidence_queries", "gather_evidence")
    workflow.add_edge("gather_evidence", "grade_outcome")
    workflow.add_edge("grade_outcome", "persist_grades")
    workflow.add_edge("persist_grades", END)

    app = workflow.compile(checkpointer=checkpointer)
    logger.info("grading_graph_compiled", node_count=len(workflow.nodes))
    return app
