"""
Generation graph: Truth Social posts to on-chain betting pools.

Flow:
  START → fetch_posts → filter_processed
        → (any eligible?) research_news ∥ research_web   |  END
        → generate_idea → generate_image → create_pool → persist_posts → END

The two research nodes run in the same superstep and join before
generate_idea; their partial item updates are folded by the items reducer.
"""

from __future__ import annotations

from typing import Literal

from langgraph.graph import END, START, StateGraph

from pool_agent.agents.nodes.ideas import generate_idea_node
from pool_agent.agents.nodes.image_gen import generate_image_node
from pool_agent.agents.nodes.pools import create_pool_node
from pool_agent.agents.nodes.posts import fetch_posts_node, filter_processed_node, persist_posts_node
from pool_agent.agents.nodes.research import research_news_node, research_web_node
from pool_agent.agents.state import GenerationState, has_eligible_items
from pool_agent.core.logging import get_logger

logger = get_logger(__name__)

RESEARCH_NODES = ["research_news", "research_web"]


def route_after_filter(state: GenerationState) -> list[str] | Literal["__end__"]:
    """Conditional edge: fan out to research when anything is left to do."""
    if has_eligible_items(state.get("items", {})):
        return RESEARCH_NODES
    logger.info("no_eligible_items", run_id=state.get("run_id"), step="filter_processed")
    return END


def build_generation_graph(checkpointer=None):
    """
    Construct and compile the generation graph.

    Args:
        checkpointer: Optional LangGraph checkpointer. Runs are one-shot and
                      collaborators travel in the config, so none is needed.

    Returns:
        Compiled graph; invoke with {"configurable": {"context": ctx}}.
    """
    workflow = StateGraph(GenerationState)

    workflow.add_node("fetch_posts", fetch_posts_node)
    workflow.add_node("filter_processed", filter_processed_node)
    workflow.add_node("research_news", research_news_node)
    workflow.add_node("research_web", research_web_node)
    workflow.add_node("generate_idea", generate_idea_node)
    workflow.add_node("generate_image", generate_image_node)
    workflow.add_node("create_pool", create_pool_node)
    workflow.add_node("persist_posts", persist_posts_node)

    workflow.add_edge(START, "fetch_posts")
    workflow.add_edge("fetch_posts", "filter_processed")
    workflow.add_conditional_edges("filter_processed", route_after_filter, [*RESEARCH_NODES, END])

    # Join: generate_idea waits for both research nodes
    workflow.add_edge(RESEARCH_NODES, "generate_idea")
    workflow.add_edge("generate_idea", "generate_image")
    workflow.add_edge("generate_image", "create_pool")
    workflow.add_edge("create_pool", "persist_posts")
    workflow.add_edge("persist_posts", END)

    app = workflow.compile(checkpointer=checkpointer)
    logger.info("generation_graph_compiled", node_count=len(workflow.nodes))
    return app
