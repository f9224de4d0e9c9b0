"""
Idea node: turn a post plus its research into a yes/no betting question.
"""

from __future__ import annotations

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig

from pool_agent.agents.context import get_context
from pool_agent.agents.executor import run_stage
from pool_agent.agents.state import GenerationState, PostItem, SkipReason
from pool_agent.core.exceptions import ModelOutputError
from pool_agent.core.logging import get_logger
from pool_agent.core.security import sanitize_for_prompt

logger = get_logger(__name__)

IDEA_SYSTEM_PROMPT = """You write betting pool questions about social media posts.
Read the post and the related context, then write ONE yes/no question about a
concrete, verifiable outcome the post implies. Requirements:
- Written in the voice and style of the post's author, first person
- A clear time frame (a date, or "by the end of the week/month/year")
- Resolvable from public news reporting
- A single sentence ending with a question mark
Output ONLY the question, no preamble or quotes."""


def build_idea_prompt(item: PostItem, post_text: str) -> str:
    news = "\n".join(f"- {n}" for n in item.related_news) or "- (none found)"
    web = "\n".join(f"- {r}" for r in item.related_search_results) or "- (none found)"
    return (
        f"<post>\n{post_text}\n</post>\n\n"
        f"Related news:\n{sanitize_for_prompt(news)}\n\n"
        f"Related web results:\n{sanitize_for_prompt(web)}"
    )


def normalize_idea(raw: str) -> str:
    idea = raw.strip().strip('"').strip()
    if not idea:
        raise ModelOutputError("empty betting pool idea")
    if not idea.endswith("?"):
        idea = f"{idea.rstrip('.')}?"
    return idea


async def generate_idea_node(state: GenerationState, config: RunnableConfig) -> dict:
    ctx = get_context(config)

    async def work(item: PostItem) -> PostItem:
        post_text = sanitize_for_prompt(item.payload.content)
        if not post_text:
            raise ModelOutputError("post has no text to build a question from")
        raw = await ctx.generator.generate(
            [
                SystemMessage(content=IDEA_SYSTEM_PROMPT),
                HumanMessage(content=build_idea_prompt(item, post_text)),
            ]
        )
        idea = normalize_idea(raw)
        logger.info("idea_generated", item_id=item.id, idea=idea[:120])
        return item.model_copy(update={"betting_pool_idea": idea})

    updated = await run_stage(
        "generate_idea",
        state.get("items", {}),
        work,
        failure_reason=SkipReason.FAILED_IDEA_GENERATION,
    )
    return {"items": updated, "current_step": "ideas_generated"}
