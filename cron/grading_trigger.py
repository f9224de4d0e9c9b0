"""
Cron job entry point: grading pipeline.

Grades every open pool from public evidence and records the outcome.
Must exit cleanly; see cron/trigger.py.
"""

from __future__ import annotations

import asyncio
import sys
import uuid

from pool_agent.agents.context import build_context
from pool_agent.agents.runner import run_grading_pipeline
from pool_agent.agents.state import summarize_dispositions
from pool_agent.core.config import get_settings
from pool_agent.core.exceptions import ConfigurationError
from pool_agent.core.logging import get_logger, setup_logging

settings = get_settings()
setup_logging(settings)
logger = get_logger("cron")


async def main() -> int:
    run_id = str(uuid.uuid4())
    logger.info("cron_triggered", run_id=run_id, pipeline="grading")

    try:
        context = await build_context(settings)
    except ConfigurationError as e:
        logger.error("cron_failed", run_id=run_id, error=str(e))
        return 1

    try:
        items = await run_grading_pipeline(context, run_id=run_id)
    except ConfigurationError as e:
        logger.error("cron_failed", run_id=run_id, error=str(e), missing=e.missing)
        return 1
    finally:
        await context.aclose()

    logger.info("cron_completed", run_id=run_id, dispositions=summarize_dispositions(items))
    return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
