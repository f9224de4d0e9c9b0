"""
Pipeline trigger and status endpoints.

POST /api/v1/runs/trigger: kick off a generation or grading run (background task)
GET  /api/v1/runs/{run_id}: poll run status and item disposition counts
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request

from pool_agent.agents.context import PipelineContext
from pool_agent.agents.runner import run_generation_pipeline, run_grading_pipeline
from pool_agent.agents.state import summarize_dispositions
from pool_agent.api.v1.deps import AuthenticatedUser, RunContext
from pool_agent.core.exceptions import ConfigurationError
from pool_agent.core.logging import get_logger
from pool_agent.schemas.schemas import RunStatusResponse, TriggerRequest, TriggerResponse

router = APIRouter(prefix="/runs", tags=["runs"])
logger = get_logger(__name__)

# In-memory run status tracker (process-local; runs are also visible in the ledgers)
_run_status: dict[str, RunStatusResponse] = {}


async def execute_pipeline(run_id: str, body: TriggerRequest, context: PipelineContext) -> None:
    """Background task: run one pipeline and record its outcome."""
    status = _run_status[run_id]
    try:
        if body.pipeline == "grading":
            items = await run_grading_pipeline(context, run_id=run_id)
        else:
            items = await run_generation_pipeline(context, account_id=body.account_id, run_id=run_id)
    except ConfigurationError as e:
        logger.error("pipeline_misconfigured", run_id=run_id, pipeline=body.pipeline, missing=e.missing)
        _run_status[run_id] = status.model_copy(
            update={"status": "failed", "error": str(e), "completed_at": datetime.now(UTC)}
        )
        return
    except Exception as e:
        logger.error("pipeline_failed", run_id=run_id, pipeline=body.pipeline, error=str(e))
        _run_status[run_id] = status.model_copy(
            update={"status": "failed", "error": str(e), "completed_at": datetime.now(UTC)}
        )
        return

    _run_status[run_id] = status.model_copy(
        update={
            "status": "completed",
            "completed_at": datetime.now(UTC),
            "item_count": len(items),
            "dispositions": summarize_dispositions(items),
        }
    )
    logger.info("pipeline_completed", run_id=run_id, pipeline=body.pipeline)


@router.post("/trigger", response_model=TriggerResponse)
async def trigger_run(
    request: Request,
    background_tasks: BackgroundTasks,
    _api_key: AuthenticatedUser,
    context: RunContext,
    body: TriggerRequest | None = None,
) -> TriggerResponse:
    """Trigger a pipeline run. Returns immediately with a run_id for polling."""
    body = body or TriggerRequest()
    run_id = str(uuid.uuid4())
    _run_status[run_id] = RunStatusResponse(
        run_id=run_id,
        pipeline=body.pipeline,
        status="running",
        started_at=datetime.now(UTC),
    )
    background_tasks.add_task(execute_pipeline, run_id, body, context)
    logger.info("pipeline_triggered", run_id=run_id, pipeline=body.pipeline, trigger="manual")

    return TriggerResponse(run_id=run_id, pipeline=body.pipeline, status="started")


@router.get("/{run_id}", response_model=RunStatusResponse)
async def get_run_status(run_id: str, _api_key: AuthenticatedUser) -> RunStatusResponse:
    """Get the current status of a pipeline run."""
    if run_id not in _run_status:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    return _run_status[run_id]
