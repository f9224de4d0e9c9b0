"""
Shared FastAPI dependencies for v1 API routes.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from pool_agent.agents.context import PipelineContext
from pool_agent.core.config import Settings, get_settings
from pool_agent.core.security import verify_api_key


def get_pipeline_context(request: Request) -> PipelineContext:
    """The context built at startup (see main.lifespan)."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pipeline context not initialised",
        )
    return context


# Re-export for convenience in route files
AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
AppSettings = Annotated[Settings, Depends(get_settings)]
RunContext = Annotated[PipelineContext, Depends(get_pipeline_context)]
