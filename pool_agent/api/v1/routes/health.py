"""Health check endpoint for the platform healthcheck and monitoring."""

from __future__ import annotations

from fastapi import APIRouter

from pool_agent.api.v1.deps import AppSettings
from pool_agent.schemas.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/healthz/", response_model=HealthResponse)
async def health_check(settings: AppSettings) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        environment=settings.app_env,
        database="sqlite" if settings.is_sqlite else "postgresql",
    )
