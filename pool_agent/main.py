"""
FastAPI application entry point.

Configures middleware, builds the pipeline context once at startup, and
mounts all routers.
Run locally: uvicorn pool_agent.main:app --reload
Production:  gunicorn pool_agent.main:app -w 1 -k uvicorn.workers.UvicornWorker
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from pool_agent.agents.context import build_context
from pool_agent.api.v1.routes import health, runs
from pool_agent.core.config import get_settings
from pool_agent.core.logging import get_logger, setup_logging
from pool_agent.core.security import limiter

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown events."""
    setup_logging(settings)
    logger.info(
        "app_starting",
        environment=settings.app_env,
        database=settings.database_url[:30] + "...",
    )
    app.state.context = await build_context(settings)

    yield

    logger.info("app_shutting_down")
    await app.state.context.aclose()


app = FastAPI(
    title="Truth Pool Agent",
    description="LangGraph pipelines turning Truth Social posts into on-chain betting pools",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.app_env != "production" else None,
    redoc_url="/redoc" if settings.app_env != "production" else None,
)

# ── Middleware ──────────────────────────────────────────────
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Rate limiting ──────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ── Routes ─────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(runs.router, prefix="/api/v1")


@app.get("/")
async def root():
    return {
        "service": "Truth Pool Agent",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/healthz/",
    }
