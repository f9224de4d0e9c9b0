"""
Centralised configuration via Pydantic Settings.

Reads from .env in dev and from the host environment in production.
Constructed once at process start (see cron/ and main.py) and handed to the
pipelines inside a PipelineContext; graph nodes never read settings globally.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Application ─────────────────────────────────────────
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]
    api_key: str = "change-me"

    # ── Database ────────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./dev.db"

    @field_validator("database_url", mode="before")
    @classmethod
    def assemble_db_url(cls, v: str) -> str:
        """Hosted Postgres hands out postgres:// but SQLAlchemy needs postgresql+asyncpg://."""
        if v.startswith("postgres://"):
            v = v.replace("postgres://", "postgresql+asyncpg://", 1)
        elif v.startswith("postgresql://"):
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.database_url

    # ── LLM: Gemini ────────────────────────────────────────
    google_api_key: str = ""

    # Model routing
    model_researcher: str = "gemini-2.5-flash"  # search-query extraction
    model_generator: str = "gemini-2.5-pro"  # ideas, image prompts, evidence, grading

    # ── Search ──────────────────────────────────────────────
    tavily_api_key: str = ""
    serper_api_key: str = ""

    # ── Truth Social ────────────────────────────────────────
    truth_social_api_url: str = "https://truthsocial.com/api/v1"
    truth_social_account_id: str = "107780257626128497"
    proxy_urls: list[str] = Field(
        default_factory=list, description="Proxy URLs rotated across fetch attempts"
    )
    fetch_max_proxy_attempts: int = 3

    # ── Image generation (Flux) ─────────────────────────────
    flux_api_key: str = ""
    flux_api_url: str = "https://api.us1.bfl.ai/v1"
    flux_model: str = "flux-pro-1.1"
    max_images_per_run: int = 5
    image_poll_interval_seconds: float = 0.5
    image_poll_max_attempts: int = 30
    image_delay_seconds: tuple[float, float] = (1.0, 1.5)

    # ── Chain ───────────────────────────────────────────────
    rpc_url: str = ""
    private_key: str = ""
    betting_contract_address: str = ""
    betting_contract_abi_path: str = "artifacts/BettingContract.json"
    chain_id: int = 84532  # Base Sepolia
    receipt_timeout_seconds: float = 60.0
    bets_close_after_hours: float = 24.0
    chain_delay_seconds: tuple[float, float] = (0.1, 0.3)

    @property
    def chain_configured(self) -> bool:
        return bool(self.rpc_url and self.private_key and self.betting_contract_address)

    # ── Subgraph (open pools) ───────────────────────────────
    subgraph_url: str = ""

    # ── Pipeline tunables ───────────────────────────────────
    max_items_per_run: int | None = Field(
        default=None, description="Cap on eligible items per run, in arrival order"
    )
    max_age_filter_enabled: bool = False
    max_age_hours: float = 24.0
    upsert_batch_size: int = 10
    evidence_results_per_query: int = 3

    def missing_generation_settings(self) -> list[str]:
        """Names of settings the generation pipeline cannot start without."""
        required = {
            "google_api_key": self.google_api_key,
            "rpc_url": self.rpc_url,
            "private_key": self.private_key,
            "betting_contract_address": self.betting_contract_address,
        }
        return [name for name, value in required.items() if not value]

    def missing_grading_settings(self) -> list[str]:
        required = {
            "google_api_key": self.google_api_key,
            "tavily_api_key": self.tavily_api_key,
            "subgraph_url": self.subgraph_url,
        }
        return [name for name, value in required.items() if not value]


@lru_cache
def get_settings() -> Settings:
    return Settings()
