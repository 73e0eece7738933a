"""Pydantic Settings — typed configuration with .env auto-loading."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from config.llm_config import LLMConfig


class Settings(BaseSettings):
    """Application configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    service_port: int = 5000
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]
    cors_allow_headers: list[str] = [
        "authorization",
        "x-client-info",
        "apikey",
        "content-type",
    ]

    # ── Assessment model ─────────────────────────────────────
    # LiteLLM model id, provider prefix included (gemini/, openai/, anthropic/ ...)
    assessment_model: str = "gemini/gemini-1.5-pro"
    max_tokens: int = 4096
    temperature: float | None = None
    top_p: float | None = None
    seed: int | None = None
    response_format: str | None = None

    # Provider API keys (read by LiteLLM automatically via env)
    gemini_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # ── Record store ─────────────────────────────────────────
    record_store_type: str = "memory"  # "memory" or "redis"
    redis_url: str = ""  # e.g. redis://:password@host:6379/0

    # ── Auth service ─────────────────────────────────────────
    auth_base_url: str = "http://localhost:54321"
    auth_api_key: str = ""
    auth_cache_ttl: int = 300  # seconds

    # ── Worksheets & rubrics ─────────────────────────────────
    worksheet_stage_count: int = 6
    worksheet_title: str = "Guided Worksheet"
    rubric_dir: str = ""  # empty → bundled data/rubrics

    # ── Helpers ───────────────────────────────────────────────

    def get_assessment_llm_config(self) -> LLMConfig:
        """Build an :class:`LLMConfig` from the .env defaults."""
        return LLMConfig(
            model=self.assessment_model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
            seed=self.seed,
            response_format=self.response_format,
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton accessor for application settings."""
    return Settings()
