"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    log_level: str = "INFO"

    # ==========================================================================
    # API Server
    # ==========================================================================

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # ==========================================================================
    # AI / LLM
    # ==========================================================================

    # Primary: Gemini (accepts either GOOGLE_API_KEY or GEMINI_API_KEY)
    google_api_key: str = ""
    gemini_api_key: str = ""  # Alias for google_api_key

    # Fallback providers
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Which provider to use
    llm_provider: str = "gemini"

    # Model selection by estimated request size
    translation_model_lite: str = "gemini-2.0-flash-lite"
    translation_model_standard: str = "gemini-2.5-flash"
    translation_lite_threshold_tokens: int = 5000
    translation_chars_per_token: int = 4
    translation_cost_per_1k_lite: float = 0.0001
    translation_cost_per_1k_standard: float = 0.0002
    translation_temperature: float = 0.3
    translation_max_tokens: int = 16000

    # Use the offline DebugTranslator instead of a real LM
    translator_backend: str = "llm"  # llm, debug

    # ==========================================================================
    # Translation pipeline
    # ==========================================================================

    source_language: str = "fr"
    default_target_languages: str = "en,es,de,ru,zh,ja"

    # Fan-out: bounded parallelism and stagger between dispatches (seconds)
    translation_max_parallel: int = 2
    translation_dispatch_delay: float = 0.7

    # Bulk kickoff: delay between units of a book (seconds)
    bulk_unit_delay: float = 5.0

    # Retry policy for retryable upstream failures
    translation_max_attempts: int = 3
    translation_retry_base_delay: float = 2.0
    translation_retry_max_delay: float = 60.0
    translation_retry_jitter: float = 0.0

    # A processing claim older than this is treated as abandoned (seconds)
    translation_claim_timeout: float = 15 * 60

    # ==========================================================================
    # Budget
    # ==========================================================================

    budget_ceiling_usd: float = 10.0
    budget_alert_threshold_pct: float = 80.0

    # ==========================================================================
    # Recovery
    # ==========================================================================

    recovery_stuck_after_minutes: int = 15
    recovery_abandoned_job_after_minutes: int = 30
    recovery_max_retries: int = 3

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def default_target_languages_list(self) -> list[str]:
        return [
            code.strip().lower()
            for code in self.default_target_languages.split(",")
            if code.strip()
        ]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
