"""Typed settings configuration - single source of truth."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from tripgen.tools.executor import RetryPolicy

StrategyName = Literal["content_first", "ai_first"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Remote operation gateway
    gateway_base_url: str = "http://localhost:5001/voyager/us-central1"
    gateway_timeout_seconds: float = 120.0
    gateway_auth_token: str = ""

    # Generation architecture
    generation_strategy: StrategyName = "ai_first"

    # Retry policy - content-first (milliseconds)
    retry_max_attempts: int = 3
    retry_base_delay_ms: int = 1000
    retry_max_delay_ms: int = 10000
    retry_backoff_multiplier: float = 2.0

    # Retry policy - AI-first fails faster on persistent errors
    ai_first_retry_max_attempts: int = 2
    ai_first_retry_max_delay_ms: int = 5000

    # Retry jitter (milliseconds)
    retry_jitter_max_ms: int = 1000

    # Per-attempt deadline (seconds, unset = rely on transport timeout)
    attempt_timeout_seconds: float | None = None

    # Input sanitization limits
    special_requests_max_length: int = 500
    tag_max_length: int = 80
    max_tags: int = 10

    # Observability
    metrics_enabled: bool = False
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def retry_policy_for(strategy: StrategyName, settings: Settings | None = None) -> RetryPolicy:
    """Build the retry policy used by a generation strategy."""
    settings = settings or get_settings()
    if strategy == "ai_first":
        return RetryPolicy(
            max_attempts=settings.ai_first_retry_max_attempts,
            base_delay_ms=settings.retry_base_delay_ms,
            max_delay_ms=settings.ai_first_retry_max_delay_ms,
            backoff_multiplier=settings.retry_backoff_multiplier,
            jitter_max_ms=settings.retry_jitter_max_ms,
            attempt_timeout_seconds=settings.attempt_timeout_seconds,
        )
    return RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay_ms=settings.retry_base_delay_ms,
        max_delay_ms=settings.retry_max_delay_ms,
        backoff_multiplier=settings.retry_backoff_multiplier,
        jitter_max_ms=settings.retry_jitter_max_ms,
        attempt_timeout_seconds=settings.attempt_timeout_seconds,
    )
