"""Configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-4o-mini"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server bind host")
    port: int = Field(default=8080, description="Server port")
    log_level: str = Field(default="info", description="Logging level")

    # OpenRouter settings
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")
    openrouter_base_url: str = Field(default=DEFAULT_BASE_URL, description="OpenRouter API base URL")
    openrouter_default_model: str = Field(default=DEFAULT_MODEL, description="Default model")
    app_url: str = Field(
        default="https://10xdev-flashcards.app",
        description="Sent as HTTP-Referer for attribution",
    )
    app_title: str = Field(default="SmartFlash", description="Sent as X-Title for attribution")

    # Transport settings
    request_timeout: float = Field(default=30.0, description="Per-attempt timeout in seconds")
    max_retries: int = Field(default=3, description="Retries for retryable transport failures")
    retry_backoff_base: float = Field(default=1.0, description="Backoff base in seconds")
    max_validation_retries: int = Field(
        default=2,
        description="Corrective resubmissions after schema validation failures",
    )

    # Throttling settings, disabled unless both are set
    rate_limit_requests: int | None = Field(default=None, description="Requests allowed per window")
    rate_limit_per_seconds: float | None = Field(default=None, description="Window size in seconds")

    # Safety settings
    circuit_breaker_threshold: int = Field(
        default=5,
        description="Failures before circuit breaker opens",
    )
    circuit_breaker_success_threshold: int = Field(
        default=2,
        description="Half-open successes before circuit breaker closes",
    )
    circuit_breaker_timeout: float = Field(
        default=60.0,
        description="Seconds before circuit breaker retries",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
