"""Engine configuration using pydantic-settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from ``AGENTWEAVE_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTWEAVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Models
    default_model: str | None = None
    max_output_tokens: int = Field(default=4096, gt=0)

    # Anthropic client
    anthropic_api_key: str = ""
    request_timeout: float = Field(default=600.0, gt=0)
    connect_timeout: float = Field(default=5.0, gt=0)
    client_max_retries: int = Field(default=3, ge=0)

    # Logging
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_format: str = Field(default="console", pattern="^(console|json)$")

    # Cache
    enable_cache: bool = False
    cache_ttl_seconds: float | None = None


@lru_cache
def get_settings() -> Settings:
    """Return cached engine settings."""
    return Settings()
