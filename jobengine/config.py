"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Store Configuration
    store_mode: Literal["memory", "postgres"] = Field(
        default="memory",
        description="Job store backend: memory (single process) or postgres",
    )
    database_url: Optional[str] = Field(
        default=None, description="PostgreSQL connection URL (required for postgres mode)"
    )
    db_pool_min_size: int = Field(default=1, description="Minimum connection pool size")
    db_pool_max_size: int = Field(default=10, description="Maximum connection pool size")

    # Event Bus
    event_bus_mode: Literal["memory", "none"] = Field(
        default="memory",
        description="Event bus implementation: memory (in-process pub/sub) or none",
    )
    event_bus_buffer_size: int = Field(
        default=1000, description="Events kept for Last-Event-ID replay"
    )

    # Job Processing
    job_poll_interval_s: float = Field(
        default=1.0, gt=0, description="Worker sleep when no job is eligible"
    )
    job_default_max_retries: int = Field(
        default=3, ge=0, description="max_retries applied when enqueue omits it"
    )
    job_handler_timeout_s: Optional[float] = Field(
        default=None,
        gt=0,
        description="Upper bound on a single handler invocation (None = unbounded)",
    )
    job_save_conflict_retries: int = Field(
        default=3,
        ge=1,
        description="Reload-and-reapply attempts after a stale save",
    )
    job_stats_window_days: int = Field(
        default=7, ge=1, description="Default trailing window for job stats"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
