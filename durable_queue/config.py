"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from durable_queue.constants import DEFAULT_TIMEOUT_SECONDS


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    storage_root: Path | None = None
    sqlite_busy_timeout_seconds: float = 30.0
    sqlite_journal_mode: str = "wal"

    # Queue defaults
    default_timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    reservation_ttl_seconds: float | None = None

    # Polling
    poll_initial_interval_seconds: float = 0.1
    poll_max_interval_seconds: float = 1.0
    poll_backoff_factor: float = 2.0

    # Reaper Configuration
    reaper_interval_seconds: float = 10.0
    reaper_queue_names: list[str] = []
    # Buried messages older than this are purged by the reaper; None keeps them
    failed_retention_seconds: float | None = None

    # Observability
    tracing_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "durable-queue"
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
