"""
Application settings using Pydantic.

Provides environment-based configuration loading with INFRAPHASE_ prefix.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INFRAPHASE_",
    )

    # Polling (fixed interval; provisioning calls run for minutes)
    poll_interval_seconds: float = 10.0
    max_wait_seconds: float = 1800.0

    # Retry policy for transient provider failures (1 attempt = no retry)
    retry_max_attempts: int = 1
    retry_backoff_seconds: float = 5.0
    retry_backoff_max_seconds: float = 60.0

    # Concurrency cap within a phase (None = unbounded)
    max_parallel_tasks: int | None = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Secret store
    secret_backend: str = "file"
    secret_prefix: str = ""
    credentials_file: Path = Path.home() / ".infraphase" / "secrets.yaml"
    azure_vault_url: str | None = None
    aws_region: str = "us-east-1"
    vault_address: str | None = None
    vault_path_prefix: str = "infraphase"

    # Default HTTP provisioning provider
    provider_base_url: str | None = None
    provider_token: str | None = None

    # HTTP client settings
    http_timeout: float = 30.0
    http_max_retries: int = 3


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
