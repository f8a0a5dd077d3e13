"""Application-wide configuration powered by pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HttpConfig(BaseModel):
    """Transport limits shared by every backend adapter. Seconds and counts."""

    connect_timeout: float = 30.0
    read_timeout: float = 900.0
    pool_idle_timeout: float = 90.0
    pool_max_idle_per_host: int = 5
    max_redirects: int = 10


class RetryConfig(BaseModel):
    """Backoff policy and the status codes considered transient."""

    initial_backoff_ms: int = 200
    min_delay_ms: int = 1000
    max_delay_ms: int = 30_000
    backoff_factor: float = 2.0
    max_retry_attempts: int = 8
    retry_status_codes: list[int] = Field(default_factory=lambda: [429, 500, 502, 503, 504])

    def delays(self) -> list[float]:
        """Seconds to wait before each retry attempt."""

        delays: list[float] = []
        current = float(self.initial_backoff_ms)
        for _ in range(self.max_retry_attempts):
            delay = min(max(current, self.min_delay_ms), self.max_delay_ms)
            delays.append(delay / 1000)
            current *= self.backoff_factor
        return delays


class Settings(BaseSettings):
    """Runtime settings loaded from environment or .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    log_level: str = Field(default="INFO", alias="FORGE_LOG_LEVEL")
    version: str = Field(default="dev", alias="FORGE_VERSION")
    active_provider: str | None = Field(default=None, alias="FORGE_PROVIDER")
    workflow_path: Path = Field(default=Path("forge.yaml"), alias="FORGE_WORKFLOW_PATH")
    app_config_path: Path = Field(
        default=Path("~/forge/.config.json"), alias="FORGE_APP_CONFIG"
    )
    # Dump file prefix; unset disables request/response dumps.
    context_dump: str | None = Field(default=None, alias="FORGE_CONTEXT_DUMP")

    http_connect_timeout: float = Field(default=30.0, alias="FORGE_HTTP_CONNECT_TIMEOUT")
    http_read_timeout: float = Field(default=900.0, alias="FORGE_HTTP_READ_TIMEOUT")
    http_pool_idle_timeout: float = Field(default=90.0, alias="FORGE_HTTP_POOL_IDLE_TIMEOUT")
    http_pool_max_idle_per_host: int = Field(default=5, alias="FORGE_HTTP_POOL_MAX_IDLE_PER_HOST")
    http_max_redirects: int = Field(default=10, alias="FORGE_HTTP_MAX_REDIRECTS")

    retry_initial_backoff_ms: int = Field(default=200, alias="FORGE_RETRY_INITIAL_BACKOFF_MS")
    retry_backoff_factor: float = Field(default=2.0, alias="FORGE_RETRY_BACKOFF_FACTOR")
    retry_max_attempts: int = Field(default=8, alias="FORGE_RETRY_MAX_ATTEMPTS")
    retry_status_codes: list[int] = Field(
        default_factory=lambda: [429, 500, 502, 503, 504], alias="FORGE_RETRY_STATUS_CODES"
    )

    def http_config(self) -> HttpConfig:
        return HttpConfig(
            connect_timeout=self.http_connect_timeout,
            read_timeout=self.http_read_timeout,
            pool_idle_timeout=self.http_pool_idle_timeout,
            pool_max_idle_per_host=self.http_pool_max_idle_per_host,
            max_redirects=self.http_max_redirects,
        )

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            initial_backoff_ms=self.retry_initial_backoff_ms,
            backoff_factor=self.retry_backoff_factor,
            max_retry_attempts=self.retry_max_attempts,
            retry_status_codes=self.retry_status_codes,
        )


@lru_cache(1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
