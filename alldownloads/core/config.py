from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, PositiveInt, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ALLDOWNLOADS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "AllDownloads"
    version: str = "0.1.0"
    environment: str = "production"
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    log_level: str = "INFO"

    auth_token: str = "change-me"

    state_root: Path = Field(default=Path("/state"))
    database_url: str | None = None
    database_pool_size: PositiveInt = 25
    database_pool_recycle_seconds: PositiveInt = 3600

    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: PositiveInt = 10
    queue_key: str = "fetch_jobs"
    processing_key: str = "fetch_jobs:processing"
    queue_retry_limit: int = 3
    queue_retry_delay_seconds: PositiveInt = 300
    dequeue_timeout_seconds: PositiveInt = 5

    worker_concurrency: PositiveInt = 6
    fetch_timeout_seconds: PositiveInt = 300
    http_timeout_seconds: float = 15.0
    http_user_agent: str = "AllDownloads/1.0 (+https://github.com/alldownloads/alldownloads)"

    metrics_host: str = "0.0.0.0"
    # 0 disables the worker metrics exporter.
    metrics_port: int = 9100

    refresh_scheduler_enabled: bool = True
    refresh_interval_seconds: PositiveInt = 6 * 60 * 60

    default_page_size: PositiveInt = 50
    max_page_size: PositiveInt = 200

    @field_validator("state_root", mode="before")
    @classmethod
    def _normalize_path(cls, value: str | Path) -> Path:
        raw = str(value)
        if "~" in raw:
            raise ValueError("Home expansion syntax is not allowed in paths")
        if "$" in raw:
            raise ValueError("Environment variable syntax is not allowed in paths")
        path = Path(raw)
        if not path.is_absolute():
            raise ValueError("Path settings must be absolute")
        return path

    @model_validator(mode="after")
    def _validate_runtime_constraints(self) -> "Settings":
        self.state_root = self.state_root.resolve(strict=False)
        if self.database_url is None:
            self.state_root.mkdir(parents=True, exist_ok=True)

        normalized_level = self.log_level.upper().strip()
        if normalized_level not in SUPPORTED_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(SUPPORTED_LOG_LEVELS)}")
        self.log_level = normalized_level

        if self.max_page_size < self.default_page_size:
            raise ValueError("max_page_size must be greater than or equal to default_page_size")

        if self.queue_retry_limit < 0:
            raise ValueError("queue_retry_limit must be >= 0")

        if self.dequeue_timeout_seconds >= self.fetch_timeout_seconds:
            raise ValueError("dequeue_timeout_seconds must be lower than fetch_timeout_seconds")

        if self.http_timeout_seconds <= 0:
            raise ValueError("http_timeout_seconds must be greater than zero")

        if not 0 <= self.metrics_port <= 65535:
            raise ValueError("metrics_port must be between 0 and 65535")

        if not self.queue_key.strip() or not self.processing_key.strip():
            raise ValueError("queue_key and processing_key cannot be blank")
        if self.queue_key == self.processing_key:
            raise ValueError("queue_key and processing_key must differ")

        return self

    @property
    def effective_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        db_path = self.state_root / "alldownloads.sqlite3"
        return f"sqlite:///{db_path.as_posix()}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
