"""
Configuration management for ogugu.

This module uses pydantic-settings to manage all configuration aspects including:
- Storage backend and PostgreSQL pool
- Feed fetching
- The reconciliation job and its scheduler
- Logging and metrics

Configuration is loaded from environment variables or .env files. Nested
sections use a double underscore, e.g. ``DATABASE__DSN``.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Log levels supported by the application."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StoreBackend(str, Enum):
    """Storage backends for feeds and posts."""
    POSTGRES = "postgres"
    MEMORY = "memory"


class DatabaseConfig(BaseModel):
    """Configuration for the feed and post storage."""
    backend: StoreBackend = StoreBackend.POSTGRES
    dsn: Optional[str] = None
    min_pool_size: int = 2
    max_pool_size: int = 10
    command_timeout: int = 30  # seconds
    connect_attempts: int = 5

    @model_validator(mode="after")
    def validate_backend(self) -> "DatabaseConfig":
        """A PostgreSQL backend needs somewhere to connect to."""
        if self.backend == StoreBackend.POSTGRES and not self.dsn:
            raise ValueError("database.dsn is required for the postgres backend")
        if self.min_pool_size < 1 or self.max_pool_size < self.min_pool_size:
            raise ValueError("pool sizes must satisfy 1 <= min_pool_size <= max_pool_size")
        if self.connect_attempts < 1:
            raise ValueError("connect_attempts must be positive")
        return self


class FetcherConfig(BaseModel):
    """Configuration for outbound feed requests."""
    timeout_seconds: float = 30.0
    user_agent: str = "ogugu/0.1 (+https://github.com/ogugu/ogugu)"

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Every fetch is bounded, and never by more than a minute."""
        if v <= 0 or v > 60:
            raise ValueError("timeout_seconds must be in (0, 60]")
        return v


class JobConfig(BaseModel):
    """Configuration for the feed refresh job."""
    interval_minutes: int = 30
    concurrency: int = 1
    run_on_start: bool = True

    @model_validator(mode="after")
    def _sanity_checks(self) -> "JobConfig":
        if self.interval_minutes < 1:
            raise ValueError("interval_minutes must be at least 1")
        if self.concurrency < 1:
            raise ValueError("concurrency must be positive")
        return self


class SchedulerConfig(BaseModel):
    """Configuration for the job scheduler."""
    timezone: str = "UTC"
    coalesce: bool = True
    misfire_grace_time: int = 300  # seconds
    max_instances: int = 1


class MetricsConfig(BaseModel):
    """Configuration for metrics and logging."""
    prometheus_enabled: bool = False
    prometheus_port: int = 8000
    log_level: LogLevel = LogLevel.INFO
    structured_logging: bool = True


class Settings(BaseSettings):
    """Main settings class for ogugu."""
    # Application metadata
    app_name: str = "ogugu"
    version: str = "0.1.0"

    # Component configurations
    database: DatabaseConfig = Field(
        default_factory=lambda: DatabaseConfig(backend=StoreBackend.MEMORY)
    )
    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    job: JobConfig = Field(default_factory=JobConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )


def load_settings() -> Settings:
    """Load settings from environment variables and .env file."""
    return Settings()
