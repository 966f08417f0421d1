"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        description="Async SQLAlchemy connection string (postgresql+asyncpg or sqlite+aiosqlite)",
    )
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema for isolated environments (e.g., pr_42)",
    )

    @field_validator("database_schema")
    @classmethod
    def validate_database_schema(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not re.match(r"^[a-z_][a-z0-9_]{0,62}$", v):
            msg = "Invalid database_schema: must match ^[a-z_][a-z0-9_]{0,62}$"
            raise ValueError(msg)
        return v

    # Export
    export_dir: str = Field(
        default="./exports",
        description="Directory for export output files",
    )
    export_batch_size: int = Field(
        default=1000,
        description="Records fetched and written per batch while streaming an export",
        gt=0,
    )
    export_cache_ttl_seconds: int = Field(
        default=3600,
        description="Lifetime of a cached export result used to deduplicate identical requests",
        gt=0,
    )
    export_max_concurrent_jobs: int = Field(
        default=0,
        description="Maximum exports processed at once (0 disables the limit)",
        ge=0,
    )

    # Export retention
    export_retention_days: int = Field(
        default=7,
        description="Age in days after which finished exports are purged",
        gt=0,
    )
    export_cleanup_enabled: bool = Field(
        default=True,
        description="Enable the periodic export cleanup loop",
    )
    export_cleanup_interval_hours: float = Field(
        default=24.0,
        description="Hours between export cleanup runs",
        gt=0,
    )

    # Result cache
    redis_url: str | None = Field(
        default=None,
        description="Redis URL for the export result cache (in-process cache when unset)",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )
    log_json_events: bool = Field(
        default=False,
        description="Also write export job events to stderr as JSON lines",
    )

    # CORS
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins",
    )

    # Environment
    environment: str = Field(
        default="production",
        description="Deployment environment name (e.g. production, dev, staging)",
    )

    # API
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        if not self.cors_origins.strip():
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
