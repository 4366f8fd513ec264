"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re

from pydantic import Field, field_validator, model_validator
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
        description="PostgreSQL async connection string",
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

    # JWT
    jwt_secret_key: str = Field(min_length=32, description="Secret key for verifying JWTs (minimum 32 characters)")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    jwt_access_token_expire_minutes: int = Field(
        default=30,
        description="Access token expiration in minutes",
        gt=0,
    )

    # API
    api_v1_prefix: str = Field(default="/api/v1", description="Prefix for versioned API routes")

    # Export
    export_temp_dir: str = Field(
        default="/tmp/exports",  # noqa: S108
        description="Scratch-space root; each job works under <export_temp_dir>/<job_id>",
    )
    export_step_timeout_seconds: float = Field(
        default=300.0,
        description="Deadline for a single attempt of one export step",
        gt=0,
    )
    export_max_attempts: int = Field(
        default=3,
        description="Attempts granted to retryable export steps",
        ge=1,
    )
    export_retry_backoff_base: float = Field(
        default=2.0,
        description="Backoff base; attempt n waits base**n seconds before retrying",
        ge=0,
    )
    export_package_retention_days: int = Field(
        default=30,
        description="Days a completed package stays downloadable",
        gt=0,
    )
    export_min_disk_space_mb: int = Field(
        default=500,
        description="Minimum free space on the export volume required by pre-flight validation",
        ge=0,
    )
    export_reconcile_on_startup: bool = Field(
        default=True,
        description="Roll back jobs orphaned by a previous process on application startup",
    )
    export_heartbeat_interval_seconds: float = Field(
        default=30.0,
        description="How often a running export refreshes its job heartbeat",
        gt=0,
    )
    export_stale_after_seconds: float = Field(
        default=120.0,
        description="A pending or running job whose heartbeat is older than this is treated as orphaned",
        gt=0,
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

    # CORS
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins (must be explicitly configured)",
    )

    @model_validator(mode="after")
    def validate_heartbeat_window(self) -> "Settings":
        if self.export_stale_after_seconds <= self.export_heartbeat_interval_seconds:
            msg = "export_stale_after_seconds must be greater than export_heartbeat_interval_seconds"
            raise ValueError(msg)
        return self

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        if not self.cors_origins.strip():
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
