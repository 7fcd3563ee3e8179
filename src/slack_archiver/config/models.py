"""Pydantic models for application configuration."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class SlackConfig(BaseModel):
    """Slack integration configuration."""

    bot_token: str = Field(
        ...,
        description=(
            "Slack bot token used for Web API calls (typically starts with 'xoxb-')."
        ),
    )
    signing_secret: str | None = Field(
        default=None,
        description=(
            "Signing secret of the Slack app. When set, webhook requests "
            "without a valid signature are rejected."
        ),
    )
    api_base_url: str | None = Field(
        default=None,
        description="Override for the Slack Web API base URL (testing only).",
    )


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = Field(
        ...,
        description=(
            "SQLAlchemy-style database connection URL "
            "(e.g., 'sqlite+aiosqlite:///path/to/db')."
        ),
    )


class ExportConfig(BaseModel):
    """Location of an unpacked Slack export."""

    root: Path = Field(
        ...,
        description=(
            "Directory holding one subfolder per channel plus users.json "
            "and, optionally, channels.json."
        ),
    )


class ArchiveConfig(BaseModel):
    """Ingestion engine tuning."""

    timezone: str = Field(
        default="Asia/Tokyo",
        description="IANA time zone used to format the createdAt column.",
    )
    time_budget_seconds: float = Field(
        default=270.0,
        description=(
            "Wall-clock budget of one batch invocation. Once exceeded the job "
            "persists its progress and schedules a continuation."
        ),
    )
    chunk_size: int = Field(default=5000, gt=0)
    continuation_delay_seconds: float = Field(default=10.0, ge=0)
    lock_timeout_seconds: float = Field(default=10.0, gt=0)
    event_dedup_ttl_seconds: float = Field(default=600.0, gt=0)
    user_cache_ttl_seconds: float = Field(default=21600.0, gt=0)
    duplicate_check_window: int = Field(
        default=50,
        gt=0,
        description="Number of trailing rows checked for a duplicate timestamp.",
    )
    repair_interval_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Interval of the periodic thread repair job (0 disables it).",
    )
    max_integrity_findings: int = Field(default=50, gt=0)
    credential_table: str = Field(
        default="Sheet1",
        description="Table whose first data cell holds the shared reader password.",
    )


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "text"] = "json"
    library_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = (
        "WARNING"
    )


class AppConfig(BaseModel):
    """Application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    slack: SlackConfig | None = None
    database: DatabaseConfig | None = None
    export: ExportConfig | None = None
