"""Configuration module for slack_archiver."""

from slack_archiver.config.loader import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    EnvVarNotFoundError,
    load_config,
)
from slack_archiver.config.models import (
    AppConfig,
    ArchiveConfig,
    DatabaseConfig,
    ExportConfig,
    LoggingConfig,
    ServerConfig,
    SlackConfig,
)

__all__ = [
    # Exceptions
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "EnvVarNotFoundError",
    # Functions
    "load_config",
    # Models
    "AppConfig",
    "ArchiveConfig",
    "DatabaseConfig",
    "ExportConfig",
    "LoggingConfig",
    "ServerConfig",
    "SlackConfig",
]
