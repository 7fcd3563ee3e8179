"""Logging setup module using structlog."""

import logging
import sys

import structlog
from structlog.stdlib import BoundLogger

from slack_archiver.config.models import LoggingConfig

# Third-party loggers that are chatty at INFO level
LIBRARY_LOGGERS = ("aiohttp.access", "aiosqlite", "slack_sdk", "sqlalchemy.engine")


def setup_logging(config: LoggingConfig) -> None:
    """Initialize logging configuration.

    Routes both structlog and stdlib records through one stdout handler so
    that library output shares the application format.

    Args:
        config: Logging configuration specifying level and format.
    """
    log_level = getattr(logging, config.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    library_level = getattr(logging, config.library_level)
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(max(library_level, log_level))

    shared_processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if config.format == "json":
        renderer: structlog.typing.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler.setFormatter(formatter)


def get_logger(name: str | None = None, **context: object) -> BoundLogger:
    """Get a logger instance.

    Args:
        name: Logger name, typically the component name.
        **context: Key/value pairs bound to every entry of the logger.

    Returns:
        A bound logger instance that can be used for logging.
    """
    logger: BoundLogger = structlog.stdlib.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger
