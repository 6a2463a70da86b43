"""Structured logging configuration using structlog."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog
from structlog.typing import EventDict, Processor

SERVICE_NAME = "webhook-dispatcher"
SERVICE_VERSION = "1.0.0"
MAX_LOG_BYTES = 5 * 1024 * 1024


def add_service_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service context to log entries."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", SERVICE_VERSION)
    return event_dict


shared_processors: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    add_service_context,
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def _formatter(renderer: Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def _file_handler(
    path: Path, formatter: logging.Formatter, level: int, backups: int
) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=backups)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    level: str = "INFO", json_logs: bool = True, log_dir: str | None = None
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Minimum level for the console and combined outputs
        json_logs: Render the console as JSON instead of colorized text
        log_dir: If set, also write error.log, combined.log and webhooks.log
            (JSON) there, rotated at 5 MiB
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    json_formatter = _formatter(structlog.processors.JSONRenderer())

    if json_logs:
        console_formatter = json_formatter
    else:
        console_formatter = _formatter(structlog.dev.ConsoleRenderer(colors=True))

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(console_formatter)
    handlers: list[logging.Handler] = [console]

    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        handlers += [
            _file_handler(directory / "error.log", json_formatter, logging.ERROR, 10),
            _file_handler(directory / "combined.log", json_formatter, log_level, 10),
            _file_handler(directory / "webhooks.log", json_formatter, logging.INFO, 5),
        ]

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(existing)
            existing.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(log_level)

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
