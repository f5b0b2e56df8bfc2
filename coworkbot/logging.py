"""Logging configuration for Coworkbot."""

import logging
import sys

import structlog

from coworkbot.config import Config, get_config


def configure_logging(config: Config | None = None) -> None:
    """Configure structlog from the ``logging`` config section.

    Records go to stderr so the chat transcript on stdout stays clean.
    """
    config = config or get_config()

    log_level = getattr(logging, config.logging.level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if config.logging.format == "console":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance, named after the calling module when given."""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
