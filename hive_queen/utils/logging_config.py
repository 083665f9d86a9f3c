"""
Logging configuration using structlog for structured logging.

This module provides centralized logging setup for the webhook server and
the scheduled jobs, plus ``log_group`` for binding installation/repository
context around a block of work.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structured logging.

    Sets up structlog with a pipeline of processors that include context
    variables, timestamps, log levels and formatted exceptions.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines when True, human-readable console
            output otherwise
    """
    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a logger instance.

    Args:
        name: Optional logger name (typically __name__ from calling module)

    Returns:
        A structlog logger instance
    """
    return structlog.get_logger(name)


@contextmanager
def log_group(name: str, **context: Any) -> Iterator[None]:
    """Bind ``context`` to every log line emitted inside the block.

    Logs ``group_started`` on entry and ``group_finished`` on exit. Context
    bound by an enclosing group is restored afterwards.

    Example:
        >>> with log_group("repository", repo="hivemoot/colony"):
        ...     log.info("pr_processed", pr=12)  # carries repo=hivemoot/colony
    """
    logger = structlog.get_logger(__name__)
    tokens = structlog.contextvars.bind_contextvars(**context)
    logger.info("group_started", group=name)
    try:
        yield
    finally:
        logger.info("group_finished", group=name)
        structlog.contextvars.reset_contextvars(**tokens)
