"""
Logging configuration using structlog for structured logging.

JSON output is the default so logs can be shipped as-is; the CLI switches to
the console renderer and writes to stderr so command output stays parseable.
"""

import logging
from typing import Any, TextIO

import structlog


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True,
    stream: TextIO | None = None,
    cache_loggers: bool = True,
) -> None:
    """Configure structured logging.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines when True, human-readable lines otherwise
        stream: Destination for log lines (stdout when omitted)
        cache_loggers: Cache bound loggers on first use
    """
    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=cache_loggers,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a logger instance.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("key_added", key_id="1718000000000")
    """
    return structlog.get_logger(name)


def mask_secret(secret: str | None) -> str:
    """Mask an API key for display and logs.

    Keeps the first and last four characters of long secrets.

    Example:
        >>> mask_secret("AIzaSyA1234567890abcd")
        'AIza*************abcd'
    """
    if not secret:
        return ""
    if len(secret) > 8:
        return secret[:4] + "*" * (len(secret) - 8) + secret[-4:]
    return "*" * len(secret)
