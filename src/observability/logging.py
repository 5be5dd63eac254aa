"""
Structured logging configuration using structlog.

JSON-formatted logs in production, colored console logs in development.
Workers bind per-event context (story_id, message_id) so every line logged
while handling an event carries it.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from src.config.settings import get_settings
from src.observability.tracing import add_trace_context


def setup_logging(log_level: str | None = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Override for the configured level (e.g. "DEBUG").

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Story analyzed", story_id="...", provider="Gemini")
    """
    settings = get_settings()
    level = log_level or settings.log_level

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        add_trace_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level),
    )

    # Set log levels for noisy libraries
    for noisy in ("httpx", "httpcore", "asyncio", "openai", "yt_dlp"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """Bind context variables to all subsequent log messages."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
