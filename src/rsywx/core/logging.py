"""Structured logging for the library API.

structlog sits on top of the standard ``logging`` module:
- console rendering while developing, JSON in production
- every entry carries the request correlation ID when one is bound
- events are snake_case names with keyword context, e.g.
  ``logger.info("cache_hit", cache_key="book_detail:00666")``

Usage:
    from rsywx.core.logging import configure_logging, get_logger

    configure_logging(settings)
    logger = get_logger(__name__)
    logger.info("book_detail_loaded", bookid="00666", from_cache=False)
"""

import logging
import sys
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, Processor

from rsywx.config import Settings

correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Loggers that are too chatty at INFO for an API serving many small queries
_NOISY_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "aiosqlite",
    "aiomysql",
    "asyncpg",
)


def get_correlation_id() -> str | None:
    """Get the current correlation ID from context."""
    return correlation_id_ctx.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID in context."""
    correlation_id_ctx.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID from context."""
    correlation_id_ctx.set(None)


def add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Structlog processor attaching the request correlation ID."""
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def add_service_name(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Structlog processor tagging every entry with the service name."""
    event_dict.setdefault("service", "rsywx")
    return event_dict


def _build_renderer(settings: Settings) -> Processor:
    if settings.use_json_logs:
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer(colors=settings.is_development)


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        settings: Application settings. If None, uses default settings.
    """
    if settings is None:
        from rsywx.config import get_settings

        settings = get_settings()

    log_level = getattr(logging, settings.log_level.value, logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_correlation_id,
        add_service_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = _build_renderer(settings)
    processors: list[Processor] = [*shared_processors]
    if settings.use_json_logs:
        processors.append(structlog.processors.format_exc_info)
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name, typically __name__ of the calling module.

    Returns:
        A bound structlog logger.
    """
    return structlog.get_logger(name)
