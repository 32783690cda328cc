"""Structured logging with structlog.

Application code logs through structlog with dotted event names
(``cache.hit``, ``analytics.leaderboard_computed``). Records from stdlib
loggers (uvicorn, SQLAlchemy, alembic) are routed through the same
processor chain so every line shares one format and carries the
request ID.
"""

import logging
import sys
from collections.abc import MutableMapping
from contextvars import ContextVar
from typing import Any

import structlog

from app.core.config import Settings, get_settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Third-party loggers that are noisy at INFO.
_QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "asyncio")


def add_request_id(
    _logger: Any,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Copy the current request ID, if any, into the event."""
    request_id = request_id_ctx.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def _renderer(settings: Settings) -> structlog.types.Processor:
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=settings.is_development)


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        settings: Source of level and format; defaults to application settings.
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)

    # PrintLogger has no name, so add_logger_name only runs on stdlib records.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_id,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(settings),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[structlog.stdlib.add_logger_name, *shared_processors],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if settings.debug else logging.WARNING)


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Get a structlog logger.

    Args:
        name: Logger name, usually the calling module's ``__name__``.

    Returns:
        Bound logger.
    """
    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger
