"""structlog setup shared by the API and the refresh CLI.

Every event carries the correlation id of the unit of work it belongs to:
``request_id`` for API calls, ``refresh_id`` for one rollup refresh (a CLI run
or a refresh request may contain several).
"""

import logging
import sys
import uuid
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog

from stitchlab.core.config import get_settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
refresh_id_ctx: ContextVar[str | None] = ContextVar("refresh_id", default=None)

_CORRELATION_VARS = (("request_id", request_id_ctx), ("refresh_id", refresh_id_ctx))


def add_correlation_ids(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Copy the active request and refresh ids into the event."""
    for key, var in _CORRELATION_VARS:
        value = var.get()
        if value:
            event_dict[key] = value
    return event_dict


@contextmanager
def refresh_context() -> Iterator[str]:
    """Tag events emitted inside the block with a fresh ``refresh_id``."""
    refresh_id = uuid.uuid4().hex[:12]
    token = refresh_id_ctx.set(refresh_id)
    try:
        yield refresh_id
    finally:
        refresh_id_ctx.reset(token)


def configure_logging() -> None:
    """Configure structlog, and route stdlib loggers (uvicorn, sqlalchemy) to stdout."""
    settings = get_settings()
    level = getattr(logging, settings.log_level)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer: structlog.types.Processor
    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_correlation_ids,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Logger for ``name`` (pass ``__name__``)."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
