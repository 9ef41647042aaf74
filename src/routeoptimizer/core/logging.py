"""
Structured logging for the route optimizer.

Two scopes of context reach every log line through structlog contextvars:

* request scope, bound by ``request_logging_middleware`` for each HTTP call
  (``request_id``, ``method``, ``path``)
* job scope, bound by ``job_log_context`` inside a job's pipeline task
  (``job_id``, ``user_id``, ``route_id``)

Each asyncio task runs in a copy of the context it was created from, so a job
task spawned by a request starts with that request's ``request_id`` and keeps
its job fields to itself.
"""

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator

import structlog
from structlog.types import EventDict, Processor

REQUEST_ID_HEADER = "X-Request-ID"

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore", "aiosqlite")


def flatten_enums(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Render enum values (job status, event type) as their plain value."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def _shared_processors(add_timestamp: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        flatten_enums,
        structlog.processors.StackInfoRenderer(),
    ]
    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))
    return processors


def setup_logging(level: str = "INFO", json_format: bool = False, add_timestamp: bool = True) -> None:
    """
    Route structlog and stdlib logging through one stdout handler.

    Args:
        level: Root log level name
        json_format: JSON lines (production) instead of the colored console
        add_timestamp: Prefix records with an ISO-8601 UTC timestamp
    """
    shared = _shared_processors(add_timestamp)

    if json_format:
        renderer: Processor = structlog.processors.JSONRenderer()
        shared.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_from_settings(settings) -> None:
    """Configure logging for an application ``Settings`` instance."""
    setup_logging(
        level="DEBUG" if settings.debug else "INFO",
        json_format=settings.is_production(),
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind values to every later log line in the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def job_log_context(job_id: str, user_id: str | None = None, route_id: str | None = None) -> Iterator[None]:
    """
    Bind a job's identifiers for the duration of the block.

    The previous values are restored on exit, so nested use and reuse of a
    context after the block both see the outer bindings.
    """
    fields = {"job_id": job_id}
    if user_id is not None:
        fields["user_id"] = user_id
    if route_id is not None:
        fields["route_id"] = route_id
    with structlog.contextvars.bound_contextvars(**fields):
        yield


async def request_logging_middleware(request, call_next):
    """
    Bind request context, log the outcome, echo the request id header.

    Clients may supply ``X-Request-ID``; otherwise a short id is generated.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
    clear_context()
    bind_context(request_id=request_id, method=request.method, path=request.url.path)
    started = time.perf_counter()
    try:
        response = await call_next(request)
        get_logger("routeoptimizer.http").debug(
            "Request handled",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        clear_context()
