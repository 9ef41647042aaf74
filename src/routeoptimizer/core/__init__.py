"""Core module - exceptions and logging."""

from .exceptions import (
    RouteOptimizerException,
    ValidationError,
    CapacityError,
    NotFoundError,
    ConflictError,
    PipelineError,
    DownstreamUnavailable,
    install_exception_handlers,
)
from .logging import (
    setup_logging,
    setup_logging_from_settings,
    get_logger,
    bind_context,
    clear_context,
    job_log_context,
    request_logging_middleware,
)

__all__ = [
    # Exceptions
    "RouteOptimizerException",
    "ValidationError",
    "CapacityError",
    "NotFoundError",
    "ConflictError",
    "PipelineError",
    "DownstreamUnavailable",
    "install_exception_handlers",
    # Logging
    "setup_logging",
    "setup_logging_from_settings",
    "get_logger",
    "bind_context",
    "clear_context",
    "job_log_context",
    "request_logging_middleware",
]
