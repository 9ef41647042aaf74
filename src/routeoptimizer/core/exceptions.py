"""Route optimizer exceptions and error handlers."""

import traceback
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from routeoptimizer.core.logging import get_logger

logger = get_logger("routeoptimizer.errors")


# ─────────────────────────────────────────────────────────────────────────────
# Custom Exceptions
# ─────────────────────────────────────────────────────────────────────────────

class RouteOptimizerException(Exception):
    """Base exception for the route optimizer."""

    def __init__(
        self,
        message: str,
        code: str = "ROUTE_OPTIMIZER_ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(RouteOptimizerException):
    """Malformed submission, rejected before a job record exists."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"field": field} if field else {},
        )


class CapacityError(RouteOptimizerException):
    """Admission refused because the concurrency ceiling is reached."""

    def __init__(self, active_jobs: int, max_concurrent_jobs: int):
        super().__init__(
            message="System busy: too many jobs in progress. Try again later.",
            code="CAPACITY_EXCEEDED",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={
                "active_jobs": active_jobs,
                "max_concurrent_jobs": max_concurrent_jobs,
            },
        )


class NotFoundError(RouteOptimizerException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            code="NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "identifier": str(identifier)},
        )


class ConflictError(RouteOptimizerException):
    """Operation conflicts with the current state of a resource."""

    def __init__(self, message: str, current_status: str | None = None):
        super().__init__(
            message=message,
            code="CONFLICT",
            status_code=status.HTTP_409_CONFLICT,
            details={"status": current_status} if current_status else {},
        )


class PipelineError(RouteOptimizerException):
    """Pipeline execution error."""

    def __init__(self, message: str, step: str | None = None):
        super().__init__(
            message=message,
            code="PIPELINE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"step": step} if step else {},
        )


class DownstreamUnavailable(RouteOptimizerException):
    """
    The optimization engine could not be reached.

    Returned (not raised) by the engine client once retries are exhausted or
    the overall timeout elapses; the pipeline turns it into a fallback result.
    """

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        last_status: int | None = None,
        timed_out: bool = False,
    ):
        details: dict[str, Any] = {"attempts": attempts, "timed_out": timed_out}
        if last_status is not None:
            details["last_status"] = last_status
        super().__init__(
            message=message,
            code="DOWNSTREAM_UNAVAILABLE",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details,
        )
        self.attempts = attempts
        self.last_status = last_status
        self.timed_out = timed_out


# ─────────────────────────────────────────────────────────────────────────────
# Exception Handlers
# ─────────────────────────────────────────────────────────────────────────────

def install_exception_handlers(app: FastAPI, include_trace: bool = False) -> None:
    """Install exception handlers on FastAPI app."""

    @app.exception_handler(RouteOptimizerException)
    async def route_optimizer_exception_handler(request: Request, exc: RouteOptimizerException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.code,
                "message": exc.message,
                "details": exc.details,
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "HTTP_ERROR",
                "message": str(exc.detail),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning("Request validation failed", errors=exc.errors())
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": jsonable_errors(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error", error=str(exc))
        content = {
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
        }
        if include_trace:
            content["trace"] = traceback.format_exc()
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=content,
        )


def jsonable_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop the non-serializable ``ctx``/``input`` entries pydantic attaches."""
    return [
        {key: value for key, value in error.items() if key in ("loc", "msg", "type")}
        for error in errors
    ]
