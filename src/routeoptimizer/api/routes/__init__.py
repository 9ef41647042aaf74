"""API routes."""

from .health import router as health_router
from .optimize import router as optimize_router
from .jobs import router as jobs_router
from .system import router as system_router

__all__ = [
    "health_router",
    "optimize_router",
    "jobs_router",
    "system_router",
]
