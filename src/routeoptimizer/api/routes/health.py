"""Liveness and discovery routes, served outside the API prefix."""

import time

from fastapi import APIRouter, Request

from routeoptimizer.api.deps import ContextDep, SettingsDep

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request, settings: SettingsDep, ctx: ContextDep):
    """Liveness probe with the current admission headroom."""
    registry = ctx.registry
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.env,
        "uptime_seconds": round(time.monotonic() - request.app.state.started_at, 3),
        "active_jobs": registry.active_count,
        "accepting_jobs": registry.active_count < registry.max_concurrent_jobs,
    }


@router.get("/")
async def root(settings: SettingsDep):
    """Entry points for clients discovering the service."""
    prefix = settings.api_prefix
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "submit": f"{prefix}/routes/optimize",
        "jobs": f"{prefix}/jobs",
        "stats": f"{prefix}/system/stats",
        "docs": "/docs" if settings.debug else None,
    }
