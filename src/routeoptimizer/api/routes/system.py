"""Capacity, load and health reporting."""

from fastapi import APIRouter, Response, status

from routeoptimizer.api.deps import ContextDep, SettingsDep
from routeoptimizer.core.logging import get_logger
from routeoptimizer.schemas import CapacityResponse, HealthResponse, SystemStatsResponse
from routeoptimizer.schemas.jobs import utcnow
from routeoptimizer.services.stats import load_percentage, load_status

router = APIRouter(prefix="/system", tags=["system"])
logger = get_logger("routeoptimizer.api.system")

HEALTH_PROBE_ID = "00000000-0000-0000-0000-000000000000"


@router.get("/stats", response_model=SystemStatsResponse)
async def system_stats(context: ContextDep):
    """Counters plus current load classification."""
    snapshot = context.stats.snapshot()
    load = load_percentage(snapshot.active_jobs, snapshot.max_concurrent_jobs)
    return SystemStatsResponse(
        **snapshot.model_dump(),
        system_load=round(load, 2),
        status=load_status(load, context.settings.load),
        timestamp=utcnow(),
    )


@router.get("/capacity", response_model=CapacityResponse)
async def system_capacity(context: ContextDep, response: Response):
    """Whether new submissions can be admitted right now; 503 when full."""
    active = context.registry.active_count
    maximum = context.registry.max_concurrent_jobs
    can_accept = active < maximum
    if not can_accept:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return CapacityResponse(
        active_jobs=active,
        max_concurrent_jobs=maximum,
        available_capacity=max(0, maximum - active),
        can_accept_jobs=can_accept,
        capacity_utilization=round(load_percentage(active, maximum), 2),
        timestamp=utcnow(),
    )


@router.get("/health", response_model=HealthResponse)
async def system_health(context: ContextDep, settings: SettingsDep, response: Response):
    """Extended health: store reachability and job metrics."""
    snapshot = context.stats.snapshot()
    metrics = {
        "active_jobs": float(snapshot.active_jobs),
        "max_concurrent_jobs": float(snapshot.max_concurrent_jobs),
        "success_rate": snapshot.success_rate,
        "system_load": round(load_percentage(snapshot.active_jobs, snapshot.max_concurrent_jobs), 2),
    }
    try:
        await context.store.get(HEALTH_PROBE_ID)
    except Exception as exc:
        logger.error("Job store health probe failed", error=str(exc))
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="DOWN",
            service=settings.app_name,
            version=settings.app_version,
            timestamp=utcnow(),
            components={"job_store": "DOWN", "registry": "UP"},
            metrics=metrics,
            error=str(exc),
        )

    return HealthResponse(
        status="UP",
        service=settings.app_name,
        version=settings.app_version,
        timestamp=utcnow(),
        components={"job_store": "UP", "registry": "UP"},
        metrics=metrics,
    )
