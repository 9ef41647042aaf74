"""Route optimization submission routes."""

from fastapi import APIRouter, Query, Response, status

from routeoptimizer.api.deps import OrchestratorDep, StatusServiceDep
from routeoptimizer.core.logging import get_logger
from routeoptimizer.schemas import CompletedRoute, JobSubmissionResponse, RouteOptimizationRequest

router = APIRouter(prefix="/routes", tags=["routes"])
logger = get_logger("routeoptimizer.api.routes")


@router.post(
    "/optimize",
    response_model=JobSubmissionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def optimize_route(
    data: RouteOptimizationRequest,
    response: Response,
    orchestrator: OrchestratorDep,
):
    """Accept a route for asynchronous optimization and return polling links."""
    submission = await orchestrator.submit(data)
    response.headers["Location"] = submission.status_url
    response.headers["Retry-After"] = str(submission.retry_after_seconds)
    return submission


@router.get("/completed", response_model=list[CompletedRoute])
async def list_completed_routes(
    status_service: StatusServiceDep,
    user_id: str | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
):
    """Completed optimizations, newest first."""
    return await status_service.completed_routes(user_id=user_id, limit=limit)
