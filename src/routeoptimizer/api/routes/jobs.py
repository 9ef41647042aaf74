"""Job polling and cancellation routes."""

from fastapi import APIRouter, Query, Response, status

from routeoptimizer.api.deps import OrchestratorDep, StatusServiceDep
from routeoptimizer.core.exceptions import ConflictError
from routeoptimizer.core.logging import get_logger
from routeoptimizer.schemas import JobStatus, JobStatusResponse, JobSummary

router = APIRouter(prefix="/jobs", tags=["jobs"])
logger = get_logger("routeoptimizer.api.jobs")

STATUS_CODES = {
    JobStatus.PENDING: status.HTTP_202_ACCEPTED,
    JobStatus.PROCESSING: status.HTTP_202_ACCEPTED,
    JobStatus.COMPLETED: status.HTTP_200_OK,
    JobStatus.FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    JobStatus.CANCELLED: status.HTTP_410_GONE,
}


# ─────────────────────────────────────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────────────────────────────────────

@router.get("", response_model=list[JobSummary])
async def list_jobs(
    status_service: StatusServiceDep,
    user_id: str | None = None,
    status_filter: JobStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=1000),
):
    """List jobs, newest first."""
    return await status_service.list_jobs(user_id=user_id, status=status_filter, limit=limit)


@router.get("/{job_id}/status", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    response: Response,
    status_service: StatusServiceDep,
):
    """Poll a job. The HTTP status mirrors the job status."""
    job_status = await status_service.get_status(job_id)
    response.status_code = STATUS_CODES[job_status.status]
    if job_status.retry_after_seconds is not None:
        response.headers["Retry-After"] = str(job_status.retry_after_seconds)
    return job_status


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_job(
    job_id: str,
    orchestrator: OrchestratorDep,
    status_service: StatusServiceDep,
):
    """Cancel a pending or processing job."""
    if await orchestrator.cancel(job_id):
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    current = await status_service.get_status(job_id)
    logger.info("Cancel refused", job_id=job_id, status=current.status.value)
    raise ConflictError(
        f"Job {job_id} can no longer be cancelled",
        current_status=current.status.value,
    )
