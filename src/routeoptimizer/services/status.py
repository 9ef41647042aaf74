"""Read-side projections of job records for pollers and listings."""

from routeoptimizer.config.settings import PollingSettings
from routeoptimizer.core.exceptions import NotFoundError
from routeoptimizer.schemas.jobs import JobRecord, JobStatus
from routeoptimizer.schemas.responses import CompletedRoute, ErrorDetails, JobStatusResponse, JobSummary
from routeoptimizer.schemas.results import EngineResult, FallbackResult
from routeoptimizer.services.registry import JobRegistry
from routeoptimizer.services.store import JobStore


def status_message(record: JobRecord) -> str:
    if record.status == JobStatus.PENDING:
        return "Job is queued for processing"
    if record.status == JobStatus.PROCESSING:
        return f"Route optimization in progress ({record.progress_percentage}%)"
    if record.status == JobStatus.COMPLETED:
        if record.result is not None and record.result.degraded:
            return "Route optimization completed with a fallback result"
        return "Route optimization completed successfully"
    if record.status == JobStatus.FAILED:
        return "Route optimization failed"
    return "Route optimization was cancelled"


class StatusQueryService:
    """Projects stored records plus registry membership into API responses."""

    def __init__(self, store: JobStore, registry: JobRegistry, polling: PollingSettings):
        self.store = store
        self.registry = registry
        self.polling = polling

    def retry_after(self, record: JobRecord) -> int | None:
        """Seconds a poller should wait; None once the job is terminal."""
        if record.status == JobStatus.PENDING:
            if record.job_id in self.registry:
                return self.polling.pending_active_retry_after
            return self.polling.pending_retry_after
        if record.status == JobStatus.PROCESSING:
            return self.polling.processing_retry_after
        return None

    async def get_status(self, job_id: str) -> JobStatusResponse:
        record = await self.store.get(job_id)
        if record is None:
            raise NotFoundError("Job", job_id)

        response = JobStatusResponse(
            job_id=record.job_id,
            status=record.status,
            message=status_message(record),
            progress_percentage=record.progress_percentage,
            created_at=record.created_at,
            updated_at=record.updated_at,
            completed_at=record.completed_at,
            cancelled_at=record.cancelled_at,
            estimated_completion_time=record.estimated_completion_time,
            retry_after_seconds=self.retry_after(record),
        )
        if record.status == JobStatus.COMPLETED and record.result is not None:
            response.result = record.result.model_dump(mode="json")
        elif record.status == JobStatus.FAILED:
            response.error = ErrorDetails(
                code="OPTIMIZATION_FAILED",
                message="Route optimization failed",
                details=record.error_message,
            )
        return response

    async def list_jobs(
        self,
        user_id: str | None = None,
        status: JobStatus | None = None,
        limit: int = 100,
    ) -> list[JobSummary]:
        records = await self.store.list_jobs(user_id=user_id, status=status, limit=limit)
        return [
            JobSummary(
                job_id=r.job_id,
                status=r.status,
                user_id=r.user_id,
                route_id=r.route_id,
                progress_percentage=r.progress_percentage,
                created_at=r.created_at,
                updated_at=r.updated_at,
                completed_at=r.completed_at,
            )
            for r in records
        ]

    async def completed_routes(self, user_id: str | None = None, limit: int = 100) -> list[CompletedRoute]:
        records = await self.store.list_jobs(user_id=user_id, status=JobStatus.COMPLETED, limit=limit)
        return [to_completed_route(r) for r in records if r.result is not None]


def to_completed_route(record: JobRecord) -> CompletedRoute:
    result = record.result
    if isinstance(result, FallbackResult):
        sequence = [stop.model_dump(mode="json") for stop in result.optimized_sequence]
        generated_at = result.generated_at
    elif isinstance(result, EngineResult):
        sequence = result.sequence
        generated_at = result.received_at
    else:
        raise TypeError(f"Unexpected result type: {type(result).__name__}")

    return CompletedRoute(
        request_id=record.job_id,
        route_id=record.route_id,
        user_id=record.user_id,
        summary=result.summarize(),
        optimized_sequence=sequence,
        generated_at=generated_at,
        completed_at=record.completed_at,
    )
