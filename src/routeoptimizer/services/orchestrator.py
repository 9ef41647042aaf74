"""
Job orchestration: admission, the asynchronous pipeline, and cancellation.

Pipeline per job (stages run strictly in order inside one asyncio task):

1. start       PENDING -> PROCESSING, progress 10
2. preprocess  named local steps, progress 20..65; failures are terminal
3. delegate    call the engine with retry/backoff, progress 70 -> 90
4. finalize    store the engine result (or a fallback) and complete

The whole pipeline runs under the per-job time budget. The task's done
callback deregisters the handle, so the slot is freed only after the task
has written its terminal state.
"""

import asyncio
import functools
import uuid
from dataclasses import dataclass, field
from datetime import timedelta

from routeoptimizer.config.settings import Settings
from routeoptimizer.core.exceptions import CapacityError, NotFoundError, PipelineError, ValidationError
from routeoptimizer.core.logging import get_logger, job_log_context
from routeoptimizer.schemas.jobs import ACTIVE_STATUSES, JobRecord, JobStatus, utcnow
from routeoptimizer.schemas.requests import RouteOptimizationRequest
from routeoptimizer.schemas.responses import JobSubmissionResponse
from routeoptimizer.schemas.results import EngineResult, FallbackResult
from routeoptimizer.services.engine_client import EngineClient
from routeoptimizer.services.events import (
    EventPublisher,
    LifecycleEvent,
    LifecycleEventType,
    LoggingEventPublisher,
)
from routeoptimizer.services.fallback import synthesize_fallback
from routeoptimizer.services.processing_request import DEFAULT_USER_ID, build_processing_request
from routeoptimizer.services.registry import JobRegistry
from routeoptimizer.services.stats import JobCounters, StatsAggregator
from routeoptimizer.services.store import JobStore

logger = get_logger("routeoptimizer.orchestrator")

PROGRESS_STARTED = 10
PROGRESS_ENGINE_CALL = 70
PROGRESS_ENGINE_RESPONSE = 90
PROGRESS_DONE = 100

VALIDATION_STEP = "Validating input data"
PREPROCESSING_STEPS: tuple[tuple[str, int], ...] = (
    (VALIDATION_STEP, 20),
    ("Preparing route data", 35),
    ("Computing distance matrix", 50),
    ("Sequencing points of interest", 65),
)


class JobInactive(Exception):
    """The job left PENDING/PROCESSING under the pipeline (e.g. cancelled)."""


@dataclass
class OrchestratorContext:
    """Everything the orchestrator shares across jobs."""
    settings: Settings
    store: JobStore
    engine: EngineClient
    publisher: EventPublisher
    registry: JobRegistry
    counters: JobCounters = field(default_factory=JobCounters)
    worker_slots: asyncio.Semaphore | None = None

    def __post_init__(self):
        if self.worker_slots is None:
            self.worker_slots = asyncio.Semaphore(self.settings.optimization.worker_pool_size)

    @classmethod
    def create(
        cls,
        settings: Settings,
        store: JobStore,
        engine: EngineClient,
        publisher: EventPublisher | None = None,
    ) -> "OrchestratorContext":
        return cls(
            settings=settings,
            store=store,
            engine=engine,
            publisher=publisher or LoggingEventPublisher(),
            registry=JobRegistry(settings.optimization.max_concurrent_jobs),
        )

    @property
    def stats(self) -> StatsAggregator:
        return StatsAggregator(self.registry, self.counters)


class JobOrchestrator:
    """Submission entry point and pipeline driver."""

    def __init__(self, context: OrchestratorContext):
        self.ctx = context

    # ─────────────────────────────────────────────────────────────────────
    # URLs
    # ─────────────────────────────────────────────────────────────────────

    def status_url(self, job_id: str) -> str:
        s = self.ctx.settings
        return f"{s.base_url.rstrip('/')}{s.api_prefix}/jobs/{job_id}/status"

    def cancel_url(self, job_id: str) -> str:
        s = self.ctx.settings
        return f"{s.base_url.rstrip('/')}{s.api_prefix}/jobs/{job_id}"

    # ─────────────────────────────────────────────────────────────────────
    # Submission
    # ─────────────────────────────────────────────────────────────────────

    async def submit(self, request: RouteOptimizationRequest) -> JobSubmissionResponse:
        """
        Admit, persist and schedule a job; returns without waiting on the pipeline.

        Raises:
            ValidationError: the request has no points of interest
            CapacityError: the concurrency ceiling is reached
        """
        if not request.pois:
            raise ValidationError("At least one point of interest is required", field="pois")

        registry = self.ctx.registry
        if not registry.try_reserve():
            logger.warning(
                "Concurrency ceiling reached, rejecting submission",
                active_jobs=registry.active_count,
                max_concurrent_jobs=registry.max_concurrent_jobs,
            )
            raise CapacityError(registry.active_count, registry.max_concurrent_jobs)

        request = request.model_copy(
            update={
                "route_id": request.route_id or str(uuid.uuid4()),
                "user_id": request.user_id or DEFAULT_USER_ID,
            }
        )
        now = utcnow()
        timeout = self.ctx.settings.optimization.job_timeout_seconds
        record = JobRecord(
            user_id=request.user_id,
            route_id=request.route_id,
            created_at=now,
            updated_at=now,
            estimated_completion_time=now + timedelta(seconds=timeout),
            request_payload=request.model_dump(mode="json"),
        )

        try:
            await self.ctx.store.create(record)
        except BaseException:
            registry.release_reservation()
            raise

        job_id = record.job_id
        self.ctx.counters.record_submitted()
        logger.info(
            "Route optimization job accepted",
            job_id=job_id,
            route_id=record.route_id,
            user_id=record.user_id,
            pois=len(request.pois),
            active_jobs=registry.active_count,
        )

        # The task waits on ``ready`` so the "requested" event precedes "started".
        ready = asyncio.Event()
        task = asyncio.create_task(self._run_job(job_id, request, ready), name=f"route-job-{job_id}")
        registry.register(job_id, task)
        task.add_done_callback(functools.partial(self._on_job_done, job_id))
        try:
            await self._emit(
                LifecycleEventType.REQUESTED,
                record,
                message="Route optimization requested",
                estimated_completion=record.estimated_completion_time,
            )
        finally:
            ready.set()

        return JobSubmissionResponse(
            job_id=job_id,
            polling_url=self.status_url(job_id),
            status_url=self.status_url(job_id),
            cancel_url=self.cancel_url(job_id),
            estimated_completion_time=record.estimated_completion_time,
            retry_after_seconds=self.ctx.settings.polling.pending_retry_after,
            created_at=record.created_at,
        )

    def _on_job_done(self, job_id: str, task: asyncio.Task) -> None:
        self.ctx.registry.deregister(job_id)
        if task.cancelled():
            logger.info("Job task cancelled", job_id=job_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Job task ended with an unhandled error",
                job_id=job_id,
                error=f"{type(exc).__name__}: {exc}",
            )

    # ─────────────────────────────────────────────────────────────────────
    # Pipeline
    # ─────────────────────────────────────────────────────────────────────

    async def _run_job(self, job_id: str, request: RouteOptimizationRequest, ready: asyncio.Event) -> None:
        timeout = self.ctx.settings.optimization.job_timeout_seconds
        with job_log_context(job_id, user_id=request.user_id, route_id=request.route_id):
            try:
                await ready.wait()
                async with self.ctx.worker_slots:
                    await asyncio.wait_for(self._execute(job_id, request), timeout=timeout)
            except asyncio.TimeoutError:
                logger.error("Job exceeded its time budget", timeout=timeout)
                await self._fail(job_id, request, f"Job exceeded its time budget of {timeout}s")
            except JobInactive:
                logger.info("Job is no longer active, pipeline stopped")
            except asyncio.CancelledError:
                await self._mark_cancelled(job_id, request)
                raise
            except Exception as exc:
                logger.exception("Pipeline failed", error=str(exc))
                await self._fail(job_id, request, str(exc) or type(exc).__name__)

    async def _execute(self, job_id: str, request: RouteOptimizationRequest) -> None:
        store = self.ctx.store

        # 1. start
        started = await store.transition(
            job_id, JobStatus.PROCESSING, [JobStatus.PENDING], progress=PROGRESS_STARTED
        )
        if not started:
            raise JobInactive(job_id)
        record = await store.get(job_id)
        await self._emit(
            LifecycleEventType.STARTED,
            record,
            progress=PROGRESS_STARTED,
            message="Route optimization processing started",
            estimated_completion=record.estimated_completion_time,
        )

        # 2. preprocess
        delay = self.ctx.settings.optimization.preprocessing_step_delay_seconds
        for step, progress in PREPROCESSING_STEPS:
            logger.info("Preprocessing step", step=step, progress=progress)
            await self._advance(record, progress, step)
            if step == VALIDATION_STEP:
                validate_coordinates(request)
            if delay:
                await asyncio.sleep(delay)

        # 3. delegate
        await self._advance(record, PROGRESS_ENGINE_CALL, "Calling optimization engine")
        result = await self._call_engine(job_id, request)
        await self._advance(record, PROGRESS_ENGINE_RESPONSE, "Optimization result received")

        # 4. finalize; cancellation is a no-op from here on
        handle = self.ctx.registry.get(job_id)
        if handle is not None:
            handle.finalizing = True
        completed = await store.transition(
            job_id,
            JobStatus.COMPLETED,
            [JobStatus.PROCESSING],
            progress=PROGRESS_DONE,
            result=result,
        )
        if not completed:
            raise JobInactive(job_id)

        self.ctx.counters.record_completed()
        summary = result.summarize()
        logger.info(
            "Route optimization completed",
            degraded=result.degraded,
            stops=summary.stops,
            total_distance_km=summary.total_distance_km,
        )
        await self._emit(
            LifecycleEventType.COMPLETED,
            record,
            progress=PROGRESS_DONE,
            message="Route optimization completed" + (" with fallback result" if result.degraded else ""),
            result_summary=summary,
        )

    async def _call_engine(
        self, job_id: str, request: RouteOptimizationRequest
    ) -> EngineResult | FallbackResult:
        """Downstream failures of any kind end in a fallback, never in FAILED."""
        try:
            body = build_processing_request(request).model_dump(mode="json")
            outcome = await self.ctx.engine.call(body)
        except Exception as exc:
            logger.exception("Engine step failed, using fallback result", error=str(exc))
            return synthesize_fallback(request, job_id)

        if outcome.ok:
            logger.info("Engine responded", attempts=outcome.attempts)
            return EngineResult(payload=outcome.payload)

        logger.warning(
            "Engine unavailable, using fallback result",
            attempts=outcome.attempts,
            error=outcome.error.message,
        )
        return synthesize_fallback(request, job_id)

    async def _advance(self, record: JobRecord, progress: int, message: str) -> None:
        if not await self.ctx.store.update_progress(record.job_id, progress):
            raise JobInactive(record.job_id)
        await self._emit(LifecycleEventType.PROGRESS, record, progress=progress, message=message)

    async def _fail(self, job_id: str, request: RouteOptimizationRequest, message: str) -> None:
        failed = await self.ctx.store.transition(
            job_id, JobStatus.FAILED, ACTIVE_STATUSES, error_message=message
        )
        if not failed:
            return
        self.ctx.counters.record_failed()
        await self._emit(
            LifecycleEventType.FAILED,
            _event_source(job_id, request),
            message=message,
        )

    async def _mark_cancelled(self, job_id: str, request: RouteOptimizationRequest) -> None:
        cancelled = await self.ctx.store.transition(job_id, JobStatus.CANCELLED, ACTIVE_STATUSES)
        if not cancelled:
            return
        self.ctx.counters.record_cancelled()
        await self._emit(
            LifecycleEventType.CANCELLED,
            _event_source(job_id, request),
            message="Job interrupted",
        )

    # ─────────────────────────────────────────────────────────────────────
    # Cancellation
    # ─────────────────────────────────────────────────────────────────────

    async def cancel(self, job_id: str) -> bool:
        """
        Cancel a PENDING or PROCESSING job.

        Returns True only for the call that actually cancelled it; False when
        the job is already terminal or has begun finalizing.

        Raises:
            NotFoundError: unknown job_id
        """
        record = await self.ctx.store.get(job_id)
        if record is None:
            raise NotFoundError("Job", job_id)

        handle = self.ctx.registry.get(job_id)
        if handle is not None and handle.finalizing:
            logger.info("Cancel ignored, job is finalizing", job_id=job_id)
            return False
        if record.is_terminal:
            return False

        cancelled = await self.ctx.store.transition(job_id, JobStatus.CANCELLED, ACTIVE_STATUSES)
        if not cancelled:
            return False

        self.ctx.counters.record_cancelled()
        handle = self.ctx.registry.get(job_id)
        if handle is not None:
            handle.cancel()
        logger.info("Job cancelled", job_id=job_id, was_running=handle is not None)
        await self._emit(LifecycleEventType.CANCELLED, record, message="Route optimization cancelled")
        return True

    async def shutdown(self) -> None:
        """Interrupt every outstanding job and wait for the tasks to unwind."""
        tasks = [handle.task for handle in self.ctx.registry.handles()]
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info("Cancelling outstanding jobs", count=len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    # ─────────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────────

    async def _emit(self, event_type: LifecycleEventType, record: JobRecord, **fields) -> None:
        status = {
            LifecycleEventType.REQUESTED: "REQUESTED",
            LifecycleEventType.STARTED: JobStatus.PROCESSING.value,
            LifecycleEventType.PROGRESS: JobStatus.PROCESSING.value,
            LifecycleEventType.COMPLETED: JobStatus.COMPLETED.value,
            LifecycleEventType.FAILED: JobStatus.FAILED.value,
            LifecycleEventType.CANCELLED: JobStatus.CANCELLED.value,
        }[event_type]
        event = LifecycleEvent(
            event_type=event_type,
            job_id=record.job_id,
            user_id=record.user_id,
            route_id=record.route_id,
            status=status,
            **fields,
        )
        try:
            await self.ctx.publisher.publish(event)
        except Exception as exc:
            logger.error(
                "Failed to publish lifecycle event",
                event_type=event_type.value,
                job_id=record.job_id,
                error=str(exc),
            )


def _event_source(job_id: str, request: RouteOptimizationRequest) -> JobRecord:
    return JobRecord(job_id=job_id, user_id=request.user_id, route_id=request.route_id)


def validate_coordinates(request: RouteOptimizationRequest) -> None:
    """Reject POIs whose coordinates cannot exist."""
    for position, poi in enumerate(request.pois, start=1):
        label = poi.name or f"#{position}"
        if poi.latitude is not None and not -90.0 <= poi.latitude <= 90.0:
            raise PipelineError(f"POI {label} has an out-of-range latitude: {poi.latitude}", step=VALIDATION_STEP)
        if poi.longitude is not None and not -180.0 <= poi.longitude <= 180.0:
            raise PipelineError(f"POI {label} has an out-of-range longitude: {poi.longitude}", step=VALIDATION_STEP)
