"""
Unit tests for the job orchestrator.

The engine is an httpx.MockTransport; a FakeEngine gate holds requests in
flight so tests can observe jobs mid-pipeline.
"""

import asyncio
import json

import httpx
import pytest

from routeoptimizer.core.exceptions import CapacityError, NotFoundError, ValidationError
from routeoptimizer.schemas import EngineResult, FallbackResult, JobStatus, RouteOptimizationRequest
from routeoptimizer.services import (
    EngineClient,
    InMemoryEventPublisher,
    InMemoryJobStore,
    JobOrchestrator,
    LifecycleEventType,
    OrchestratorContext,
)


class ExplodingPublisher(InMemoryEventPublisher):
    async def publish(self, event):
        raise RuntimeError("event bus down")


@pytest.fixture
def build(make_settings, make_engine):
    def _build(engine=None, publisher=None, **settings_kwargs):
        settings = make_settings(**settings_kwargs)
        engine = engine or make_engine()
        client = EngineClient.from_settings(settings.engine, transport=engine.transport)
        context = OrchestratorContext.create(
            settings,
            InMemoryJobStore(),
            client,
            publisher or InMemoryEventPublisher(),
        )
        return JobOrchestrator(context), engine

    return _build


async def wait_until_done(orchestrator: JobOrchestrator, job_id: str, timeout: float = 5.0):
    """Wait for a terminal record and a released registry slot."""
    async def poll():
        while True:
            record = await orchestrator.ctx.store.get(job_id)
            if record.is_terminal and job_id not in orchestrator.ctx.registry:
                return record
            await asyncio.sleep(0.01)

    return await asyncio.wait_for(poll(), timeout)


async def wait_for_engine(engine, count: int = 1, timeout: float = 5.0):
    async def poll():
        while engine.calls < count:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


class TestSubmission:
    async def test_returns_polling_links(self, build, route_request, engine_ok, make_engine):
        orchestrator, engine = build(engine=make_engine([engine_ok()]))

        submission = await orchestrator.submit(route_request)

        assert submission.status == "ACCEPTED"
        assert submission.polling_url == f"http://testserver/api/v1/jobs/{submission.job_id}/status"
        assert submission.cancel_url == f"http://testserver/api/v1/jobs/{submission.job_id}"
        assert submission.retry_after_seconds == 30
        assert submission.estimated_completion_time > submission.created_at

        record = await orchestrator.ctx.store.get(submission.job_id)
        assert record is not None
        assert record.request_payload["route_id"] == "route-1"
        await wait_until_done(orchestrator, submission.job_id)

    async def test_empty_pois_rejected(self, build):
        orchestrator, _ = build()

        with pytest.raises(ValidationError):
            await orchestrator.submit(RouteOptimizationRequest(pois=[]))

        assert orchestrator.ctx.registry.active_count == 0
        assert await orchestrator.ctx.store.list_jobs() == []

    async def test_missing_identifiers_defaulted(self, build, engine_ok, make_engine):
        orchestrator, _ = build(engine=make_engine([engine_ok()]))

        submission = await orchestrator.submit(RouteOptimizationRequest(pois=[{"name": "A"}]))
        record = await wait_until_done(orchestrator, submission.job_id)

        assert record.user_id == "system-user"
        assert record.route_id

    async def test_capacity_ceiling(self, build, route_request, engine_ok, make_engine):
        engine = make_engine(default=engine_ok())
        engine.gate = asyncio.Event()
        orchestrator, _ = build(engine=engine, max_concurrent_jobs=1)

        first = await orchestrator.submit(route_request)
        with pytest.raises(CapacityError) as exc_info:
            await orchestrator.submit(route_request)

        assert exc_info.value.status_code == 503
        assert orchestrator.ctx.counters.total_submitted == 1
        assert len(await orchestrator.ctx.store.list_jobs()) == 1

        engine.gate.set()
        await wait_until_done(orchestrator, first.job_id)

        # Slot freed once the first job finished
        second = await orchestrator.submit(route_request)
        await wait_until_done(orchestrator, second.job_id)

    async def test_concurrent_submits_respect_ceiling(self, build, route_request, engine_ok, make_engine):
        engine = make_engine(default=engine_ok())
        engine.gate = asyncio.Event()
        orchestrator, _ = build(engine=engine, max_concurrent_jobs=3)

        outcomes = await asyncio.gather(
            *(orchestrator.submit(route_request) for _ in range(10)),
            return_exceptions=True,
        )

        accepted = [o for o in outcomes if not isinstance(o, Exception)]
        rejected = [o for o in outcomes if isinstance(o, CapacityError)]
        assert len(accepted) == 3
        assert len(rejected) == 7
        assert orchestrator.ctx.registry.active_count == 3
        assert orchestrator.ctx.counters.total_submitted == 3
        assert len(await orchestrator.ctx.store.list_jobs()) == 3

        engine.gate.set()
        for submission in accepted:
            assert (await wait_until_done(orchestrator, submission.job_id)).status == JobStatus.COMPLETED
        assert orchestrator.ctx.registry.active_count == 0

    async def test_store_failure_releases_slot(self, build, route_request):
        orchestrator, _ = build()

        async def broken_create(record):
            raise RuntimeError("disk full")

        orchestrator.ctx.store.create = broken_create

        with pytest.raises(RuntimeError):
            await orchestrator.submit(route_request)
        assert orchestrator.ctx.registry.active_count == 0


class TestPipeline:
    async def test_engine_success(self, build, route_request, engine_ok, make_engine):
        orchestrator, engine = build(engine=make_engine([engine_ok()]))

        submission = await orchestrator.submit(route_request)
        record = await wait_until_done(orchestrator, submission.job_id)

        assert record.status == JobStatus.COMPLETED
        assert record.progress_percentage == 100
        assert isinstance(record.result, EngineResult)
        assert record.result.payload["optimized_route_id"] == "route-opt-1"
        assert record.completed_at is not None
        assert engine.calls == 1

        counters = orchestrator.ctx.counters
        assert counters.totals() == (1, 1, 0, 0)
        assert orchestrator.ctx.registry.active_count == 0

    async def test_engine_receives_mapped_body(self, build, route_request, engine_ok, make_engine):
        orchestrator, engine = build(engine=make_engine([engine_ok()]))

        submission = await orchestrator.submit(route_request)
        await wait_until_done(orchestrator, submission.job_id)

        body = json.loads(engine.requests[0].content)
        assert body["route_id"] == "route-1"
        assert [p["id"] for p in body["pois"]] == [1, 2, 3]
        assert body["constraints"]["start_time"] == "09:00"

    async def test_event_order_and_progress(self, build, route_request, engine_ok, make_engine):
        orchestrator, _ = build(engine=make_engine([engine_ok()]))

        submission = await orchestrator.submit(route_request)
        await wait_until_done(orchestrator, submission.job_id)

        events = orchestrator.ctx.publisher.for_job(submission.job_id)
        types = [e.event_type for e in events]
        assert types[0] == LifecycleEventType.REQUESTED
        assert types[1] == LifecycleEventType.STARTED
        assert types[-1] == LifecycleEventType.COMPLETED

        progress = [e.progress for e in events if e.event_type == LifecycleEventType.PROGRESS]
        assert progress == [20, 35, 50, 65, 70, 90]
        assert events[-1].result_summary.stops == 2
        assert all(e.user_id == "user-1" and e.route_id == "route-1" for e in events)

    async def test_fallback_when_engine_down(self, build, route_request, make_engine):
        engine = make_engine(default=httpx.Response(503))
        orchestrator, _ = build(engine=engine, max_attempts=3)

        submission = await orchestrator.submit(route_request)
        record = await wait_until_done(orchestrator, submission.job_id)

        assert record.status == JobStatus.COMPLETED
        assert isinstance(record.result, FallbackResult)
        assert record.result.degraded is True
        assert [s.poi_id for s in record.result.optimized_sequence] == [1, 2, 3]
        assert engine.calls == 3
        assert orchestrator.ctx.counters.total_completed == 1

    async def test_fallback_on_connection_errors(self, build, route_request, make_engine):
        engine = make_engine(default=httpx.ConnectError("connection refused"))
        orchestrator, _ = build(engine=engine, max_attempts=2)

        submission = await orchestrator.submit(route_request)
        record = await wait_until_done(orchestrator, submission.job_id)

        assert record.status == JobStatus.COMPLETED
        assert record.result.degraded is True

    async def test_fallback_on_engine_deadline(self, build, route_request, make_engine):
        engine = make_engine()
        engine.gate = asyncio.Event()
        orchestrator, _ = build(engine=engine, overall_timeout_seconds=0.1, job_timeout_seconds=5.0)

        submission = await orchestrator.submit(route_request)
        record = await wait_until_done(orchestrator, submission.job_id)

        assert record.status == JobStatus.COMPLETED
        assert record.result.degraded is True

    async def test_job_timeout_fails(self, build, route_request, make_engine):
        engine = make_engine()
        engine.gate = asyncio.Event()
        orchestrator, _ = build(engine=engine, overall_timeout_seconds=30.0, job_timeout_seconds=0.2)

        submission = await orchestrator.submit(route_request)
        record = await wait_until_done(orchestrator, submission.job_id)

        assert record.status == JobStatus.FAILED
        assert "time budget" in record.error_message
        assert record.result is None
        assert orchestrator.ctx.counters.totals() == (1, 0, 1, 0)
        failed = orchestrator.ctx.publisher.of_type(LifecycleEventType.FAILED)
        assert [e.job_id for e in failed] == [submission.job_id]

    async def test_invalid_coordinates_fail(self, build, make_payload, make_engine):
        orchestrator, engine = build(engine=make_engine())
        payload = make_payload()
        payload["pois"][1]["latitude"] = 95.0

        submission = await orchestrator.submit(RouteOptimizationRequest.model_validate(payload))
        record = await wait_until_done(orchestrator, submission.job_id)

        assert record.status == JobStatus.FAILED
        assert "latitude" in record.error_message
        assert engine.calls == 0

    async def test_publisher_errors_do_not_fail_jobs(self, build, route_request, engine_ok, make_engine):
        orchestrator, _ = build(engine=make_engine([engine_ok()]), publisher=ExplodingPublisher())

        submission = await orchestrator.submit(route_request)
        record = await wait_until_done(orchestrator, submission.job_id)

        assert record.status == JobStatus.COMPLETED

    async def test_worker_pool_bounds_parallelism(self, build, route_request, engine_ok, make_engine):
        engine = make_engine(default=engine_ok())
        engine.gate = asyncio.Event()
        orchestrator, _ = build(engine=engine, worker_pool_size=1)

        first = await orchestrator.submit(route_request)
        second = await orchestrator.submit(route_request)
        await wait_for_engine(engine, 1)
        await asyncio.sleep(0.05)

        assert engine.calls == 1
        waiting = await orchestrator.ctx.store.get(second.job_id)
        assert waiting.status == JobStatus.PENDING

        engine.gate.set()
        for job_id in (first.job_id, second.job_id):
            assert (await wait_until_done(orchestrator, job_id)).status == JobStatus.COMPLETED


class TestCancellation:
    async def test_cancel_in_flight(self, build, route_request, make_engine):
        engine = make_engine()
        engine.gate = asyncio.Event()
        orchestrator, _ = build(engine=engine)

        submission = await orchestrator.submit(route_request)
        await wait_for_engine(engine)

        assert await orchestrator.cancel(submission.job_id) is True
        record = await wait_until_done(orchestrator, submission.job_id)

        assert record.status == JobStatus.CANCELLED
        assert record.cancelled_at is not None
        assert record.progress_percentage == 70
        assert record.result is None
        assert orchestrator.ctx.counters.totals() == (1, 0, 0, 1)

        cancelled = orchestrator.ctx.publisher.of_type(LifecycleEventType.CANCELLED)
        assert len(cancelled) == 1

    async def test_cancel_during_retry_backoff(self, build, route_request, make_engine):
        engine = make_engine(default=httpx.Response(503))
        orchestrator, _ = build(
            engine=engine,
            max_attempts=4,
            base_delay_seconds=30.0,
            overall_timeout_seconds=120.0,
            job_timeout_seconds=120.0,
        )

        submission = await orchestrator.submit(route_request)
        await wait_for_engine(engine)
        await asyncio.sleep(0.05)  # client is now sleeping before attempt 2

        loop = asyncio.get_running_loop()
        started = loop.time()
        assert await orchestrator.cancel(submission.job_id) is True
        record = await wait_until_done(orchestrator, submission.job_id)
        elapsed = loop.time() - started

        assert record.status == JobStatus.CANCELLED
        assert elapsed < 2.0
        assert engine.calls == 1
        assert record.result is None

    async def test_cancel_is_idempotent(self, build, route_request, make_engine):
        engine = make_engine()
        engine.gate = asyncio.Event()
        orchestrator, _ = build(engine=engine)

        submission = await orchestrator.submit(route_request)
        await wait_for_engine(engine)

        results = [await orchestrator.cancel(submission.job_id) for _ in range(3)]
        await wait_until_done(orchestrator, submission.job_id)

        assert results == [True, False, False]
        assert orchestrator.ctx.counters.total_cancelled == 1

    async def test_cancel_before_start(self, build, route_request):
        orchestrator, engine = build()

        submission = await orchestrator.submit(route_request)
        assert await orchestrator.cancel(submission.job_id) is True

        record = await wait_until_done(orchestrator, submission.job_id)
        assert record.status == JobStatus.CANCELLED
        assert engine.calls == 0

    async def test_cancel_completed_job(self, build, route_request, engine_ok, make_engine):
        orchestrator, _ = build(engine=make_engine([engine_ok()]))

        submission = await orchestrator.submit(route_request)
        await wait_until_done(orchestrator, submission.job_id)

        assert await orchestrator.cancel(submission.job_id) is False
        record = await orchestrator.ctx.store.get(submission.job_id)
        assert record.status == JobStatus.COMPLETED

    async def test_cancel_unknown_job(self, build):
        orchestrator, _ = build()

        with pytest.raises(NotFoundError):
            await orchestrator.cancel("does-not-exist")

    async def test_cancel_ignored_while_finalizing(self, build, route_request, engine_ok, make_engine):
        engine = make_engine([engine_ok()])
        engine.gate = asyncio.Event()
        orchestrator, _ = build(engine=engine)

        submission = await orchestrator.submit(route_request)
        await wait_for_engine(engine)
        orchestrator.ctx.registry.get(submission.job_id).finalizing = True

        assert await orchestrator.cancel(submission.job_id) is False

        engine.gate.set()
        record = await wait_until_done(orchestrator, submission.job_id)
        assert record.status == JobStatus.COMPLETED

    async def test_shutdown_interrupts_jobs(self, build, route_request, make_engine):
        engine = make_engine()
        engine.gate = asyncio.Event()
        orchestrator, _ = build(engine=engine)

        submission = await orchestrator.submit(route_request)
        await wait_for_engine(engine)

        await orchestrator.shutdown()

        record = await orchestrator.ctx.store.get(submission.job_id)
        assert record.status == JobStatus.CANCELLED
        assert orchestrator.ctx.registry.active_count == 0
