"""
Job record persistence.

Every status write is conditional on the record's current status (a
compare-and-swap), which lets the pipeline's terminal write and a concurrent
cancellation race without a global lock: whichever lands first wins and the
other observes ``False``.
"""

import json
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from routeoptimizer.core.logging import get_logger
from routeoptimizer.db import get_session_context
from routeoptimizer.models import OptimizationJob
from routeoptimizer.schemas.jobs import (
    JobRecord,
    JobStatus,
    can_transition,
    utcnow,
)
from routeoptimizer.schemas.results import EngineResult, FallbackResult, dump_result, load_result

logger = get_logger("routeoptimizer.store")


class JobStore(ABC):
    """Key-addressable persistent store for job records."""

    @abstractmethod
    async def create(self, record: JobRecord) -> None:
        """Insert a new record. Raises ``KeyError`` if the id already exists."""
        ...

    @abstractmethod
    async def get(self, job_id: str) -> JobRecord | None:
        ...

    @abstractmethod
    async def transition(
        self,
        job_id: str,
        target: JobStatus,
        expected: Iterable[JobStatus],
        *,
        progress: int | None = None,
        result: EngineResult | FallbackResult | None = None,
        error_message: str | None = None,
    ) -> bool:
        """
        Move a job to ``target`` only if its current status is in ``expected``.

        Returns True if the write happened.
        """
        ...

    @abstractmethod
    async def update_progress(self, job_id: str, progress: int) -> bool:
        """Raise progress of a PROCESSING job; never lowers it."""
        ...

    @abstractmethod
    async def list_jobs(
        self,
        user_id: str | None = None,
        status: JobStatus | None = None,
        limit: int = 100,
    ) -> list[JobRecord]:
        """Records newest first."""
        ...


def _checked_expected(expected: Iterable[JobStatus], target: JobStatus) -> list[JobStatus]:
    expected = list(expected)
    allowed = [s for s in expected if can_transition(s, target)]
    if not allowed:
        raise ValueError(f"No allowed transition to {target.value} from {expected}")
    return allowed


def _transition_fields(
    target: JobStatus,
    progress: int | None,
    result: EngineResult | FallbackResult | None,
    error_message: str | None,
) -> dict:
    if result is not None and target != JobStatus.COMPLETED:
        raise ValueError("A result can only be stored on COMPLETED")
    if target == JobStatus.COMPLETED and result is None:
        raise ValueError("COMPLETED requires a result")

    now = utcnow()
    fields: dict = {"status": target, "updated_at": now}
    if progress is not None:
        fields["progress_percentage"] = progress
    if target in (JobStatus.COMPLETED, JobStatus.FAILED):
        fields["completed_at"] = now
    if target == JobStatus.CANCELLED:
        fields["cancelled_at"] = now
    if target == JobStatus.COMPLETED:
        fields["result"] = result
    if target == JobStatus.FAILED:
        fields["error_message"] = error_message or "Unknown error"
    return fields


# ─────────────────────────────────────────────────────────────────────────────
# In-memory store
# ─────────────────────────────────────────────────────────────────────────────

class InMemoryJobStore(JobStore):
    """Process-local store; records vanish on restart."""

    def __init__(self):
        self._jobs: dict[str, JobRecord] = {}
        self._lock = threading.Lock()

    async def create(self, record: JobRecord) -> None:
        with self._lock:
            if record.job_id in self._jobs:
                raise KeyError(f"Job already exists: {record.job_id}")
            self._jobs[record.job_id] = record.model_copy(deep=True)

    async def get(self, job_id: str) -> JobRecord | None:
        with self._lock:
            record = self._jobs.get(job_id)
            return record.model_copy(deep=True) if record else None

    async def transition(
        self,
        job_id: str,
        target: JobStatus,
        expected: Iterable[JobStatus],
        *,
        progress: int | None = None,
        result: EngineResult | FallbackResult | None = None,
        error_message: str | None = None,
    ) -> bool:
        allowed = _checked_expected(expected, target)
        fields = _transition_fields(target, progress, result, error_message)
        with self._lock:
            record = self._jobs.get(job_id)
            if record is None or record.status not in allowed:
                return False
            self._jobs[job_id] = record.model_copy(update=fields)
            return True

    async def update_progress(self, job_id: str, progress: int) -> bool:
        with self._lock:
            record = self._jobs.get(job_id)
            if (
                record is None
                or record.status != JobStatus.PROCESSING
                or record.progress_percentage > progress
            ):
                return False
            self._jobs[job_id] = record.model_copy(
                update={"progress_percentage": progress, "updated_at": utcnow()}
            )
            return True

    async def list_jobs(
        self,
        user_id: str | None = None,
        status: JobStatus | None = None,
        limit: int = 100,
    ) -> list[JobRecord]:
        with self._lock:
            records = [
                r.model_copy(deep=True)
                for r in self._jobs.values()
                if (user_id is None or r.user_id == user_id)
                and (status is None or r.status == status)
            ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[:limit]


# ─────────────────────────────────────────────────────────────────────────────
# SQLAlchemy store
# ─────────────────────────────────────────────────────────────────────────────

def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; everything is written in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAlchemyJobStore(JobStore):
    """Durable store backed by the ``optimization_jobs`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    @staticmethod
    def _to_record(row: OptimizationJob) -> JobRecord:
        return JobRecord(
            job_id=row.job_id,
            status=JobStatus(row.status),
            user_id=row.user_id,
            route_id=row.route_id,
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
            completed_at=_aware(row.completed_at),
            cancelled_at=_aware(row.cancelled_at),
            progress_percentage=row.progress_percentage,
            estimated_completion_time=_aware(row.estimated_completion_time),
            request_payload=json.loads(row.request_data) if row.request_data else {},
            result=load_result(row.result_data) if row.result_data else None,
            error_message=row.error_message,
        )

    async def create(self, record: JobRecord) -> None:
        async with get_session_context(self.session_maker) as session:
            if await session.get(OptimizationJob, record.job_id) is not None:
                raise KeyError(f"Job already exists: {record.job_id}")
            session.add(
                OptimizationJob(
                    job_id=record.job_id,
                    status=record.status.value,
                    progress_percentage=record.progress_percentage,
                    user_id=record.user_id,
                    route_id=record.route_id,
                    request_data=json.dumps(record.request_payload),
                    result_data=dump_result(record.result) if record.result else None,
                    error_message=record.error_message,
                    created_at=record.created_at,
                    updated_at=record.updated_at,
                    completed_at=record.completed_at,
                    cancelled_at=record.cancelled_at,
                    estimated_completion_time=record.estimated_completion_time,
                )
            )
            await session.commit()

    async def get(self, job_id: str) -> JobRecord | None:
        async with get_session_context(self.session_maker) as session:
            row = await session.get(OptimizationJob, job_id)
            return self._to_record(row) if row else None

    async def transition(
        self,
        job_id: str,
        target: JobStatus,
        expected: Iterable[JobStatus],
        *,
        progress: int | None = None,
        result: EngineResult | FallbackResult | None = None,
        error_message: str | None = None,
    ) -> bool:
        allowed = _checked_expected(expected, target)
        fields = _transition_fields(target, progress, result, error_message)

        values = {key: value for key, value in fields.items() if key != "result"}
        values["status"] = target.value
        if "result" in fields:
            values["result_data"] = dump_result(fields["result"])

        stmt = (
            update(OptimizationJob)
            .where(
                OptimizationJob.job_id == job_id,
                OptimizationJob.status.in_([s.value for s in allowed]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with get_session_context(self.session_maker) as session:
            outcome = await session.execute(stmt)
            await session.commit()
        return outcome.rowcount == 1

    async def update_progress(self, job_id: str, progress: int) -> bool:
        stmt = (
            update(OptimizationJob)
            .where(
                OptimizationJob.job_id == job_id,
                OptimizationJob.status == JobStatus.PROCESSING.value,
                OptimizationJob.progress_percentage <= progress,
            )
            .values(progress_percentage=progress, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        async with get_session_context(self.session_maker) as session:
            outcome = await session.execute(stmt)
            await session.commit()
        return outcome.rowcount == 1

    async def list_jobs(
        self,
        user_id: str | None = None,
        status: JobStatus | None = None,
        limit: int = 100,
    ) -> list[JobRecord]:
        query = select(OptimizationJob)
        if user_id:
            query = query.where(OptimizationJob.user_id == user_id)
        if status:
            query = query.where(OptimizationJob.status == status.value)
        query = query.order_by(OptimizationJob.created_at.desc()).limit(limit)

        async with get_session_context(self.session_maker) as session:
            result = await session.execute(query)
            return [self._to_record(row) for row in result.scalars().all()]
