"""Optimization job table."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from routeoptimizer.db import Base
from routeoptimizer.schemas.jobs import JobStatus


class OptimizationJob(Base):
    """Persisted lifecycle of a route optimization job."""

    __tablename__ = "optimization_jobs"

    job_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    status: Mapped[str] = mapped_column(String(20), default=JobStatus.PENDING.value, index=True)
    progress_percentage: Mapped[int] = mapped_column(Integer, default=0)

    # Correlation
    user_id: Mapped[str] = mapped_column(String(100), index=True)
    route_id: Mapped[str] = mapped_column(String(100), index=True)

    # Payloads (JSON text)
    request_data: Mapped[str] = mapped_column(Text)
    result_data: Mapped[str | None] = mapped_column(Text)
    error_message: Mapped[str | None] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    estimated_completion_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<OptimizationJob {self.job_id} {self.status} {self.progress_percentage}%>"
