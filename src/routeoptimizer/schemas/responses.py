"""API response schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

from routeoptimizer.schemas.jobs import JobStatus
from routeoptimizer.schemas.results import ResultSummary


class JobSubmissionResponse(BaseModel):
    job_id: str
    status: str = "ACCEPTED"
    message: str = "Route optimization request accepted and is being processed"
    polling_url: str
    status_url: str
    cancel_url: str
    estimated_completion_time: datetime
    retry_after_seconds: int
    created_at: datetime


class ErrorDetails(BaseModel):
    code: str
    message: str
    details: str | None = None


class JobStatusResponse(BaseModel):
    job_id: str
    status: JobStatus
    message: str
    progress_percentage: int
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    estimated_completion_time: datetime | None = None
    retry_after_seconds: int | None = None
    result: dict[str, Any] | None = None
    error: ErrorDetails | None = None


class JobSummary(BaseModel):
    job_id: str
    status: JobStatus
    user_id: str
    route_id: str
    progress_percentage: int
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class CompletedRoute(BaseModel):
    request_id: str
    route_id: str
    user_id: str
    summary: ResultSummary
    optimized_sequence: list[Any]
    generated_at: datetime | None = None
    completed_at: datetime | None = None


LoadStatus = Literal["LIGHT", "MODERATE", "HEAVY", "OVERLOADED"]


class SystemStats(BaseModel):
    active_jobs: int
    max_concurrent_jobs: int
    total_jobs_submitted: int
    total_jobs_completed: int
    total_jobs_failed: int
    total_jobs_cancelled: int
    success_rate: float


class SystemStatsResponse(SystemStats):
    system_load: float
    status: LoadStatus
    timestamp: datetime


class CapacityResponse(BaseModel):
    active_jobs: int
    max_concurrent_jobs: int
    available_capacity: int
    can_accept_jobs: bool
    capacity_utilization: float
    timestamp: datetime


class HealthResponse(BaseModel):
    status: Literal["UP", "DOWN"]
    service: str
    version: str
    timestamp: datetime
    components: dict[str, str] = {}
    metrics: dict[str, float] = {}
    error: str | None = None
