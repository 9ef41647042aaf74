"""Pydantic schemas for jobs, requests, results and API responses."""

from .requests import (
    Location,
    POI,
    RoutePreferences,
    RouteConstraints,
    RouteOptimizationRequest,
    ProcessingPOI,
    ProcessingPreferences,
    ProcessingConstraints,
    RouteProcessingRequest,
)
from .results import (
    EngineResult,
    FallbackResult,
    FallbackStop,
    JobResult,
    ResultSummary,
    dump_result,
    load_result,
)
from .jobs import (
    JobStatus,
    JobRecord,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    ALLOWED_TRANSITIONS,
    can_transition,
)
from .responses import (
    JobSubmissionResponse,
    JobStatusResponse,
    ErrorDetails,
    JobSummary,
    CompletedRoute,
    SystemStats,
    SystemStatsResponse,
    CapacityResponse,
    HealthResponse,
)

__all__ = [
    # Requests
    "Location",
    "POI",
    "RoutePreferences",
    "RouteConstraints",
    "RouteOptimizationRequest",
    "ProcessingPOI",
    "ProcessingPreferences",
    "ProcessingConstraints",
    "RouteProcessingRequest",
    # Results
    "EngineResult",
    "FallbackResult",
    "FallbackStop",
    "JobResult",
    "ResultSummary",
    "dump_result",
    "load_result",
    # Jobs
    "JobStatus",
    "JobRecord",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    # Responses
    "JobSubmissionResponse",
    "JobStatusResponse",
    "ErrorDetails",
    "JobSummary",
    "CompletedRoute",
    "SystemStats",
    "SystemStatsResponse",
    "CapacityResponse",
    "HealthResponse",
]
