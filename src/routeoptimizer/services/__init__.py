"""Business services."""

from .engine_client import EngineCallResult, EngineClient
from .events import (
    EventPublisher,
    InMemoryEventPublisher,
    LifecycleEvent,
    LifecycleEventType,
    LoggingEventPublisher,
)
from .fallback import synthesize_fallback
from .orchestrator import JobOrchestrator, OrchestratorContext
from .registry import ActiveJobHandle, JobRegistry
from .stats import JobCounters, StatsAggregator
from .status import StatusQueryService
from .store import InMemoryJobStore, JobStore, SQLAlchemyJobStore

__all__ = [
    "ActiveJobHandle",
    "EngineCallResult",
    "EngineClient",
    "EventPublisher",
    "InMemoryEventPublisher",
    "InMemoryJobStore",
    "JobCounters",
    "JobOrchestrator",
    "JobRegistry",
    "JobStore",
    "LifecycleEvent",
    "LifecycleEventType",
    "LoggingEventPublisher",
    "OrchestratorContext",
    "SQLAlchemyJobStore",
    "StatsAggregator",
    "StatusQueryService",
    "synthesize_fallback",
]
