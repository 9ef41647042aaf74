"""Lifecycle event publishing.

The transport (message bus, webhooks) lives outside this service; publishers
here only define the sink interface plus a logging and an in-memory sink.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from routeoptimizer.core.logging import get_logger
from routeoptimizer.schemas.jobs import utcnow
from routeoptimizer.schemas.results import ResultSummary

logger = get_logger("routeoptimizer.events")


class LifecycleEventType(str, Enum):
    REQUESTED = "OPTIMIZATION_REQUESTED"
    STARTED = "OPTIMIZATION_STARTED"
    PROGRESS = "OPTIMIZATION_PROGRESS"
    COMPLETED = "OPTIMIZATION_COMPLETED"
    FAILED = "OPTIMIZATION_FAILED"
    CANCELLED = "OPTIMIZATION_CANCELLED"


class LifecycleEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: LifecycleEventType
    job_id: str
    user_id: str
    route_id: str | None = None
    status: str
    progress: int | None = None
    message: str | None = None
    result_summary: ResultSummary | None = None
    estimated_completion: datetime | None = None
    timestamp: datetime = Field(default_factory=utcnow)


class EventPublisher(ABC):
    """Sink for job lifecycle notifications."""

    @abstractmethod
    async def publish(self, event: LifecycleEvent) -> None:
        ...


class LoggingEventPublisher(EventPublisher):
    """Writes each event to the structured log."""

    async def publish(self, event: LifecycleEvent) -> None:
        log = logger.debug if event.event_type == LifecycleEventType.PROGRESS else logger.info
        log(
            "Lifecycle event",
            **event.model_dump(mode="json", exclude_none=True),
        )


class InMemoryEventPublisher(EventPublisher):
    """Keeps events in a list; handy for tests and local inspection."""

    def __init__(self):
        self.events: list[LifecycleEvent] = []

    async def publish(self, event: LifecycleEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: LifecycleEventType) -> list[LifecycleEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def for_job(self, job_id: str) -> list[LifecycleEvent]:
        return [e for e in self.events if e.job_id == job_id]
