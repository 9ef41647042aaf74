"""In-memory registry of jobs with outstanding work."""

import asyncio
import threading
from dataclasses import dataclass, field


@dataclass
class ActiveJobHandle:
    """Cancellable reference to a running job's task."""
    job_id: str
    task: asyncio.Task
    finalizing: bool = field(default=False)

    def cancel(self) -> bool:
        return self.task.cancel()


class JobRegistry:
    """
    Maps job_id to its handle and guards the concurrency ceiling.

    A slot is reserved before the job record exists and released when the
    handle is deregistered (or when submission aborts before registering),
    so ``active_count`` covers jobs that are being created as well as
    running ones.
    """

    def __init__(self, max_concurrent_jobs: int):
        self.max_concurrent_jobs = max_concurrent_jobs
        self._handles: dict[str, ActiveJobHandle] = {}
        self._reserved = 0
        self._lock = threading.Lock()

    @property
    def active_count(self) -> int:
        with self._lock:
            return self._reserved

    def try_reserve(self) -> bool:
        """Atomically take a slot if one is free."""
        with self._lock:
            if self._reserved >= self.max_concurrent_jobs:
                return False
            self._reserved += 1
            return True

    def release_reservation(self) -> None:
        """Give back a slot whose job never registered a handle."""
        with self._lock:
            if self._reserved > 0:
                self._reserved -= 1

    def register(self, job_id: str, task: asyncio.Task) -> ActiveJobHandle:
        handle = ActiveJobHandle(job_id=job_id, task=task)
        with self._lock:
            if job_id in self._handles:
                raise KeyError(f"Job already registered: {job_id}")
            self._handles[job_id] = handle
        return handle

    def deregister(self, job_id: str) -> bool:
        """Remove a handle and free its slot. Returns False if it was already gone."""
        with self._lock:
            if self._handles.pop(job_id, None) is None:
                return False
            self._reserved -= 1
            return True

    def get(self, job_id: str) -> ActiveJobHandle | None:
        with self._lock:
            return self._handles.get(job_id)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def handles(self) -> list[ActiveJobHandle]:
        with self._lock:
            return list(self._handles.values())
