"""Job counters and capacity/health snapshots."""

import threading

from routeoptimizer.config.settings import LoadSettings
from routeoptimizer.schemas.responses import LoadStatus, SystemStats
from routeoptimizer.services.registry import JobRegistry


class JobCounters:
    """Monotonic totals; each job bumps submitted once and one terminal counter once."""

    def __init__(self):
        self._lock = threading.Lock()
        self.total_submitted = 0
        self.total_completed = 0
        self.total_failed = 0
        self.total_cancelled = 0

    def _bump(self, name: str) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)

    def record_submitted(self) -> None:
        self._bump("total_submitted")

    def record_completed(self) -> None:
        self._bump("total_completed")

    def record_failed(self) -> None:
        self._bump("total_failed")

    def record_cancelled(self) -> None:
        self._bump("total_cancelled")

    def totals(self) -> tuple[int, int, int, int]:
        """(submitted, completed, failed, cancelled), read together."""
        with self._lock:
            return (
                self.total_submitted,
                self.total_completed,
                self.total_failed,
                self.total_cancelled,
            )


def success_rate(completed: int, submitted: int) -> float:
    return completed / submitted if submitted else 0.0


def load_percentage(active: int, maximum: int) -> float:
    if maximum <= 0:
        return 0.0
    return active / maximum * 100


def load_status(load: float, thresholds: LoadSettings) -> LoadStatus:
    if load < thresholds.moderate_threshold:
        return "LIGHT"
    if load < thresholds.heavy_threshold:
        return "MODERATE"
    if load < thresholds.overloaded_threshold:
        return "HEAVY"
    return "OVERLOADED"


class StatsAggregator:
    """Point-in-time view over the registry and counters."""

    def __init__(self, registry: JobRegistry, counters: JobCounters):
        self.registry = registry
        self.counters = counters

    def snapshot(self) -> SystemStats:
        submitted, completed, failed, cancelled = self.counters.totals()
        return SystemStats(
            active_jobs=self.registry.active_count,
            max_concurrent_jobs=self.registry.max_concurrent_jobs,
            total_jobs_submitted=submitted,
            total_jobs_completed=completed,
            total_jobs_failed=failed,
            total_jobs_cancelled=cancelled,
            success_rate=success_rate(completed, submitted),
        )
