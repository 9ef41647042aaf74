"""
Pytest configuration for RouteOptimizer tests.

Shared settings builders, request payloads and an httpx mock engine.
"""

import asyncio

import httpx
import pytest

from routeoptimizer.config.settings import (
    DatabaseSettings,
    EngineSettings,
    OptimizationSettings,
    Settings,
)
from routeoptimizer.schemas import RouteOptimizationRequest

ENGINE_URL = "http://engine.test"


def build_settings(
    *,
    max_concurrent_jobs: int = 10,
    worker_pool_size: int = 4,
    job_timeout_seconds: float = 5.0,
    max_attempts: int = 3,
    overall_timeout_seconds: float = 2.0,
    base_delay_seconds: float = 0.0,
    backend: str = "memory",
    db_url: str = "sqlite+aiosqlite:///./route_optimizer_test.db",
) -> Settings:
    """Settings with no preprocessing delay and, unless asked, zero backoff."""
    return Settings(
        env="testing",
        debug=True,
        base_url="http://testserver",
        database=DatabaseSettings(backend=backend, url=db_url),
        optimization=OptimizationSettings(
            max_concurrent_jobs=max_concurrent_jobs,
            worker_pool_size=worker_pool_size,
            job_timeout_seconds=job_timeout_seconds,
            preprocessing_step_delay_seconds=0.0,
        ),
        engine=EngineSettings(
            url=ENGINE_URL,
            max_attempts=max_attempts,
            base_delay_seconds=base_delay_seconds,
            max_delay_seconds=base_delay_seconds,
            overall_timeout_seconds=overall_timeout_seconds,
            request_timeout_seconds=1.0,
        ),
    )


class FakeEngine:
    """Scriptable engine behind an ``httpx.MockTransport``."""

    def __init__(self, responses: list | None = None, default=None):
        self.responses = list(responses or [])
        self.default = default if default is not None else httpx.Response(503)
        self.requests: list[httpx.Request] = []
        self.gate: asyncio.Event | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.responses.pop(0) if self.responses else self.default
        if isinstance(outcome, Exception):
            raise outcome
        # Fresh response per call; the default may be served many times.
        return httpx.Response(outcome.status_code, content=outcome.content, headers=outcome.headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def calls(self) -> int:
        return len(self.requests)


def engine_success(**payload) -> httpx.Response:
    body = {
        "optimized_route_id": "route-opt-1",
        "optimized_sequence": [{"poi_id": 2}, {"poi_id": 1}],
        "total_distance_km": 12.5,
        "total_time_minutes": 240,
        "optimization_algorithm": "genetic",
        "optimization_score": 0.91,
    }
    body.update(payload)
    return httpx.Response(200, json=body)


def three_poi_payload(**overrides) -> dict:
    payload = {
        "route_id": "route-1",
        "user_id": "user-1",
        "pois": [
            {"id": 1, "name": "Volcano", "latitude": 10.46, "longitude": -84.70, "visit_duration": 120},
            {"id": 2, "name": "Hot springs", "latitude": 10.49, "longitude": -84.72, "visit_duration": 90},
            {"id": 3, "name": "Waterfall", "latitude": 10.50, "longitude": -84.60},
        ],
    }
    payload.update(overrides)
    return payload


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")


# ─────────────────────────────────────────────────────────────────────────────
# Shared fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def settings() -> Settings:
    return build_settings()


@pytest.fixture
def route_request() -> RouteOptimizationRequest:
    return RouteOptimizationRequest.model_validate(three_poi_payload())


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def make_settings():
    return build_settings


@pytest.fixture
def make_payload():
    return three_poi_payload


@pytest.fixture
def engine_ok():
    return engine_success


@pytest.fixture
def make_engine():
    return FakeEngine
