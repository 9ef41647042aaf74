"""Unit tests for structured logging context handling."""

import asyncio
import json
import logging

import pytest
import structlog

from routeoptimizer.core.logging import (
    QUIET_LOGGERS,
    bind_context,
    clear_context,
    flatten_enums,
    get_logger,
    job_log_context,
    setup_logging,
)
from routeoptimizer.schemas import JobStatus


@pytest.fixture(autouse=True)
def clean_context():
    clear_context()
    yield
    clear_context()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestProcessors:
    def test_flatten_enums(self):
        event = {"event": "moved", "status": JobStatus.PROCESSING, "progress": 35}

        assert flatten_enums(None, "info", event) == {"event": "moved", "status": "PROCESSING", "progress": 35}


class TestJobContext:
    def test_binds_job_fields(self):
        bind_context(request_id="req-1")

        with job_log_context("job-1", user_id="alice", route_id="route-1"):
            assert structlog.contextvars.get_contextvars() == {
                "request_id": "req-1",
                "job_id": "job-1",
                "user_id": "alice",
                "route_id": "route-1",
            }

        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1"}

    def test_missing_identifiers_not_bound(self):
        with job_log_context("job-1"):
            assert structlog.contextvars.get_contextvars() == {"job_id": "job-1"}

    async def test_jobs_do_not_share_context(self):
        seen = {}

        async def job(job_id: str):
            with job_log_context(job_id):
                await asyncio.sleep(0.01)
                seen[job_id] = structlog.contextvars.get_contextvars()["job_id"]

        await asyncio.gather(job("a"), job("b"))

        assert seen == {"a": "a", "b": "b"}
        assert "job_id" not in structlog.contextvars.get_contextvars()


class TestSetup:
    def test_levels(self, restore_root_logger):
        setup_logging(level="warning")

        assert logging.getLogger().level == logging.WARNING
        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_json_lines_carry_job_context(self, restore_root_logger, capsys):
        setup_logging(level="INFO", json_format=True)

        with job_log_context("job-9", user_id="bob"):
            get_logger("routeoptimizer.test").info("Job progressed", status=JobStatus.COMPLETED)

        line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert line["event"] == "Job progressed"
        assert line["job_id"] == "job-9"
        assert line["user_id"] == "bob"
        assert line["status"] == "COMPLETED"
        assert line["level"] == "info"
        assert "timestamp" in line
