"""Unit tests for the command-line entry point."""

from routeoptimizer import main as entry
from routeoptimizer.config import settings


def test_defaults_from_settings(monkeypatch):
    calls = []
    monkeypatch.setattr(entry.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    entry.main([])

    app, kwargs = calls[0]
    assert app == "routeoptimizer.api.app:app"
    assert kwargs["host"] == settings.host
    assert kwargs["port"] == settings.port
    assert kwargs["reload"] == settings.debug
    assert kwargs["workers"] == 1
    assert kwargs["log_config"] is None


def test_overrides(monkeypatch):
    calls = []
    monkeypatch.setattr(entry.uvicorn, "run", lambda app, **kwargs: calls.append(kwargs))

    entry.main(["--host", "127.0.0.1", "--port", "9000", "--no-reload"])

    assert calls[0]["host"] == "127.0.0.1"
    assert calls[0]["port"] == 9000
    assert calls[0]["reload"] is False
