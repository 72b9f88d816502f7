"""Tests for limiter wiring in the application factory."""

from __future__ import annotations

from unittest.mock import Mock

from fastapi.testclient import TestClient

from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from app.core.app_factory import create_app
from app.core.config import settings


def test_injected_empty_limiter_is_kept() -> None:
    limiter = InMemoryFixedWindowRateLimiter(window_ms=60_000, max_requests=1, clock=Mock(return_value=0.0))
    assert len(limiter) == 0

    app = create_app(limiter=limiter)

    assert app.state.rate_limiter is limiter


def test_injected_limiter_limits_are_enforced() -> None:
    limiter = InMemoryFixedWindowRateLimiter(window_ms=60_000, max_requests=1, clock=Mock(return_value=0.0))
    app = create_app(limiter=limiter)

    with TestClient(app) as client:
        assert client.get("/api/health").status_code == 200
        assert client.get("/api/health").status_code == 429


def test_limiter_built_from_settings_when_none_injected(monkeypatch) -> None:
    monkeypatch.setattr(settings.rate_limit, "limit", 3)
    monkeypatch.setattr(settings.rate_limit, "ttl", 60)

    app = create_app()
    limiter = app.state.rate_limiter

    assert isinstance(limiter, InMemoryFixedWindowRateLimiter)
    with TestClient(app) as client:
        assert limiter.is_running is True
        for _ in range(3):
            assert client.get("/api/health").status_code == 200
        response = client.get("/api/health")
        assert response.status_code == 429
        assert response.headers["X-RateLimit-Limit"] == "3"

    assert limiter.is_running is False
    assert len(limiter) == 0


def test_disabled_rate_limit_neither_starts_nor_consults_limiter(monkeypatch) -> None:
    monkeypatch.setattr(settings.rate_limit, "enabled", False)
    limiter = InMemoryFixedWindowRateLimiter(window_ms=60_000, max_requests=1, clock=Mock(return_value=0.0))

    app = create_app(limiter=limiter)

    assert app.state.rate_limit_enabled is False
    with TestClient(app) as client:
        assert limiter.is_running is False
        for _ in range(3):
            assert client.get("/api/health").status_code == 200

    assert len(limiter) == 0


def test_enabled_flag_is_read_when_app_is_built(monkeypatch) -> None:
    limiter = InMemoryFixedWindowRateLimiter(window_ms=60_000, max_requests=1, clock=Mock(return_value=0.0))
    app = create_app(limiter=limiter)

    monkeypatch.setattr(settings.rate_limit, "enabled", False)

    with TestClient(app) as client:
        assert client.get("/api/health").status_code == 200
        assert client.get("/api/health").status_code == 429
