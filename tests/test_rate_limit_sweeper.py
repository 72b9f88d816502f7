"""Tests for expired-record sweeping and the limiter lifecycle."""

import logging
import threading
import time
from unittest.mock import Mock

from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter


class RecordingLimiter(InMemoryFixedWindowRateLimiter):
    """Limiter that records each background sweep."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.sweeps = 0
        self.swept = threading.Event()

    def sweep(self) -> int:
        removed = super().sweep()
        self.sweeps += 1
        self.swept.set()
        return removed


def test_sweep_removes_only_expired_records() -> None:
    clock = Mock(return_value=0.0)
    limiter = InMemoryFixedWindowRateLimiter(window_ms=1000, max_requests=5, clock=clock)

    limiter.admit("old")
    clock.return_value = 500.0
    limiter.admit("fresh")

    clock.return_value = 1200.0
    assert limiter.sweep() == 1
    assert len(limiter) == 1

    # "fresh" keeps its count: four more admits fit, the fifth does not
    for _ in range(4):
        assert limiter.admit("fresh").allowed is True
    assert limiter.admit("fresh").allowed is False


def test_sweep_keeps_record_at_window_end() -> None:
    clock = Mock(return_value=0.0)
    limiter = InMemoryFixedWindowRateLimiter(window_ms=1000, max_requests=1, clock=clock)
    limiter.admit("k")

    clock.return_value = 1000.0
    assert limiter.sweep() == 0
    assert len(limiter) == 1


def test_sweep_logs_removed_count(caplog) -> None:
    clock = Mock(return_value=0.0)
    limiter = InMemoryFixedWindowRateLimiter(window_ms=10, max_requests=1, clock=clock)
    limiter.admit("a")
    limiter.admit("b")

    clock.return_value = 100.0
    with caplog.at_level(logging.INFO, logger="app.adapters.rate_limit.in_memory"):
        assert limiter.sweep() == 2

    records = [r for r in caplog.records if r.getMessage() == "rate_limit.sweep"]
    assert len(records) == 1
    assert records[0].removed == 2
    assert records[0].remaining == 0


def test_sweep_is_silent_when_nothing_expired(caplog) -> None:
    limiter = InMemoryFixedWindowRateLimiter(window_ms=1000, max_requests=1, clock=Mock(return_value=0.0))
    limiter.admit("a")

    with caplog.at_level(logging.INFO, logger="app.adapters.rate_limit.in_memory"):
        assert limiter.sweep() == 0

    assert not [r for r in caplog.records if r.getMessage() == "rate_limit.sweep"]


def test_admits_during_sweeps_lose_no_updates() -> None:
    limiter = InMemoryFixedWindowRateLimiter(
        window_ms=60_000, max_requests=1000, clock=Mock(return_value=0.0)
    )
    done = threading.Event()

    def sweeper() -> None:
        while not done.is_set():
            limiter.sweep()

    sweep_thread = threading.Thread(target=sweeper)
    sweep_thread.start()
    try:
        for _ in range(600):
            limiter.admit("k")
    finally:
        done.set()
        sweep_thread.join()

    assert limiter.admit("k").remaining == 1000 - 601


def test_start_runs_periodic_sweep_and_stop_cancels_it() -> None:
    limiter = RecordingLimiter(window_ms=1000, max_requests=1, sweep_interval_seconds=0.01)

    limiter.start()
    assert limiter.is_running is True
    assert limiter.swept.wait(timeout=2.0)

    limiter.stop()
    assert limiter.is_running is False
    sweeps_at_stop = limiter.sweeps

    time.sleep(0.05)
    assert limiter.sweeps == sweeps_at_stop


def test_stop_clears_registry() -> None:
    limiter = InMemoryFixedWindowRateLimiter(window_ms=60_000, max_requests=1)
    limiter.start()
    limiter.admit("a")
    limiter.admit("b")

    limiter.stop()

    assert len(limiter) == 0
    assert limiter.admit("a").allowed is True


def test_no_sweeper_thread_survives_stop() -> None:
    limiter = InMemoryFixedWindowRateLimiter(window_ms=1000, max_requests=1, sweep_interval_seconds=0.01)

    limiter.start()
    limiter.stop()

    assert not [t for t in threading.enumerate() if t.name == "rate-limit-sweeper"]


def test_start_is_idempotent() -> None:
    limiter = InMemoryFixedWindowRateLimiter(window_ms=1000, max_requests=1)

    limiter.start()
    first = limiter._sweeper
    limiter.start()
    try:
        assert limiter._sweeper is first
    finally:
        limiter.stop()


def test_stop_without_start_only_clears() -> None:
    limiter = InMemoryFixedWindowRateLimiter(window_ms=1000, max_requests=1)
    limiter.admit("k")

    limiter.stop()

    assert len(limiter) == 0
    assert limiter.is_running is False


def test_limiter_can_restart_after_stop() -> None:
    limiter = RecordingLimiter(window_ms=1000, max_requests=1, sweep_interval_seconds=0.01)

    limiter.start()
    limiter.stop()
    limiter.swept.clear()

    limiter.start()
    try:
        assert limiter.is_running is True
        assert limiter.swept.wait(timeout=2.0)
    finally:
        limiter.stop()


def test_failing_sweep_does_not_kill_sweeper(caplog) -> None:
    class FlakyLimiter(InMemoryFixedWindowRateLimiter):
        def __init__(self, **kwargs) -> None:
            super().__init__(**kwargs)
            self.calls = 0
            self.recovered = threading.Event()

        def sweep(self) -> int:
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("boom")
            self.recovered.set()
            return super().sweep()

    limiter = FlakyLimiter(window_ms=1000, max_requests=1, sweep_interval_seconds=0.01)

    with caplog.at_level(logging.ERROR, logger="app.adapters.rate_limit.in_memory"):
        limiter.start()
        try:
            assert limiter.recovered.wait(timeout=2.0)
        finally:
            limiter.stop()

    assert any(r.getMessage() == "rate_limit.sweep_failed" for r in caplog.records)
