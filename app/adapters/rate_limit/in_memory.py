"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: admission and sweeping share one lock around the registry.
- Windows are aligned to each key's first request, not to the wall clock, so
  a burst straddling a window boundary may briefly see up to twice the limit.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitDecision

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class ThrottleRecord:
    count: int
    window_end_ms: float


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting requests per key within a fixed window.

    A key's window opens on its first request and lasts ``window_ms``. Once
    ``max_requests`` have been admitted in that window, further requests are
    rejected until the window ends; the first request after that opens a new
    window with a count of one.

    Expired records are harmless (they are replaced on the next request) but
    hold memory, so ``start()`` runs a background sweep that drops them every
    ``sweep_interval_seconds``. ``stop()`` ends the sweep and clears all state.
    """

    def __init__(
        self,
        *,
        window_ms: int,
        max_requests: int,
        sweep_interval_seconds: float = 300.0,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        """Initialize the limiter without starting any background work.

        Args:
            window_ms: Length of a counting window in milliseconds.
            max_requests: Maximum requests admitted per window.
            sweep_interval_seconds: Period of the background sweep.
            clock: Time source returning epoch milliseconds.

        Raises:
            ValueError: If any of the numeric arguments is out of range.
        """
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be > 0")

        self._window_ms = window_ms
        self._max_requests = max_requests
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._records: dict[str, ThrottleRecord] = {}
        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryFixedWindowRateLimiter(window_ms={self._window_ms}, "
            f"max_requests={self._max_requests}, keys={len(self)}, "
            f"running={self.is_running})"
        )

    @property
    def is_running(self) -> bool:
        """Whether the background sweep thread is alive."""
        sweeper = self._sweeper
        return sweeper is not None and sweeper.is_alive()

    def _build_decision(self, *, now: float, record: ThrottleRecord, allowed: bool) -> RateLimitDecision:
        remaining = max(0, self._max_requests - record.count)
        retry_after = None
        if not allowed:
            retry_after = max(1, int(math.ceil((record.window_end_ms - now) / 1000)))
        return RateLimitDecision(
            allowed=allowed,
            limit=self._max_requests,
            remaining=remaining,
            reset_at_ms=record.window_end_ms,
            retry_after_seconds=retry_after,
        )

    def admit(self, key: str) -> RateLimitDecision:
        """Count a request for ``key`` and decide whether it may proceed.

        Never raises and never blocks beyond the registry lock. Empty keys are
        tracked like any other key.

        Args:
            key: Client key, usually the caller's network address.

        Returns:
            RateLimitDecision with the admission outcome and window metadata.
        """
        with self._lock:
            now = self._clock()
            record = self._records.get(key)

            if record is None or now > record.window_end_ms:
                record = ThrottleRecord(count=1, window_end_ms=now + self._window_ms)
                self._records[key] = record
                return self._build_decision(now=now, record=record, allowed=True)

            if record.count >= self._max_requests:
                return self._build_decision(now=now, record=record, allowed=False)

            record.count += 1
            return self._build_decision(now=now, record=record, allowed=True)

    def sweep(self) -> int:
        """Remove every record whose window has ended.

        Returns:
            Number of records removed.
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, record in self._records.items() if now > record.window_end_ms]
            for key in expired:
                del self._records[key]
            remaining = len(self._records)

        if expired:
            logger.info(
                "rate_limit.sweep",
                extra={"removed": len(expired), "remaining": remaining},
            )
        return len(expired)

    def _run_sweeper(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._sweep_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("rate_limit.sweep_failed")

    def start(self) -> None:
        """Start the periodic sweep. No-op when already running."""
        with self._lock:
            if self.is_running:
                return
            self._stop_event = threading.Event()
            self._sweeper = threading.Thread(
                target=self._run_sweeper,
                args=(self._stop_event,),
                name="rate-limit-sweeper",
                daemon=True,
            )
            self._sweeper.start()

        logger.info(
            "rate_limit.started",
            extra={
                "window_ms": self._window_ms,
                "max_requests": self._max_requests,
                "sweep_interval_s": self._sweep_interval,
            },
        )

    def stop(self) -> None:
        """Cancel the periodic sweep and drop all tracked keys.

        Blocks until the sweep thread has exited, so no sweep runs after this
        returns.
        """
        with self._lock:
            sweeper = self._sweeper
            self._sweeper = None
            self._stop_event.set()

        # Join outside the lock: an in-flight sweep needs it to finish.
        if sweeper is not None:
            sweeper.join()

        with self._lock:
            cleared = len(self._records)
            self._records.clear()

        logger.info("rate_limit.stopped", extra={"cleared": cleared})
