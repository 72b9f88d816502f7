"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the in-memory registry can later be swapped for a shared store without
touching the request pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single admission check.

    Attributes:
        allowed: Whether the unit of work may proceed.
        limit: Max requests admitted per window.
        remaining: Requests still admissible in the current window.
        reset_at_ms: Epoch milliseconds at which the current window ends.
        retry_after_seconds: Suggested wait in seconds when rejected.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at_ms: float
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for rate limiters owned by the application host."""

    @abstractmethod
    def admit(self, key: str) -> RateLimitDecision:
        """Decide whether a request identified by ``key`` may proceed.

        Args:
            key: Client key (e.g., network address).

        Returns:
            RateLimitDecision describing admit or reject.
        """
        raise NotImplementedError

    @abstractmethod
    def sweep(self) -> int:
        """Discard expired state and return the number of removed entries."""
        raise NotImplementedError

    @abstractmethod
    def start(self) -> None:
        """Begin background maintenance."""
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """Stop background maintenance and release all state."""
        raise NotImplementedError
