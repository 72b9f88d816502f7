"""Rate limiting adapters.

The application host constructs one limiter at startup, starts it from the
lifespan hook and stops it on shutdown. Only the in-memory backend exists
today; it is per-process, so multiple workers each keep their own counters.
"""

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitDecision
from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitDecision",
]
