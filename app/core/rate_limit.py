"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- No module state: the limiter lives on ``app.state`` and is owned by the
  application lifespan (see ``app.core.app_factory``).
- Swap-friendly: the dependency only sees ``AbstractRateLimiter``.
- The enabled flag is read once by ``create_app``, which skips installing
  the dependency when rate limiting is off.
- Rejections short-circuit the route through ``RateLimitAppError`` which the
  exception handlers turn into HTTP 429.

Keying strategy:
- One fixed-window counter per client address.
- Callers with no identifiable address share the ``"unknown"`` counter.
"""

from __future__ import annotations

import hashlib
import logging

from fastapi import Request

from app.adapters.rate_limit import AbstractRateLimiter, InMemoryFixedWindowRateLimiter
from app.core.config import RateLimitSettings, settings
from app.core.errors import RateLimitAppError

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT_KEY = "unknown"
FORWARDED_FOR_HEADER = "x-forwarded-for"


def build_rate_limiter(rate_limit_settings: RateLimitSettings | None = None) -> AbstractRateLimiter:
    """Construct the limiter described by configuration (not started)."""

    cfg = rate_limit_settings or settings.rate_limit
    return InMemoryFixedWindowRateLimiter(
        window_ms=cfg.window_ms,
        max_requests=cfg.limit,
        sweep_interval_seconds=cfg.sweep_interval_seconds,
    )


def get_rate_limiter(request: Request) -> AbstractRateLimiter:
    """Return the limiter owned by the application serving ``request``.

    Raises:
        RuntimeError: If the application was built without a limiter.
    """

    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        raise RuntimeError("rate limiter is not configured on app.state")
    return limiter


def build_client_key(
    direct_address: str | None,
    forwarded_for: str | None,
    socket_address: str | None = None,
) -> str:
    """Pick the rate limit key for a caller.

    Preference: direct connection address, then the first address listed in
    ``X-Forwarded-For``, then the socket's remote address, then ``"unknown"``.
    Empty values are skipped.

    Examples:
        >>> build_client_key("10.0.0.1", "203.0.113.7")
        '10.0.0.1'
        >>> build_client_key(None, "203.0.113.7, 10.0.0.2")
        '203.0.113.7'
        >>> build_client_key(None, None)
        'unknown'
    """

    if direct_address:
        return direct_address

    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    if socket_address:
        return socket_address

    return UNKNOWN_CLIENT_KEY


def client_key_from_request(request: Request) -> str:
    """Derive the client key from an incoming request.

    Under ASGI the direct and socket addresses both come from
    ``scope["client"]``; ``request.client`` is its parsed form.
    """

    direct_address = request.client.host if request.client else None
    raw_client = request.scope.get("client")
    socket_address = raw_client[0] if raw_client else None
    return build_client_key(
        direct_address,
        request.headers.get(FORWARDED_FOR_HEADER),
        socket_address,
    )


def _hash_limiter_key(key: str) -> str:
    """Hash the client key so logs never carry raw addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing the global per-client rate limit.

    Counts the request against the caller's window. When the caller is over
    budget, raises so the route never runs. ``create_app`` only installs this
    dependency when rate limiting is enabled.

    Args:
        request: FastAPI request.

    Raises:
        RateLimitAppError: When the client has exhausted its current window.
    """

    limiter = get_rate_limiter(request)
    key = client_key_from_request(request)
    key_hash = _hash_limiter_key(key)

    decision = limiter.admit(key)
    if decision.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": decision.limit,
                "remaining": decision.remaining,
            },
        )
        return

    retry_after = decision.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "key_is_fallback": key == UNKNOWN_CLIENT_KEY,
            "limit": decision.limit,
            "path": request.url.path,
            "retry_after_s": retry_after,
        },
    )

    raise RateLimitAppError(
        code="rate_limit_exceeded",
        message="Too Many Requests",
        details={
            "limit": decision.limit,
            "remaining": decision.remaining,
            "reset_at": int(decision.reset_at_ms // 1000),
            "retry_after": retry_after,
        },
    )
