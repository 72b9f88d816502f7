"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
owns the lifecycle of the request limiter: it is built here, stored on
``app.state``, started when the app starts serving and stopped on shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.adapters.rate_limit import AbstractRateLimiter
from app.api.routes import health_router, info_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import build_rate_limiter, enforce_rate_limit

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    limiter: AbstractRateLimiter = app.state.rate_limiter
    if app.state.rate_limit_enabled:
        limiter.start()
    logger.info(
        "app.startup",
        extra={"app_env": settings.app_env, "rate_limit_enabled": app.state.rate_limit_enabled},
    )
    try:
        yield
    finally:
        limiter.stop()
        logger.info("app.shutdown")


def create_app(limiter: AbstractRateLimiter | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        limiter: Optional pre-built limiter (tests inject one with a fake
            clock). Defaults to one built from ``settings.rate_limit``.
            When ``THROTTLE_ENABLED`` is false the limiter is neither
            started nor consulted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    prefix = settings.app.api_prefix
    # Read once: toggling the setting later does not affect a built app.
    rate_limit_enabled = settings.rate_limit.enabled
    app = FastAPI(
        title=settings.app.name,
        description=(
            "Backend API for the team management platform. Every endpoint is "
            "subject to a per-client fixed-window rate limit and answers 429 "
            "once the window budget is spent."
        ),
        version="1.0.0",
        debug=settings.app.debug,
        docs_url=f"{prefix}/docs",
        openapi_url=f"{prefix}/openapi.json",
        redoc_url=None,
        lifespan=lifespan,
        dependencies=[Depends(enforce_rate_limit)] if rate_limit_enabled else None,
    )
    # An empty limiter is falsy (it defines __len__), so test against None.
    app.state.rate_limiter = limiter if limiter is not None else build_rate_limiter(settings.rate_limit)
    app.state.rate_limit_enabled = rate_limit_enabled

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.app.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        expose_headers=["Content-Disposition", settings.log.request_id_header],
        max_age=3600,
    )
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(info_router, prefix=prefix)
    app.include_router(health_router, prefix=prefix)

    apply_openapi_customizations(app)

    return app
