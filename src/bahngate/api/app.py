"""FastAPI application factory for the gateway.

Usage:
    uvicorn bahngate.api.app:create_app --factory
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.types import ExceptionHandler

from bahngate.api.errors import ApiError, api_error_handler, generic_exception_handler
from bahngate.api.middleware import (
    RateLimitMiddleware,
    RateLimitMiddlewareConfig,
    RequestContextMiddleware,
)
from bahngate.api.routers import health, monitoring
from bahngate.api.routers import metrics as metrics_router
from bahngate.cache.maintenance import Maintenance
from bahngate.cache.wrapper import CacheWrapper
from bahngate.config import settings
from bahngate.observability.logging import configure_logging
from bahngate.observability.metrics import get_metrics
from bahngate.ratelimit.limiter import RateLimitConfig, RateLimiter
from bahngate.store.connection import StoreConfig, StoreConnection

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    The store connects lazily on first use, so startup never fails on an
    unreachable or unconfigured store. Shutdown drains and closes it.
    """
    # Configure structured logging (JSON in production, console in dev)
    configure_logging(
        json_format=settings.env != "dev",
        level=settings.log_level,
    )
    get_metrics()  # Initialize metrics registry

    store: StoreConnection = app.state.store
    logger.info(f"Starting {settings.app_name} ({settings.env})")
    if not store.configured:
        logger.warning("REDIS_URL is not set; caching and rate limiting run fail-open")

    yield

    logger.info(f"Shutting down {settings.app_name}")
    await store.close()


def create_app(
    store: StoreConnection | None = None,
    rate_limit: RateLimitMiddlewareConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: Shared-store connection to use; built from settings when omitted.
        rate_limit: Rate-limit rules; defaults to the configured API limit on
            every route except health checks and metrics.
    """
    app = FastAPI(
        title="bahngate",
        description="Caching and rate-limiting layer of the journey-search gateway",
        version=settings.version,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    store = store or StoreConnection(StoreConfig.from_settings())
    rate_limit = rate_limit or RateLimitMiddlewareConfig(default=RateLimitConfig.from_settings())

    app.state.store = store
    app.state.cache = CacheWrapper(store)
    app.state.rate_limiter = RateLimiter(store)
    app.state.maintenance = Maintenance(store)
    app.state.rate_limit_config = rate_limit.default

    # Last added is outermost: CORS -> RequestContext -> RateLimit -> routes
    if settings.enable_rate_limiting:
        app.add_middleware(RateLimitMiddleware, config=rate_limit)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        expose_headers=[
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )

    # Exception handlers
    app.add_exception_handler(ApiError, cast(ExceptionHandler, api_error_handler))
    app.add_exception_handler(Exception, cast(ExceptionHandler, generic_exception_handler))

    app.include_router(health.router)
    app.include_router(monitoring.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)

    return app
