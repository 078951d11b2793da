"""Rate limiting middleware for the gateway.

Counts every request against the shared store by client identity (see
``bahngate.ratelimit.identity``). Route groups can carry their own limits
through path-prefix rules; anything unmatched uses the default config.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from bahngate.ratelimit.identity import client_identity
from bahngate.ratelimit.limiter import (
    DEFAULT_RATE_LIMITS,
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    """Limit applied to every path under ``path_prefix``."""

    path_prefix: str
    config: RateLimitConfig


@dataclass
class RateLimitMiddlewareConfig:
    """Which limit applies where."""

    default: RateLimitConfig = DEFAULT_RATE_LIMITS["API"]
    # Checked in order, first match wins
    rules: list[RateLimitRule] = field(default_factory=list)
    # Path prefixes to bypass (health checks, metrics)
    bypass_prefixes: list[str] = field(default_factory=lambda: ["/health", "/metrics"])

    def config_for(self, path: str) -> RateLimitConfig | None:
        """Return the limit for ``path``, or None when the path is exempt."""
        if any(path.startswith(prefix) for prefix in self.bypass_prefixes):
            return None
        for rule in self.rules:
            if path.startswith(rule.path_prefix):
                return rule.config
        return self.default


def rate_limit_exceeded_response(result: RateLimitResult) -> JSONResponse:
    """429 response carrying the rejected result and its headers."""
    return JSONResponse(
        status_code=429,
        content={
            "error": "Rate limit exceeded",
            "limit": result.limit,
            "remaining": result.remaining,
            "resetTime": result.reset_time,
        },
        headers=result.headers(),
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client rate limiting in front of every route.

    The limiter is taken from ``app.state.rate_limiter`` at request time
    unless one is passed in, so the middleware can be installed before the
    application state is populated.
    """

    def __init__(
        self,
        app: ASGIApp,
        config: RateLimitMiddlewareConfig | None = None,
        limiter: RateLimiter | None = None,
    ):
        super().__init__(app)
        self.config = config or RateLimitMiddlewareConfig()
        self._limiter = limiter

    def _get_limiter(self, request: Request) -> RateLimiter | None:
        if self._limiter is not None:
            return self._limiter
        return getattr(request.app.state, "rate_limiter", None)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        config = self.config_for(request)
        limiter = self._get_limiter(request)
        if config is None or limiter is None:
            return await call_next(request)

        identity = client_identity(request.headers)
        try:
            result = await limiter.check(identity, config)
        except Exception:
            # The limiter folds store failures itself; anything reaching here
            # is a bug, and the request is still let through
            logger.exception(f"Rate limit check failed for {identity}")
            return await call_next(request)

        if not result.allowed:
            return rate_limit_exceeded_response(result)

        response = await call_next(request)

        # Error responses go out without rate limit headers
        if response.status_code < 400:
            response.headers.update(result.headers())

        return response

    def config_for(self, request: Request) -> RateLimitConfig | None:
        return self.config.config_for(request.url.path)
