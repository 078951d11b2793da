"""HTTP middleware for the gateway."""

from bahngate.api.middleware.context import RequestContextMiddleware
from bahngate.api.middleware.rate_limit import (
    RateLimitMiddleware,
    RateLimitMiddlewareConfig,
    RateLimitRule,
    rate_limit_exceeded_response,
)

__all__ = [
    "RateLimitMiddleware",
    "RateLimitMiddlewareConfig",
    "RateLimitRule",
    "RequestContextMiddleware",
    "rate_limit_exceeded_response",
]
