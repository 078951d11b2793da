"""Per-client rate limiting backed by the shared store."""

from bahngate.ratelimit.identity import UNKNOWN_IDENTITY, client_identity, normalize_ip
from bahngate.ratelimit.limiter import (
    DEFAULT_RATE_LIMITS,
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
    allow_unmetered,
    counter_key,
)

__all__ = [
    "DEFAULT_RATE_LIMITS",
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimiter",
    "allow_unmetered",
    "counter_key",
    "client_identity",
    "normalize_ip",
    "UNKNOWN_IDENTITY",
]
