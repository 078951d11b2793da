"""Redis-backed per-client request counting.

Each check runs one MULTI/EXEC batch against the counter key:

    INCR key
    EXPIRE key window        (EXPIRE key window NX in fixed mode)
    TTL key

so the count and remaining lifetime are read consistently even while other
requests increment the same key. No in-process lock is involved.

In the default "sliding" mode every request pushes the expiry out to a full
window again, so a client that keeps sending traffic never sees the window
reset on a fixed boundary. "fixed" mode only sets the expiry when the key has
none, so the window ends ``window`` seconds after its first request.
Fixed mode needs Redis 7 for EXPIRE NX.

Any store problem allows the request (fail open).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from bahngate.config import settings
from bahngate.observability.metrics import record_ratelimit_decision
from bahngate.store.errors import StorePipelineError, StoreSerializationError
from bahngate.store.failopen import fail_open

if TYPE_CHECKING:
    from bahngate.store.connection import StoreConnection

logger = logging.getLogger(__name__)

WindowMode = Literal["sliding", "fixed"]

KEY_PREFIX = "ratelimit"


def counter_key(key_prefix: str, identity: str) -> str:
    """Key for the request counter of ``identity`` under ``key_prefix``."""
    return f"{KEY_PREFIX}:{key_prefix}:{identity}"


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limiting configuration."""

    # Maximum requests per window
    limit: int
    # Window duration in seconds
    window: int
    # Counter namespace, e.g. one per route group
    key_prefix: str = "default"
    window_mode: WindowMode = "sliding"

    @classmethod
    def from_settings(cls, key_prefix: str = "api") -> RateLimitConfig:
        """Create config from application settings."""
        return cls(
            limit=settings.rate_limit_requests,
            window=settings.rate_limit_window,
            key_prefix=key_prefix,
            window_mode=settings.rate_limit_window_mode,
        )


DEFAULT_RATE_LIMITS: dict[str, RateLimitConfig] = {
    "API": RateLimitConfig(limit=30, window=60, key_prefix="api"),
    "STRICT": RateLimitConfig(limit=10, window=60, key_prefix="strict"),
    "LENIENT": RateLimitConfig(limit=100, window=60, key_prefix="lenient"),
    "GLOBAL": RateLimitConfig(limit=200, window=60, key_prefix="global"),
}


@dataclass
class RateLimitResult:
    """Outcome of a rate-limit check."""

    allowed: bool
    count: int
    limit: int
    remaining: int
    # Seconds until the counter expires
    reset_time: int
    # True when the decision was made without the store
    degraded: bool = False

    def headers(self) -> dict[str, str]:
        """Standard rate limit headers; Retry-After only on rejection."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_time),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_time)
        return headers

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "count": self.count,
            "limit": self.limit,
            "remaining": self.remaining,
            "resetTime": self.reset_time,
        }


def allow_unmetered(config: RateLimitConfig) -> RateLimitResult:
    """The fail-open answer: allowed, nothing counted, full window ahead."""
    return RateLimitResult(
        allowed=True,
        count=0,
        limit=config.limit,
        remaining=config.limit,
        reset_time=config.window,
        degraded=True,
    )


def _fail_open_result(
    limiter: RateLimiter, identity: str, config: RateLimitConfig
) -> RateLimitResult:
    record_ratelimit_decision("fail_open")
    return allow_unmetered(config)


def _parse_counter_batch(results: Any) -> tuple[int, int]:
    """Return (count, ttl) from an INCR/EXPIRE/TTL batch."""
    if not isinstance(results, (list, tuple)) or len(results) != 3:
        raise StorePipelineError(results)

    count, _, ttl = results
    if not isinstance(count, int) or isinstance(count, bool):
        raise StorePipelineError(results)
    if not isinstance(ttl, int) or isinstance(ttl, bool):
        raise StorePipelineError(results)
    return count, ttl


class RateLimiter:
    """Counts requests per identity within a window."""

    def __init__(self, store: StoreConnection):
        self.store = store

    async def check(self, identity: str, config: RateLimitConfig) -> RateLimitResult:
        """Count this request for ``identity`` and decide whether it may proceed."""
        if not await self.store.is_available():
            logger.warning("Redis unavailable, allowing request (fail open)")
            return _fail_open_result(self, identity, config)

        return await self._count(identity, config)

    @fail_open(_fail_open_result, operation="rate limit check")
    async def _count(self, identity: str, config: RateLimitConfig) -> RateLimitResult:
        key = counter_key(config.key_prefix, identity)

        async with self.store.session() as client:
            async with client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                if config.window_mode == "fixed":
                    pipe.expire(key, config.window, nx=True)
                else:
                    pipe.expire(key, config.window)
                pipe.ttl(key)
                results = await pipe.execute()

        count, ttl = _parse_counter_batch(results)

        allowed = count <= config.limit
        result = RateLimitResult(
            allowed=allowed,
            count=count,
            limit=config.limit,
            remaining=max(0, config.limit - count),
            reset_time=ttl if ttl > 0 else config.window,
        )

        if allowed:
            record_ratelimit_decision("allowed")
        else:
            record_ratelimit_decision("rejected")
            logger.warning(f"Rate limit exceeded for {identity}: {count}/{config.limit}")

        return result

    @fail_open(lambda self, identity, config: None, operation="rate limit status")
    async def status(self, identity: str, config: RateLimitConfig) -> RateLimitResult | None:
        """Read ``identity``'s current counter without counting a request.

        Returns None when no counter exists or the store is unavailable.
        """
        if not await self.store.is_available():
            return None

        key = counter_key(config.key_prefix, identity)
        async with self.store.session() as client:
            async with client.pipeline(transaction=False) as pipe:
                pipe.get(key)
                pipe.ttl(key)
                raw, ttl = await pipe.execute()

        if raw is None:
            return None

        try:
            count = int(raw)
        except ValueError as e:
            raise StoreSerializationError(f"Counter {key} is not an integer: {raw!r}") from e

        return RateLimitResult(
            allowed=count <= config.limit,
            count=count,
            limit=config.limit,
            remaining=max(0, config.limit - count),
            reset_time=ttl if ttl > 0 else 0,
        )
