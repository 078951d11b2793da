"""Monitoring endpoints: cache statistics, rate-limit status, invalidation.

None of these count towards the caller's limit by themselves beyond what the
rate-limit middleware already counted for the request.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Query

from bahngate.api.deps import (
    ClientIdentityDep,
    MaintenanceDep,
    RateLimitConfigDep,
    RateLimiterDep,
    StoreDep,
)
from bahngate.api.errors import ApiError
from bahngate.cache.keys import CacheKeys
from bahngate.config import settings

router = APIRouter(prefix="/api/monitoring", tags=["monitoring"])

MAX_PATTERN_LENGTH = 256


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def validate_pattern(pattern: str) -> str:
    """Only patterns inside the cache namespace may be invalidated.

    Rate-limit counters and foreign keys stay out of reach.
    """
    cleaned = pattern.strip()
    if not cleaned:
        raise ApiError.bad_request("Pattern must not be empty")
    if len(cleaned) > MAX_PATTERN_LENGTH:
        raise ApiError.bad_request(
            "Pattern is too long", {"max_length": MAX_PATTERN_LENGTH}
        )
    if not CacheKeys.in_namespace(cleaned):
        raise ApiError.bad_request(f"Pattern must start with '{CacheKeys.PREFIX}:'")
    return cleaned


@router.get("/cache-stats")
async def cache_stats(
    maintenance: MaintenanceDep,
    limiter: RateLimiterDep,
    rate_limit_config: RateLimitConfigDep,
    identity: ClientIdentityDep,
) -> dict[str, Any]:
    """Cache statistics and the caller's current rate-limit record."""
    stats, status = await asyncio.gather(
        maintenance.get_stats(),
        limiter.status(identity, rate_limit_config),
    )
    return {
        "success": True,
        "timestamp": _timestamp(),
        "clientIP": identity,
        "cache": stats.to_dict(),
        "rateLimit": status.to_dict() if status is not None else None,
    }


@router.get("/health")
async def detailed_health(store: StoreDep, maintenance: MaintenanceDep) -> dict[str, Any]:
    """Detailed health: store connection diagnostics and cache statistics."""
    stats = await maintenance.get_stats()
    return {
        "status": "ok",
        "timestamp": _timestamp(),
        "version": settings.version,
        "services": {
            "redis": {**store.health(), **stats.to_dict()},
            "api": {"status": "operational"},
        },
    }


@router.get("/test-rate-limit")
async def test_rate_limit(
    limiter: RateLimiterDep,
    rate_limit_config: RateLimitConfigDep,
    identity: ClientIdentityDep,
) -> dict[str, Any]:
    """Show the caller's rate-limit record; each request counts towards it."""
    status = await limiter.status(identity, rate_limit_config)
    return {
        "success": True,
        "message": "Rate limit test endpoint - each request counts towards your limit",
        "clientIP": identity,
        "rateLimit": (
            status.to_dict()
            if status is not None
            else {"message": "Rate limiting not available (Redis unavailable)"}
        ),
        "limits": {
            rate_limit_config.key_prefix: (
                f"{rate_limit_config.limit} requests per {rate_limit_config.window} seconds"
            )
        },
    }


@router.post("/cache/invalidate")
async def invalidate_cache(
    maintenance: MaintenanceDep,
    pattern: str = Query(..., description="Key pattern, e.g. bahngate:journeys:*"),
) -> dict[str, Any]:
    """Delete every cache entry matching ``pattern``."""
    cleaned = validate_pattern(pattern)
    deleted = await maintenance.invalidate(cleaned)
    return {
        "pattern": cleaned,
        "deleted_count": deleted,
        "timestamp": _timestamp(),
    }
