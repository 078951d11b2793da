"""Health check endpoints for the gateway.

Provides Kubernetes-compatible liveness and readiness probes:
- /health/live  - Liveness probe (always returns OK if process is running)
- /health/ready - Readiness probe (probes the shared store)

The store is optional infrastructure: when it is down or not configured the
gateway keeps serving in fail-open mode, so readiness reports ``degraded``
with status 200 instead of taking the instance out of rotation.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from fastapi import APIRouter

from bahngate.api.deps import StoreDep
from bahngate.config import settings
from bahngate.store.connection import StoreConnection

router = APIRouter(tags=["health"])


class HealthStatus(str, Enum):
    """Health check status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    latency_ms: float
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            result["message"] = self.message
        return result


async def check_redis(store: StoreConnection) -> ComponentHealth:
    """Check shared-store connectivity. Never raises."""
    start = time.monotonic()
    if not store.configured:
        return ComponentHealth(
            name="redis",
            status=HealthStatus.DEGRADED,
            latency_ms=0.0,
            message="REDIS_URL is not set",
        )

    available = await store.is_available()
    latency = (time.monotonic() - start) * 1000
    return ComponentHealth(
        name="redis",
        status=HealthStatus.HEALTHY if available else HealthStatus.DEGRADED,
        latency_ms=latency,
        message=None if available else f"Redis unavailable ({store.state.value})",
    )


@router.get("/")
async def banner() -> dict[str, str]:
    """Service banner."""
    return {
        "message": f"{settings.app_name} is running",
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "version": settings.version,
    }


@router.get("/health")
async def health() -> dict[str, str]:
    """Basic health check."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "version": settings.version,
    }


@router.get("/health/live")
async def live() -> dict[str, str]:
    """Liveness probe.

    Returns OK if the process is running. Used by Kubernetes
    to determine if the container should be restarted.
    """
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(store: StoreDep) -> dict[str, Any]:
    """Readiness probe.

    Always 200: a missing store degrades caching and rate limiting but
    never stops the gateway from answering.
    """
    redis_result = await check_redis(store)
    return {
        "status": redis_result.status.value,
        "components": [redis_result.to_dict()],
    }
