"""Prometheus metrics for the resilience layer.

Tracks how often the cache and rate limiter actually participate versus
degrade:
- Cache lookups by outcome (hit, miss, bypass)
- Cache writes skipped (oversize, error)
- Rate-limit decisions (allowed, rejected, fail_open)
- Shared-store connection state

Usage:
    from bahngate.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.cache_lookups_total.labels(outcome="hit").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from bahngate.config import settings

logger = logging.getLogger(__name__)

# Numeric encoding of StoreState for the gauge
STORE_STATE_VALUES = {
    "disconnected": 0,
    "connecting": 1,
    "ready": 2,
    "error": 3,
}


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> "NoOpMetric":
        return self

    def inc(self, amount: float = 1) -> None:
        pass

    def set(self, value: float) -> None:
        pass

    def observe(self, value: float) -> None:
        pass


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    cache_lookups_total: Any = None
    cache_writes_skipped_total: Any = None
    cache_compute_duration_seconds: Any = None
    ratelimit_decisions_total: Any = None
    store_state: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: CollectorRegistry | None = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            noop = NoOpMetric()
            self.cache_lookups_total = noop
            self.cache_writes_skipped_total = noop
            self.cache_compute_duration_seconds = noop
            self.ratelimit_decisions_total = noop
            self.store_state = noop
            self._initialized = True
            return

        self._registry = CollectorRegistry()

        self.cache_lookups_total = Counter(
            "bahngate_cache_lookups_total",
            "Cache lookups by outcome",
            ["outcome"],
            registry=self._registry,
        )

        self.cache_writes_skipped_total = Counter(
            "bahngate_cache_writes_skipped_total",
            "Computed values that were not written to the cache",
            ["reason"],
            registry=self._registry,
        )

        self.cache_compute_duration_seconds = Histogram(
            "bahngate_cache_compute_duration_seconds",
            "Time spent in compute functions on cache misses",
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self._registry,
        )

        self.ratelimit_decisions_total = Counter(
            "bahngate_ratelimit_decisions_total",
            "Rate-limit decisions by outcome",
            ["outcome"],
            registry=self._registry,
        )

        self.store_state = Gauge(
            "bahngate_store_state",
            "Shared-store connection state (0=disconnected 1=connecting 2=ready 3=error)",
            registry=self._registry,
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def record_cache_lookup(outcome: str) -> None:
    """Record a cache lookup outcome: hit, miss or bypass."""
    get_metrics().cache_lookups_total.labels(outcome=outcome).inc()


def record_cache_write_skipped(reason: str) -> None:
    get_metrics().cache_writes_skipped_total.labels(reason=reason).inc()


def record_compute_duration(duration: float) -> None:
    get_metrics().cache_compute_duration_seconds.observe(duration)


def record_ratelimit_decision(outcome: str) -> None:
    """Record a rate-limit decision: allowed, rejected or fail_open."""
    get_metrics().ratelimit_decisions_total.labels(outcome=outcome).inc()


def set_store_state(state: str) -> None:
    get_metrics().store_state.set(STORE_STATE_VALUES.get(state, 0))
