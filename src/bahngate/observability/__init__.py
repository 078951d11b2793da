"""Observability for the gateway resilience layer.

Provides structured logging with request correlation and Prometheus
metrics for cache and rate-limit participation.
"""

from bahngate.observability.logging import (
    LogContext,
    client_identity_var,
    configure_logging,
    request_id_var,
)
from bahngate.observability.metrics import get_metrics, metrics_registry

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "request_id_var",
    "client_identity_var",
    # Metrics
    "get_metrics",
    "metrics_registry",
]
