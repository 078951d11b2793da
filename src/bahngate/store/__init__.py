"""Shared-store access for the cache and the rate limiter.

- StoreConnection owns the single Redis client and its state machine
- fail_open turns store failures into degraded results
- StoreError and subclasses describe what went wrong
"""

from bahngate.store.connection import (
    StoreConfig,
    StoreConnection,
    StoreState,
    create_redis_client,
)
from bahngate.store.errors import (
    StoreConfigurationError,
    StoreError,
    StorePipelineError,
    StoreSerializationError,
    StoreUnavailableError,
)
from bahngate.store.failopen import STORE_FAILURES, fail_open

__all__ = [
    # Connection
    "StoreConfig",
    "StoreConnection",
    "StoreState",
    "create_redis_client",
    # Degradation
    "fail_open",
    "STORE_FAILURES",
    # Errors
    "StoreError",
    "StoreConfigurationError",
    "StorePipelineError",
    "StoreSerializationError",
    "StoreUnavailableError",
]
