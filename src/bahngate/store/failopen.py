"""Fail-open degradation for store-touching operations.

Every coroutine that talks to the shared store is decorated with
``fail_open``. A store failure is logged and replaced by the operation's
degraded result; nothing else is caught, so errors raised by caller-supplied
compute functions keep propagating unchanged.

Example:
    @fail_open(lambda self, key: None)
    async def _read(self, key: str) -> bytes | None:
        async with self.store.session() as client:
            return await client.get(key)
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from bahngate.store.errors import (
    StoreConfigurationError,
    StoreError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Everything that means "the store did not answer correctly"
STORE_FAILURES: tuple[type[BaseException], ...] = (
    StoreError,
    RedisError,
    TimeoutError,
    OSError,
)


def fail_open(
    fallback: Callable[P, T],
    *,
    operation: str | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Return ``fallback(*args, **kwargs)`` when the wrapped coroutine hits a store failure.

    Args:
        fallback: Builds the degraded result from the call's own arguments
        operation: Name used in log lines (defaults to the function's qualname)
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        name = operation or func.__qualname__

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except STORE_FAILURES as e:
                _log_degraded(name, e)
                return fallback(*args, **kwargs)

        return wrapper

    return decorator


def _log_degraded(operation: str, exc: BaseException) -> None:
    if isinstance(exc, StoreConfigurationError):
        # Permanently degraded mode; already reported once by StoreConnection
        logger.debug(f"{operation} skipped: store not configured")
    elif isinstance(
        exc,
        (StoreUnavailableError, RedisConnectionError, RedisTimeoutError, TimeoutError, OSError),
    ):
        logger.warning(f"{operation} degraded, store unavailable: {exc}")
    else:
        logger.error(f"{operation} degraded after store error ({type(exc).__name__}): {exc}")
