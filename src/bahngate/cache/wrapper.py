"""Read-through response cache.

``CacheWrapper.wrap`` memoizes an async computation behind a derived key:

1. Store unavailable: run ``compute()`` and return it, cache bypassed.
2. Stored value found and parseable: return it as a hit.
3. Otherwise run ``compute()`` once, write the JSON form with the entry's
   TTL unless it exceeds ``max_value_size``, and return the value.

The caller always receives the correct result, whether or not the cache took
part. Exceptions raised by ``compute()`` are never caught here.

Concurrent misses on the same key each run ``compute()`` unless the entry
is configured with ``single_flight=True``, which coalesces misses inside
this process (other processes still compute independently).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import orjson
from pydantic import TypeAdapter, ValidationError

from bahngate.cache.keys import CacheKeys
from bahngate.config import settings
from bahngate.observability.metrics import (
    record_cache_lookup,
    record_cache_write_skipped,
    record_compute_duration,
)
from bahngate.store.failopen import fail_open

if TYPE_CHECKING:
    from bahngate.store.connection import StoreConnection

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_VALUE_SIZE = 1024 * 1024  # 1 MiB

# Read outcomes that are not cached values
_MISS = object()
_UNAVAILABLE = object()


@dataclass
class CacheConfig:
    """Per-call cache configuration."""

    # Entry TTL in seconds
    ttl: int
    # Namespace segment used when the key is not derived from parameters
    key_prefix: str | None = None
    # Serialized values larger than this are returned but not stored
    max_value_size: int = DEFAULT_MAX_VALUE_SIZE
    # Coalesce concurrent misses on one key within this process
    single_flight: bool = False
    # Type that hits are validated into, e.g. a pydantic model. Without it a
    # hit returns the decoded JSON, so non-JSON values come back as dicts.
    value_type: Any = None

    @classmethod
    def from_settings(cls, **overrides: Any) -> CacheConfig:
        """Create config from application defaults."""
        values: dict[str, Any] = {
            "ttl": settings.cache_default_ttl,
            "max_value_size": settings.cache_max_value_size,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class CacheResult(Generic[T]):
    """Outcome of a cached computation."""

    hit: bool
    value: T
    key: str
    duration_ms: float
    # True when the store did not take part because it failed
    degraded: bool = False


def _json_default(obj: Any) -> Any:
    # Pydantic models are cached as their JSON-mode dump
    model_dump = getattr(obj, "model_dump", None)
    if callable(model_dump):
        return model_dump(mode="json")
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


@lru_cache(maxsize=128)
def _adapter(value_type: Any) -> TypeAdapter[Any]:
    return TypeAdapter(value_type)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _validate(key: str, cached: Any, value_type: Any) -> Any:
    try:
        return _adapter(value_type).validate_python(cached)
    except ValidationError as e:
        logger.error(f"Cached value for key {key} does not match {value_type!r}: {e}")
        return _MISS


class CacheWrapper:
    """Memoizes computations in the shared store."""

    def __init__(self, store: StoreConnection):
        self.store = store
        self._inflight: dict[str, asyncio.Future[Any]] = {}

    async def wrap(
        self,
        logical_key: str,
        config: CacheConfig,
        compute: Callable[[], Awaitable[T]],
        params: Mapping[str, Any] | None = None,
    ) -> CacheResult[T]:
        """Return the cached value for ``logical_key``/``params`` or compute it.

        Args:
            logical_key: Name of the computation, e.g. "journeys"
            config: TTL, key prefix and size guard for this entry
            compute: Coroutine factory producing the value on a miss
            params: Parameters identifying the request; order-insensitive
        """
        start = time.perf_counter()
        key = CacheKeys.derive(logical_key, params, config.key_prefix)

        if not await self.store.is_available():
            logger.warning(f"Redis unavailable, computing {key} directly")
            record_cache_lookup("bypass")
            value = await compute()
            return CacheResult(
                hit=False, value=value, key=key, duration_ms=_elapsed_ms(start), degraded=True
            )

        cached = await self._read(key)
        if config.value_type is not None and cached not in (_MISS, _UNAVAILABLE):
            cached = _validate(key, cached, config.value_type)

        if cached is _UNAVAILABLE:
            record_cache_lookup("bypass")
            value = await compute()
            return CacheResult(
                hit=False, value=value, key=key, duration_ms=_elapsed_ms(start), degraded=True
            )

        if cached is not _MISS:
            duration = _elapsed_ms(start)
            record_cache_lookup("hit")
            logger.debug(f"Cache hit for key: {key} ({duration}ms)")
            return CacheResult(hit=True, value=cached, key=key, duration_ms=duration)

        record_cache_lookup("miss")
        if config.single_flight:
            value = await self._compute_once(
                key, lambda: self._compute_and_store(key, config, compute)
            )
        else:
            value = await self._compute_and_store(key, config, compute)

        return CacheResult(hit=False, value=value, key=key, duration_ms=_elapsed_ms(start))

    # -------------------------------------------------------------------------
    # Miss path
    # -------------------------------------------------------------------------

    async def _compute_and_store(
        self,
        key: str,
        config: CacheConfig,
        compute: Callable[[], Awaitable[T]],
    ) -> T:
        compute_start = time.perf_counter()
        value = await compute()
        record_compute_duration(time.perf_counter() - compute_start)

        try:
            payload = orjson.dumps(value, default=_json_default)
        except TypeError as e:
            logger.error(f"Failed to serialize value for key {key}: {e}")
            record_cache_write_skipped("error")
            return value

        if len(payload) > config.max_value_size:
            logger.warning(
                f"Value too large to cache: {len(payload)} bytes > {config.max_value_size} bytes"
            )
            record_cache_write_skipped("oversize")
            return value

        if await self._write(key, payload, config.ttl):
            logger.debug(f"Value cached: {key} (TTL: {config.ttl}s, Size: {len(payload)} bytes)")
        else:
            record_cache_write_skipped("error")

        return value

    async def _compute_once(self, key: str, produce: Callable[[], Awaitable[T]]) -> T:
        """Run ``produce`` for ``key`` unless a call for it is already in flight."""
        existing = self._inflight.get(key)
        if existing is not None:
            logger.debug(f"Awaiting in-flight computation for {key}")
            try:
                return await asyncio.shield(existing)
            except asyncio.CancelledError:
                task = asyncio.current_task()
                # Only the computing caller was cancelled; take over its work
                if not existing.cancelled() or (task is not None and task.cancelling()):
                    raise
                logger.debug(f"In-flight computation for {key} was cancelled, retrying")
                return await self._compute_once(key, produce)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await produce()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            future.exception()  # Consumed here when nobody else is waiting
            raise
        else:
            future.set_result(value)
            return value
        finally:
            del self._inflight[key]

    # -------------------------------------------------------------------------
    # Store access
    # -------------------------------------------------------------------------

    @fail_open(lambda self, key: _UNAVAILABLE, operation="cache read")
    async def _read(self, key: str) -> Any:
        async with self.store.session() as client:
            raw = await client.get(key)

        if raw is None:
            return _MISS

        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.error(f"Failed to parse cached value for key {key}: {e}")
            return _MISS

    @fail_open(lambda self, key, payload, ttl: False, operation="cache write")
    async def _write(self, key: str, payload: bytes, ttl: int) -> bool:
        async with self.store.session() as client:
            await client.set(key, payload, ex=ttl)
        return True
