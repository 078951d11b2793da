"""Cache maintenance: pattern invalidation and diagnostics.

Both operations walk the keyspace with cursor-paginated SCAN (never KEYS),
so a large keyspace does not block the store. Both degrade to an empty
answer when the store is unavailable.

Example:
    maintenance = Maintenance(store)
    deleted = await maintenance.invalidate("bahngate:journeys:*")
    stats = await maintenance.get_stats()
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bahngate.cache.keys import HASH_FUNCTION_ID, CacheKeys
from bahngate.store.failopen import fail_open

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from bahngate.store.connection import StoreConnection

logger = logging.getLogger(__name__)

# Keys requested per SCAN round trip
SCAN_PAGE_SIZE = 100

_USED_MEMORY_RE = re.compile(r"used_memory_human:([^\r\n]+)")


@dataclass
class CacheStats:
    """Diagnostic snapshot of the cache namespace."""

    connected: bool
    key_count: int
    memory_usage: str | None = None
    hash_function_id: str = HASH_FUNCTION_ID

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result: dict[str, Any] = {
            "connected": self.connected,
            "key_count": self.key_count,
            "hash_function_id": self.hash_function_id,
        }
        if self.memory_usage is not None:
            result["memory_usage"] = self.memory_usage
        return result


def parse_memory_usage(info: Mapping[str, Any] | str | bytes) -> str | None:
    """Extract the human-readable ``used_memory_human`` figure from INFO memory.

    Accepts either redis-py's parsed INFO mapping or the raw INFO text.
    """
    if isinstance(info, Mapping):
        value = info.get("used_memory_human")
        return str(value) if value is not None else None

    text = info.decode("utf-8", "replace") if isinstance(info, bytes) else info
    match = _USED_MEMORY_RE.search(text)
    return match.group(1).strip() if match else None


def _disconnected_stats(*args: Any) -> CacheStats:
    return CacheStats(connected=False, key_count=0)


class Maintenance:
    """Bulk removal and reporting over the cache keyspace."""

    def __init__(self, store: StoreConnection):
        self.store = store

    async def scan_keys(self, client: Redis, pattern: str) -> list[bytes]:
        """Collect every key matching ``pattern`` one SCAN page at a time."""
        keys: dict[bytes, None] = {}
        cursor = 0
        while True:
            cursor, page = await client.scan(cursor=cursor, match=pattern, count=SCAN_PAGE_SIZE)
            # SCAN may return a key more than once
            keys.update(dict.fromkeys(page))
            if cursor == 0:
                break
        return list(keys)

    @fail_open(lambda self, pattern: 0, operation="cache invalidation")
    async def invalidate(self, pattern: str) -> int:
        """Delete every key matching ``pattern``.

        Returns the number of keys deleted, 0 when nothing matched or the
        store is unavailable.
        """
        if not await self.store.is_available():
            return 0

        async with self.store.session() as client:
            keys = await self.scan_keys(client, pattern)
            if not keys:
                return 0
            deleted = int(await client.delete(*keys))

        logger.info(f"Cache invalidated: {deleted} keys deleted for pattern {pattern}")
        return deleted

    @fail_open(_disconnected_stats, operation="cache stats")
    async def get_stats(self) -> CacheStats:
        """Count namespaced keys and report store memory usage."""
        if not await self.store.is_available():
            return _disconnected_stats()

        async with self.store.session() as client:
            keys = await self.scan_keys(client, CacheKeys.namespace_pattern())
            info = await client.info("memory")

        return CacheStats(
            connected=True,
            key_count=len(keys),
            memory_usage=parse_memory_usage(info),
        )
