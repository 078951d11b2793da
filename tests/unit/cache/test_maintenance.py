"""Tests for cache invalidation and statistics."""

from __future__ import annotations

import pytest
from redis.exceptions import ResponseError

from bahngate.cache.keys import HASH_FUNCTION_ID
from bahngate.cache.maintenance import SCAN_PAGE_SIZE, CacheStats, Maintenance, parse_memory_usage
from bahngate.store.connection import StoreConnection


@pytest.fixture
def maintenance(store: StoreConnection) -> Maintenance:
    return Maintenance(store)


def seed(fake_redis, *keys: str) -> None:
    for key in keys:
        fake_redis.data[key] = b"{}"


class TestInvalidate:
    """Test pattern invalidation."""

    @pytest.mark.asyncio
    async def test_deletes_matching_keys(self, maintenance: Maintenance, fake_redis) -> None:
        seed(
            fake_redis,
            "bahngate:journeys:aaaa0001",
            "bahngate:journeys:aaaa0002",
            "bahngate:stations:bbbb0001",
            "ratelimit:api:1.2.3.4",
        )

        deleted = await maintenance.invalidate("bahngate:journeys:*")

        assert deleted == 2
        assert sorted(fake_redis.data) == ["bahngate:stations:bbbb0001", "ratelimit:api:1.2.3.4"]

    @pytest.mark.asyncio
    async def test_no_match_returns_zero(self, maintenance: Maintenance, fake_redis) -> None:
        seed(fake_redis, "bahngate:stations:bbbb0001")

        assert await maintenance.invalidate("bahngate:journeys:*") == 0
        assert "delete" not in fake_redis.calls

    @pytest.mark.asyncio
    async def test_walks_every_scan_page(self, maintenance: Maintenance, fake_redis) -> None:
        seed(fake_redis, *(f"bahngate:journeys:{i:08d}" for i in range(SCAN_PAGE_SIZE * 2 + 5)))

        deleted = await maintenance.invalidate("bahngate:*")

        assert deleted == SCAN_PAGE_SIZE * 2 + 5
        assert fake_redis.calls.count("scan") == 3
        assert fake_redis.calls.count("delete") == 1
        assert fake_redis.data == {}

    @pytest.mark.asyncio
    async def test_unavailable_returns_zero(self, maintenance: Maintenance, fake_redis) -> None:
        seed(fake_redis, "bahngate:journeys:aaaa0001")
        fake_redis.available = False

        assert await maintenance.invalidate("bahngate:*") == 0
        assert "bahngate:journeys:aaaa0001" in fake_redis.data

    @pytest.mark.asyncio
    async def test_delete_error_returns_zero(self, maintenance: Maintenance, fake_redis) -> None:
        seed(fake_redis, "bahngate:journeys:aaaa0001")
        fake_redis.failures["delete"] = ResponseError("READONLY replica")

        assert await maintenance.invalidate("bahngate:*") == 0

    @pytest.mark.asyncio
    async def test_unconfigured_returns_zero(self, unconfigured_store: StoreConnection) -> None:
        assert await Maintenance(unconfigured_store).invalidate("bahngate:*") == 0


class TestGetStats:
    """Test namespace statistics."""

    @pytest.mark.asyncio
    async def test_counts_namespaced_keys(self, maintenance: Maintenance, fake_redis) -> None:
        seed(
            fake_redis,
            "bahngate:journeys:aaaa0001",
            "bahngate:stations:bbbb0001",
            "ratelimit:api:1.2.3.4",
            "other-service:key",
        )

        stats = await maintenance.get_stats()

        assert stats.connected is True
        assert stats.key_count == 2
        assert stats.memory_usage == "1.05M"
        assert stats.hash_function_id == HASH_FUNCTION_ID

    @pytest.mark.asyncio
    async def test_unavailable(self, maintenance: Maintenance, fake_redis) -> None:
        fake_redis.available = False

        stats = await maintenance.get_stats()

        assert stats == CacheStats(connected=False, key_count=0)
        assert stats.to_dict() == {
            "connected": False,
            "key_count": 0,
            "hash_function_id": HASH_FUNCTION_ID,
        }

    @pytest.mark.asyncio
    async def test_info_error_degrades(self, maintenance: Maintenance, fake_redis) -> None:
        fake_redis.failures["info"] = ResponseError("unknown command 'INFO'")

        stats = await maintenance.get_stats()

        assert stats.connected is False
        assert stats.key_count == 0


class TestParseMemoryUsage:
    """Test INFO memory parsing."""

    def test_raw_text(self) -> None:
        info = "# Memory\r\nused_memory:1100000\r\nused_memory_human:1.05M\r\nused_memory_rss:0\r\n"
        assert parse_memory_usage(info) == "1.05M"

    def test_raw_bytes(self) -> None:
        assert parse_memory_usage(b"used_memory_human:812.40K\r\n") == "812.40K"

    def test_parsed_mapping(self) -> None:
        assert parse_memory_usage({"used_memory_human": "2.00G"}) == "2.00G"

    def test_missing(self) -> None:
        assert parse_memory_usage("# Memory\r\nused_memory:1100000\r\n") is None
        assert parse_memory_usage({}) is None
