"""Global pytest configuration and fixtures.

Provides an in-memory stand-in for the Redis commands the gateway uses, so
unit tests run without a server.
"""

from __future__ import annotations

import fnmatch
from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from bahngate.store.connection import StoreConfig, StoreConnection


def _key(key: str | bytes) -> str:
    return key.decode() if isinstance(key, bytes) else key


class FakePipeline:
    """Queues commands and runs them back to back on ``execute()``."""

    def __init__(self, redis: FakeRedis, transaction: bool):
        self._redis = redis
        self.transaction = transaction
        self._queue: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    async def __aenter__(self) -> FakePipeline:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self._queue.clear()

    def _queue_command(self, name: str, *args: Any, **kwargs: Any) -> FakePipeline:
        self._queue.append((name, args, kwargs))
        return self

    def incr(self, key: str) -> FakePipeline:
        return self._queue_command("incr", key)

    def expire(self, key: str, seconds: int, nx: bool = False) -> FakePipeline:
        return self._queue_command("expire", key, seconds, nx=nx)

    def ttl(self, key: str) -> FakePipeline:
        return self._queue_command("ttl", key)

    def get(self, key: str) -> FakePipeline:
        return self._queue_command("get", key)

    async def execute(self) -> list[Any]:
        self._redis.pipelines.append(
            (self.transaction, [name for name, _, _ in self._queue])
        )
        if self._redis.pipeline_result is not None:
            return self._redis.pipeline_result
        results = []
        for name, args, kwargs in self._queue:
            results.append(await getattr(self._redis, name)(*args, **kwargs))
        return results


class FakeRedis:
    """The subset of ``redis.asyncio.Redis`` the gateway calls.

    Values come back as bytes (``decode_responses=False``). Time does not
    pass: TTLs only change when set, and ``expire_now`` simulates a window
    ending.
    """

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}
        self.available = True
        self.closed = 0
        self.used_memory_human = "1.05M"
        # Overrides the result of every pipeline execute() when set
        self.pipeline_result: Any = None
        self.pipelines: list[tuple[bool, list[str]]] = []
        self.failures: dict[str, Exception] = {}
        self.calls: list[str] = []

    def _check(self, command: str) -> None:
        self.calls.append(command)
        if not self.available:
            raise RedisConnectionError("Connection refused")
        if command in self.failures:
            raise self.failures[command]

    def expire_now(self, key: str) -> None:
        self.data.pop(key, None)
        self.ttls.pop(key, None)

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def get(self, key: str) -> bytes | None:
        self._check("get")
        return self.data.get(_key(key))

    async def set(self, key: str, value: bytes | str, ex: int | None = None) -> bool:
        self._check("set")
        key = _key(key)
        self.data[key] = value.encode() if isinstance(value, str) else value
        if ex is not None:
            self.ttls[key] = ex
        else:
            self.ttls.pop(key, None)
        return True

    async def incr(self, key: str) -> int:
        self._check("incr")
        key = _key(key)
        value = int(self.data.get(key, b"0")) + 1
        self.data[key] = str(value).encode()
        return value

    async def expire(self, key: str, seconds: int, nx: bool = False) -> bool:
        self._check("expire")
        key = _key(key)
        if key not in self.data:
            return False
        if nx and key in self.ttls:
            return False
        self.ttls[key] = seconds
        return True

    async def ttl(self, key: str) -> int:
        self._check("ttl")
        key = _key(key)
        if key not in self.data:
            return -2
        return self.ttls.get(key, -1)

    async def scan(
        self, cursor: int = 0, match: str | None = None, count: int | None = None
    ) -> tuple[int, list[bytes]]:
        self._check("scan")
        keys = sorted(k for k in self.data if match is None or fnmatch.fnmatchcase(k, match))
        page_size = count or 10
        page = keys[cursor : cursor + page_size]
        next_cursor = cursor + page_size
        if next_cursor >= len(keys):
            next_cursor = 0
        return next_cursor, [k.encode() for k in page]

    async def delete(self, *keys: str | bytes) -> int:
        self._check("delete")
        deleted = 0
        for key in keys:
            key = _key(key)
            if key in self.data:
                del self.data[key]
                self.ttls.pop(key, None)
                deleted += 1
        return deleted

    async def info(self, section: str | None = None) -> dict[str, Any]:
        self._check("info")
        return {"used_memory": 1100000, "used_memory_human": self.used_memory_human}

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self, transaction)

    async def aclose(self) -> None:
        self.closed += 1


def make_store_config(url: str | None = "redis://fake:6379/0") -> StoreConfig:
    return StoreConfig(
        url=url,
        connect_timeout=1.0,
        command_timeout=1.0,
        reconnect_base_delay=0.001,
        reconnect_max_delay=0.01,
        max_reconnect_attempts=3,
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    """In-memory Redis stand-in."""
    return FakeRedis()


@pytest_asyncio.fixture
async def store(fake_redis: FakeRedis) -> AsyncIterator[StoreConnection]:
    """StoreConnection whose client factory hands out ``fake_redis``."""
    connection = StoreConnection(make_store_config(), client_factory=lambda config: fake_redis)
    yield connection
    await connection.close()


@pytest_asyncio.fixture
async def unconfigured_store() -> AsyncIterator[StoreConnection]:
    """StoreConnection with no REDIS_URL: permanently degraded."""
    connection = StoreConnection(make_store_config(url=None))
    yield connection
    await connection.close()
