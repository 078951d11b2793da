"""Lifecycle of the single shared-store connection.

The connection is owned by whoever creates it (the FastAPI app keeps one in
``app.state.store``) and passed to the cache and rate limiter explicitly.
It moves through an explicit state machine:

    DISCONNECTED -> CONNECTING -> READY
                        |           |
                        v           v
                      ERROR ----> DISCONNECTED  (reconnect abandoned / close)

Request-path callers never wait on reconnection: a failed connect schedules
a background reconnect loop with exponential backoff and the caller is told
the store is unavailable immediately.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, cast

import redis.asyncio as redis
from redis.backoff import ExponentialBackoff

from bahngate.config import settings
from bahngate.observability.metrics import set_store_state
from bahngate.store.errors import StoreConfigurationError, StoreUnavailableError
from bahngate.store.failopen import STORE_FAILURES

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class StoreState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    ERROR = "error"


@dataclass
class StoreConfig:
    """Configuration for the shared-store connection."""

    url: str | None
    connect_timeout: float = 10.0
    command_timeout: float = 5.0

    # Reconnection: delay = min(base * 2^attempt, max_delay)
    reconnect_base_delay: float = 0.1
    reconnect_max_delay: float = 5.0
    max_reconnect_attempts: int = 10

    @classmethod
    def from_settings(cls) -> StoreConfig:
        """Create config from application settings."""
        return cls(
            url=settings.redis_url,
            connect_timeout=settings.redis_connect_timeout,
            command_timeout=settings.redis_command_timeout,
            reconnect_base_delay=settings.redis_reconnect_base_delay,
            reconnect_max_delay=settings.redis_reconnect_max_delay,
            max_reconnect_attempts=settings.redis_max_reconnect_attempts,
        )


ClientFactory = Callable[[StoreConfig], "Redis"]


def create_redis_client(config: StoreConfig) -> Redis:
    """Build a redis-py async client with bounded connect and command timeouts."""
    return redis.from_url(  # type: ignore[no-untyped-call]
        cast(str, config.url),
        decode_responses=False,  # Cached values are stored as raw JSON bytes
        socket_connect_timeout=config.connect_timeout,
        socket_timeout=config.command_timeout,
    )


class StoreConnection:
    """Owns the one client shared by every concurrent request.

    Counter correctness never depends on this object: it only hands out the
    client. Atomicity comes from the store executing each pipeline as a unit.
    """

    def __init__(
        self,
        config: StoreConfig,
        client_factory: ClientFactory = create_redis_client,
    ):
        self.config = config
        self._client_factory = client_factory
        self._client: Redis | None = None
        self._state = StoreState.DISCONNECTED
        self._lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._reconnect_attempts = 0
        self._backoff = ExponentialBackoff(
            cap=config.reconnect_max_delay, base=config.reconnect_base_delay
        )
        self._inflight = 0
        self._drained = asyncio.Event()
        self._drained.set()
        self._closing = False
        self._missing_url_reported = False

    @property
    def state(self) -> StoreState:
        """Get current connection state."""
        return self._state

    @property
    def configured(self) -> bool:
        return bool(self.config.url)

    def reconnect_delay(self, attempt: int) -> float:
        """Seconds to wait before reconnect ``attempt`` (1-based)."""
        return float(self._backoff.compute(attempt))

    async def obtain(self) -> Redis:
        """Return a ready client.

        Raises:
            StoreConfigurationError: No store address is configured.
            StoreUnavailableError: The store cannot be reached right now.
        """
        if not self.config.url:
            raise StoreConfigurationError()

        if self._closing:
            raise StoreUnavailableError("Store connection is closing")

        if self._state == StoreState.READY and self._client is not None:
            return self._client

        if self._reconnect_task is not None and not self._reconnect_task.done():
            raise StoreUnavailableError("Store reconnection in progress")

        client = await self._connect()
        if client is not None:
            return client

        self._schedule_reconnect()
        raise StoreUnavailableError("Failed to connect to Redis")

    async def is_available(self) -> bool:
        """Probe liveness with PING. Never raises."""
        try:
            client = await self.obtain()
            await asyncio.wait_for(
                cast(Awaitable[Any], client.ping()), timeout=self.config.command_timeout
            )
            return True
        except StoreConfigurationError:
            if not self._missing_url_reported:
                logger.warning("REDIS_URL is not set; caching and rate limiting are disabled")
                self._missing_url_reported = True
            return False
        except STORE_FAILURES as e:
            logger.warning(f"Redis availability check failed: {e}")
            await self._mark_failed()
            return False

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Redis]:
        """Yield the client while counting the caller as an in-flight command."""
        client = await self.obtain()
        self._inflight += 1
        self._drained.clear()
        try:
            yield client
        finally:
            self._inflight -= 1
            if self._inflight == 0:
                self._drained.set()

    async def close(self) -> None:
        """Drain in-flight commands and close the client. Safe to call repeatedly."""
        self._closing = True
        try:
            if self._reconnect_task and not self._reconnect_task.done():
                self._reconnect_task.cancel()
                try:
                    await self._reconnect_task
                except asyncio.CancelledError:
                    pass
            self._reconnect_task = None

            if self._inflight:
                try:
                    await asyncio.wait_for(
                        self._drained.wait(), timeout=self.config.command_timeout
                    )
                except TimeoutError:
                    logger.warning(f"Closing Redis with {self._inflight} commands still in flight")

            async with self._lock:
                client, self._client = self._client, None
                if client is not None:
                    await self._discard(client)
                    logger.info("Redis client connection closed")
                self._reconnect_attempts = 0
                self._set_state(StoreState.DISCONNECTED)
        finally:
            self._closing = False

    def health(self) -> dict[str, Any]:
        """Return connection diagnostics."""
        return {
            "configured": self.configured,
            "state": self._state.value,
            "reconnect_attempts": self._reconnect_attempts,
            "reconnecting": self._reconnect_task is not None and not self._reconnect_task.done(),
            "inflight": self._inflight,
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _set_state(self, state: StoreState) -> None:
        if state != self._state:
            logger.debug(f"Redis connection {self._state.value} -> {state.value}")
        self._state = state
        set_store_state(state.value)

    async def _connect(self) -> Redis | None:
        async with self._lock:
            if self._state == StoreState.READY and self._client is not None:
                return self._client

            self._set_state(StoreState.CONNECTING)
            client = self._client_factory(self.config)
            try:
                await asyncio.wait_for(
                    cast(Awaitable[Any], client.ping()), timeout=self.config.connect_timeout
                )
            except STORE_FAILURES as e:
                self._set_state(StoreState.ERROR)
                logger.error(f"Failed to connect to Redis: {e}")
                await self._discard(client)
                return None

            self._client = client
            self._reconnect_attempts = 0
            self._set_state(StoreState.READY)
            logger.info("Redis client ready")
            return client

    async def _mark_failed(self) -> None:
        """Drop a client that stopped answering and start reconnecting."""
        async with self._lock:
            client, self._client = self._client, None
            if self._state == StoreState.READY:
                self._set_state(StoreState.ERROR)
        if client is not None:
            await self._discard(client)
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closing:
            return
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        """Background reconnection with exponential backoff."""
        while not self._closing:
            self._reconnect_attempts += 1
            delay = self.reconnect_delay(self._reconnect_attempts)
            logger.info(
                f"Redis reconnect attempt {self._reconnect_attempts}, waiting {delay * 1000:.0f}ms"
            )
            await asyncio.sleep(delay)

            if await self._connect() is not None:
                return

            if self._reconnect_attempts >= self.config.max_reconnect_attempts:
                logger.error(
                    f"Redis reconnect abandoned after {self._reconnect_attempts} attempts"
                )
                # The next lazy obtain() starts over from attempt zero
                self._reconnect_attempts = 0
                self._set_state(StoreState.DISCONNECTED)
                return

    async def _discard(self, client: Redis) -> None:
        try:
            await client.aclose()
        except STORE_FAILURES as e:
            logger.warning(f"Error closing Redis client: {e}")
