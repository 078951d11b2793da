"""Fixtures for API tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from bahngate.api.app import create_app
from bahngate.api.middleware import RateLimitMiddlewareConfig
from bahngate.ratelimit.limiter import RateLimitConfig
from bahngate.store.connection import StoreConnection


@pytest.fixture
def rate_limit_config() -> RateLimitConfig:
    return RateLimitConfig(limit=3, window=60, key_prefix="api")


@pytest.fixture
def app(store: StoreConnection, rate_limit_config: RateLimitConfig) -> FastAPI:
    return create_app(store=store, rate_limit=RateLimitMiddlewareConfig(default=rate_limit_config))


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
