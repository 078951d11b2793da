"""Shared FastAPI dependencies for gateway routers.

The store and the components built on it are owned by the application
(``create_app`` puts them on ``app.state``); routers receive them through
these dependencies instead of module globals.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from bahngate.cache.maintenance import Maintenance
from bahngate.cache.wrapper import CacheWrapper
from bahngate.ratelimit.identity import client_identity
from bahngate.ratelimit.limiter import RateLimitConfig, RateLimiter
from bahngate.store.connection import StoreConnection


def get_store(request: Request) -> StoreConnection:
    return request.app.state.store  # type: ignore[no-any-return]


def get_cache(request: Request) -> CacheWrapper:
    return request.app.state.cache  # type: ignore[no-any-return]


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter  # type: ignore[no-any-return]


def get_maintenance(request: Request) -> Maintenance:
    return request.app.state.maintenance  # type: ignore[no-any-return]


def get_rate_limit_config(request: Request) -> RateLimitConfig:
    """Default limit the middleware applies to API routes."""
    return request.app.state.rate_limit_config  # type: ignore[no-any-return]


def get_client_identity(request: Request) -> str:
    """Identity the rate limiter counts this request under."""
    return client_identity(request.headers)


StoreDep = Annotated[StoreConnection, Depends(get_store)]
CacheDep = Annotated[CacheWrapper, Depends(get_cache)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]
MaintenanceDep = Annotated[Maintenance, Depends(get_maintenance)]
RateLimitConfigDep = Annotated[RateLimitConfig, Depends(get_rate_limit_config)]
ClientIdentityDep = Annotated[str, Depends(get_client_identity)]
