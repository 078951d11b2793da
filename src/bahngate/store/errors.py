"""Error taxonomy for shared-store access.

Only StoreConfigurationError leaves this layer. Every other StoreError is
folded into a degraded result by ``fail_open``.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for shared-store failures."""


class StoreUnavailableError(StoreError):
    """Store unreachable, timed out, or rejected the connection."""


class StoreSerializationError(StoreError):
    """A value could not be encoded for, or decoded from, the store."""


class StorePipelineError(StoreError):
    """A MULTI/EXEC batch returned a malformed or short result."""

    def __init__(self, results: object):
        self.results = results
        super().__init__(f"Malformed pipeline result: {results!r}")


class StoreConfigurationError(StoreError):
    """The store address is not configured."""

    def __init__(self, message: str = "REDIS_URL is not set"):
        super().__init__(message)
