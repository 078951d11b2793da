"""bahngate - resilience layer of a journey-search API gateway.

A read-through response cache and a per-client rate limiter sharing one
Redis connection, both degrading to fail-open behavior when the store is
slow, unreachable or not configured.
"""

__version__ = "0.1.0"
