"""Response cache for the gateway.

Provides Redis caching with the cache-aside pattern:
- Deterministic keys from a logical name plus an order-insensitive parameter set
- JSON values with a per-entry TTL and a size guard
- Fail-open: an unavailable store only costs a recomputation
- SCAN-based invalidation and namespace statistics
"""

from bahngate.cache.keys import HASH_FUNCTION_ID, CacheKeys, canonical_params, combined_hash
from bahngate.cache.maintenance import CacheStats, Maintenance, parse_memory_usage
from bahngate.cache.wrapper import CacheConfig, CacheResult, CacheWrapper

__all__ = [
    # Keys
    "CacheKeys",
    "HASH_FUNCTION_ID",
    "canonical_params",
    "combined_hash",
    # Read-through cache
    "CacheConfig",
    "CacheResult",
    "CacheWrapper",
    # Maintenance
    "CacheStats",
    "Maintenance",
    "parse_memory_usage",
]
