"""
Caching and Refresh Layer

Components:
- Cache stores: Redis (shared, production) and in-process (local, tests)
- Key builder: deterministic, order-independent keys
- Compression: LZ4 for large aggregate payloads
- Invalidation: pattern and event based eviction
- Refresh: out-of-band rebuild of precomputed views, with scheduling

Cache stores never raise on the read path; a dead backend is a miss.
"""

from socialpulse.cache.config import (
    CacheConfig,
    CacheTTL,
    RefreshConfig,
    TTLClass,
    get_cache_config,
    get_refresh_config,
)
from socialpulse.cache.base import CacheStats, CacheStore
from socialpulse.cache.keys import build_key, client_pattern
from socialpulse.cache.memory_cache import MemoryCache
from socialpulse.cache.redis_cache import RedisCache
from socialpulse.cache.invalidation import (
    CacheEvent,
    CacheInvalidator,
    InvalidationResult,
    INVALIDATION_PATTERNS,
)
from socialpulse.cache.refresh import (
    RefreshCoordinator,
    RefreshReport,
    RefreshStatus,
    RefreshTarget,
)
from socialpulse.cache.scheduler import RefreshScheduler

__all__ = [
    # Config
    "CacheConfig",
    "CacheTTL",
    "RefreshConfig",
    "TTLClass",
    "get_cache_config",
    "get_refresh_config",
    # Stores
    "CacheStats",
    "CacheStore",
    "MemoryCache",
    "RedisCache",
    # Keys
    "build_key",
    "client_pattern",
    # Invalidation
    "CacheEvent",
    "CacheInvalidator",
    "InvalidationResult",
    "INVALIDATION_PATTERNS",
    # Refresh
    "RefreshCoordinator",
    "RefreshReport",
    "RefreshStatus",
    "RefreshTarget",
    "RefreshScheduler",
]
