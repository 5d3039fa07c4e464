"""
Cache Configuration

Centralized configuration for the caching and refresh layer.

Settings come from environment variables so the same code runs
locally (no Redis, memory cache) and in production (Redis).
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from functools import lru_cache
from typing import List, Optional


class TTLClass(Enum):
    """
    Cache lifetime policy for an aggregate.

    Volatile current-period data expires fast, rankings sit in the
    middle, historical daily aggregates live longest. UNCACHED is for
    date-range/filter combinations too numerous to cache economically.
    """

    SHORT_LIVED = "short_lived"
    MEDIUM = "medium"
    LONG = "long"
    EXTENDED = "extended"
    UNCACHED = "uncached"

    @property
    def duration(self) -> Optional[timedelta]:
        return _TTL_DURATIONS[self]

    @property
    def cacheable(self) -> bool:
        return self is not TTLClass.UNCACHED


_TTL_DURATIONS = {
    TTLClass.SHORT_LIVED: timedelta(minutes=15),
    TTLClass.MEDIUM: timedelta(minutes=30),
    TTLClass.LONG: timedelta(hours=1),
    TTLClass.EXTENDED: timedelta(hours=2),
    TTLClass.UNCACHED: None,
}


@dataclass(frozen=True)
class CacheTTL:
    """
    TTL class by data type.

    These mirror how often the underlying numbers actually move:
    today's posts change every scrape, account lists barely change.
    """

    DAILY_AGG: TTLClass = TTLClass.LONG
    TOP_POSTS: TTLClass = TTLClass.MEDIUM
    ACCOUNTS: TTLClass = TTLClass.EXTENDED
    TODAY_POSTS: TTLClass = TTLClass.SHORT_LIVED
    WEEKLY_STATS: TTLClass = TTLClass.LONG

    @classmethod
    def for_prefix(cls, prefix: str) -> TTLClass:
        """Get TTL class for a cache key prefix."""
        mapping = {
            "daily_agg": cls.DAILY_AGG,
            "top_posts": cls.TOP_POSTS,
            "accounts": cls.ACCOUNTS,
            "today_posts": cls.TODAY_POSTS,
            "weekly_stats": cls.WEEKLY_STATS,
        }
        return mapping.get(prefix, cls.DAILY_AGG)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class CacheConfig:
    """
    Main cache configuration.

    Settings can be overridden via environment variables:
    - REDIS_URL: Redis connection string
    - CACHE_ENABLED: Enable/disable caching globally
    - CACHE_NAMESPACE: Optional prefix for every key
    - CACHE_OPERATION_TIMEOUT: Seconds before a cache call counts as a miss
    """

    redis_url: str = field(default_factory=lambda: os.getenv(
        "REDIS_URL",
        "redis://localhost:6379/0"
    ))

    # Empty namespace keeps keys like "daily_agg:1:..." so documented
    # invalidation patterns work unchanged.
    namespace: str = field(default_factory=lambda: os.getenv(
        "CACHE_NAMESPACE",
        ""
    ))

    enabled: bool = field(default_factory=lambda: _env_bool("CACHE_ENABLED", "true"))

    # Connection pool
    redis_max_connections: int = field(default_factory=lambda: int(os.getenv(
        "REDIS_MAX_CONNECTIONS",
        "20"
    )))
    redis_socket_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_SOCKET_TIMEOUT",
        "2.0"
    )))
    redis_connect_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_CONNECT_TIMEOUT",
        "2.0"
    )))

    # Upper bound for any single cache call
    operation_timeout: float = field(default_factory=lambda: float(os.getenv(
        "CACHE_OPERATION_TIMEOUT",
        "1.0"
    )))

    # Seconds to wait before retrying a failed connection
    reconnect_interval: float = field(default_factory=lambda: float(os.getenv(
        "CACHE_RECONNECT_INTERVAL",
        "30"
    )))

    # Circuit breaker
    circuit_breaker_enabled: bool = field(default_factory=lambda: _env_bool(
        "CACHE_CIRCUIT_BREAKER_ENABLED", "true"
    ))
    circuit_breaker_threshold: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_CIRCUIT_BREAKER_THRESHOLD",
        "5"
    )))
    circuit_breaker_timeout: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_CIRCUIT_BREAKER_TIMEOUT",
        "60"
    )))

    # Compression
    compression_enabled: bool = field(default_factory=lambda: _env_bool(
        "CACHE_COMPRESSION_ENABLED", "true"
    ))
    compression_threshold: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_COMPRESSION_THRESHOLD",
        "1024"
    )))


# Precomputed views maintained by the database, in refresh order
DEFAULT_REFRESH_TARGETS = [
    "account_health",
    "mv_tiktok_top_posts",
    "mv_instagram_daily_totals",
    "mv_tiktok_daily_totals",
    "mv_instagram_top_posts",
]

# Which cached aggregates each refresh target feeds
TARGET_CACHE_PREFIXES = {
    "account_health": ["accounts"],
    "mv_tiktok_top_posts": ["top_posts", "today_posts"],
    "mv_instagram_top_posts": ["top_posts", "today_posts"],
    "mv_tiktok_daily_totals": ["daily_agg", "weekly_stats"],
    "mv_instagram_daily_totals": ["daily_agg", "weekly_stats"],
}


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class RefreshConfig:
    """
    Refresh coordinator settings.

    - REFRESH_TARGETS: Comma separated list of precomputed views
    - REFRESH_CONCURRENT: Rebuild targets concurrently
    - REFRESH_TIMEOUT: Seconds allowed per target rebuild
    - REFRESH_INTERVAL: Seconds between scheduled refresh passes
    - REFRESH_FUNCTION: Server-side function that rebuilds one view
    """

    targets: List[str] = field(default_factory=lambda: _env_list(
        "REFRESH_TARGETS", DEFAULT_REFRESH_TARGETS
    ))
    concurrent: bool = field(default_factory=lambda: _env_bool("REFRESH_CONCURRENT", "false"))
    rebuild_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REFRESH_TIMEOUT",
        "120"
    )))
    interval_seconds: int = field(default_factory=lambda: int(os.getenv(
        "REFRESH_INTERVAL",
        "900"
    )))
    rebuild_function: str = field(default_factory=lambda: os.getenv(
        "REFRESH_FUNCTION",
        "refresh_materialized_view"
    ))


@lru_cache(maxsize=1)
def get_cache_config() -> CacheConfig:
    """Get singleton cache configuration."""
    return CacheConfig()


@lru_cache(maxsize=1)
def get_refresh_config() -> RefreshConfig:
    """Get singleton refresh configuration."""
    return RefreshConfig()
