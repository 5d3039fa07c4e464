"""
Cache Invalidation Service

Explicit eviction for write paths that make cached aggregates stale
before their TTL runs out (a bulk data sync, a view refresh).
Principle: invalidate as narrowly as possible.

Events trigger targeted invalidation:
- DATA_SYNCED: one client's aggregates (optionally one platform)
- ACCOUNTS_CHANGED: one client's account lists
- VIEWS_REFRESHED: aggregates fed by the refreshed views
- MANUAL_INVALIDATE_CLIENT / MANUAL_INVALIDATE_ALL
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

from socialpulse.cache.base import CacheStore
from socialpulse.cache.config import TARGET_CACHE_PREFIXES
from socialpulse.cache.keys import client_pattern, prefix_pattern


logger = logging.getLogger(__name__)


# Aggregates derived from a client's post snapshots
CLIENT_DATA_PREFIXES = ["daily_agg", "top_posts", "today_posts", "weekly_stats"]

ALL_PREFIXES = CLIENT_DATA_PREFIXES + ["accounts"]

# Documented patterns operators can pass to invalidate()
INVALIDATION_PATTERNS = {
    "daily_agg:*": "Invalidate all daily aggregation cache",
    "top_posts:*": "Invalidate all top posts cache",
    "accounts:*": "Invalidate all accounts cache",
    "today_posts:*": "Invalidate today's posts cache",
    "weekly_stats:*": "Invalidate weekly stats cache",
    "daily_agg:1:*": "Invalidate daily aggregation for client 1",
    "top_posts:1:*": "Invalidate top posts for client 1",
}


class CacheEvent(Enum):
    """Events that trigger cache invalidation."""

    DATA_SYNCED = "data_synced"
    ACCOUNTS_CHANGED = "accounts_changed"
    VIEWS_REFRESHED = "views_refreshed"
    MANUAL_INVALIDATE_CLIENT = "manual_invalidate_client"
    MANUAL_INVALIDATE_ALL = "manual_invalidate_all"


@dataclass
class InvalidationResult:
    """Result of a cache invalidation operation."""
    event: Optional[CacheEvent]
    success: bool
    keys_invalidated: int
    duration_ms: float
    patterns: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class CacheInvalidator:
    """Pattern-based cache eviction, directly or driven by events."""

    def __init__(self, cache: CacheStore):
        self._cache = cache

    async def invalidate(self, pattern: str) -> int:
        """
        Delete every cache entry matching a glob pattern.

        Idempotent: an already-empty pattern returns 0.
        """
        if not pattern:
            raise ValueError("Cache pattern is required")

        count = await self._cache.delete_pattern(pattern)
        logger.info(f"Invalidated {count} cache entries matching {pattern}")
        return count

    async def invalidate_many(self, patterns: Iterable[str]) -> int:
        total = 0
        for pattern in patterns:
            total += await self.invalidate(pattern)
        return total

    def patterns_for_event(
        self,
        event: CacheEvent,
        client_id: Optional[str] = None,
        platform: Optional[str] = None,
        targets: Optional[Iterable[str]] = None,
    ) -> List[str]:
        """Translate an event into the narrowest set of glob patterns."""
        if event == CacheEvent.DATA_SYNCED:
            if not client_id:
                return [prefix_pattern(p) for p in CLIENT_DATA_PREFIXES]
            if platform:
                # Cross-platform entries include the synced platform's rows
                platforms = [platform] if platform == "all" else [platform, "all"]
                # today_posts keys carry no platform segment
                return [
                    f"{p}:{client_id}:*platform={value}*"
                    for p in CLIENT_DATA_PREFIXES if p != "today_posts"
                    for value in platforms
                ] + [client_pattern("today_posts", client_id)]
            return [client_pattern(p, client_id) for p in CLIENT_DATA_PREFIXES]

        if event == CacheEvent.ACCOUNTS_CHANGED:
            if client_id:
                return [client_pattern("accounts", client_id)]
            return [prefix_pattern("accounts")]

        if event == CacheEvent.VIEWS_REFRESHED:
            prefixes: List[str] = []
            for target in targets or []:
                for prefix in TARGET_CACHE_PREFIXES.get(target, []):
                    if prefix not in prefixes:
                        prefixes.append(prefix)
            return [prefix_pattern(p) for p in prefixes]

        if event == CacheEvent.MANUAL_INVALIDATE_CLIENT:
            if not client_id:
                return []
            return [client_pattern(p, client_id) for p in ALL_PREFIXES]

        if event == CacheEvent.MANUAL_INVALIDATE_ALL:
            return [prefix_pattern(p) for p in ALL_PREFIXES]

        return []

    async def handle_event(
        self,
        event: CacheEvent,
        client_id: Optional[str] = None,
        platform: Optional[str] = None,
        targets: Optional[Iterable[str]] = None,
    ) -> InvalidationResult:
        """Handle cache invalidation for an event."""
        start_time = time.perf_counter()
        errors: List[str] = []
        keys_invalidated = 0

        patterns = self.patterns_for_event(event, client_id, platform, targets)
        logger.info(
            f"Cache invalidation event: {event.value}, client={client_id}, "
            f"platform={platform}, patterns={patterns}"
        )

        for pattern in patterns:
            try:
                keys_invalidated += await self.invalidate(pattern)
            except Exception as e:
                errors.append(f"{pattern}: {e}")
                logger.error(f"Cache invalidation error for {pattern}: {e}")

        duration = (time.perf_counter() - start_time) * 1000

        logger.info(
            f"Invalidation complete: {keys_invalidated} keys, duration: {duration:.2f}ms"
        )

        return InvalidationResult(
            event=event,
            success=len(errors) == 0,
            keys_invalidated=keys_invalidated,
            duration_ms=duration,
            patterns=patterns,
            errors=errors,
        )


async def invalidate_on_data_sync(
    invalidator: CacheInvalidator,
    client_id: str,
    platform: Optional[str] = None,
) -> InvalidationResult:
    """Convenience function to call after a bulk data sync for one client."""
    return await invalidator.handle_event(
        CacheEvent.DATA_SYNCED,
        client_id=client_id,
        platform=platform,
    )
