"""
Analytics Service

Wires one read orchestrator per aggregate to a shared cache store, plus
the invalidator and refresh coordinator. This is what the HTTP layer
and scripts talk to.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from socialpulse.aggregation.config import AggregationConfig, get_aggregation_config
from socialpulse.aggregation.definitions import DAILY_TOTALS, Row, top_posts_definition
from socialpulse.aggregation.fallback import FallbackAggregator
from socialpulse.aggregation.orchestrator import ReadOrchestrator
from socialpulse.aggregation.query import QuerySpec
from socialpulse.aggregation.reader import AggregateReader
from socialpulse.cache.base import CacheStore
from socialpulse.cache.config import CacheConfig, RefreshConfig, TTLClass, get_cache_config, get_refresh_config
from socialpulse.cache.invalidation import CacheEvent, CacheInvalidator, InvalidationResult
from socialpulse.cache.memory_cache import MemoryCache
from socialpulse.cache.redis_cache import RedisCache
from socialpulse.cache.refresh import RefreshCoordinator, RefreshReport
from socialpulse.cache.scheduler import RefreshScheduler


logger = logging.getLogger(__name__)


class AnalyticsService:
    """
    Entry point for dashboard aggregates.

    Args:
        cache: Shared cache store
        daily_store: Precomputed daily totals + raw snapshots
        top_posts_store: Precomputed top posts + raw snapshots
        rebuild_store: Store whose rebuild() refreshes the views
            (defaults to daily_store)
    """

    def __init__(
        self,
        cache: CacheStore,
        daily_store: Any,
        top_posts_store: Any,
        rebuild_store: Any = None,
        config: Optional[AggregationConfig] = None,
        refresh_config: Optional[RefreshConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or get_aggregation_config()
        self.cache = cache
        tz = self.config.timezone

        top_posts = top_posts_definition(self.config.top_posts_limit)

        self.orchestrators: Dict[str, ReadOrchestrator] = {}
        for definition, store in ((DAILY_TOTALS, daily_store), (top_posts, top_posts_store)):
            self.orchestrators[definition.name] = ReadOrchestrator(
                definition,
                cache,
                AggregateReader(store, timeout=self.config.precomputed_timeout),
                FallbackAggregator(
                    store,
                    definition,
                    tz,
                    clock=clock,
                    timeout=self.config.fallback_timeout,
                ),
                config=self.config,
            )

        self.invalidator = CacheInvalidator(cache)
        self.coordinator = RefreshCoordinator(
            rebuild_store if rebuild_store is not None else daily_store,
            config=refresh_config or get_refresh_config(),
        )
        self.scheduler = RefreshScheduler(self.coordinator, self.invalidator)

    async def get_aggregate(
        self,
        aggregate: str,
        spec: QuerySpec,
        ttl_class: Optional[TTLClass] = None,
    ) -> List[Row]:
        try:
            orchestrator = self.orchestrators[aggregate]
        except KeyError:
            raise ValueError(f"Unknown aggregate: {aggregate}")
        return await orchestrator.get_aggregate(spec, ttl_class)

    async def daily_totals(self, spec: QuerySpec, ttl_class: Optional[TTLClass] = None) -> List[Row]:
        return await self.get_aggregate(DAILY_TOTALS.name, spec, ttl_class)

    async def top_posts(self, spec: QuerySpec, ttl_class: Optional[TTLClass] = None) -> List[Row]:
        return await self.get_aggregate("top_posts", spec, ttl_class)

    async def invalidate(self, pattern: str) -> int:
        return await self.invalidator.invalidate(pattern)

    async def handle_event(self, event: CacheEvent, **kwargs) -> InvalidationResult:
        return await self.invalidator.handle_event(event, **kwargs)

    async def refresh_all(self, invalidate: bool = True) -> RefreshReport:
        """Refresh every target; optionally evict what the refreshed views feed."""
        if invalidate:
            return await self.scheduler.run_once()
        return await self.coordinator.refresh_all()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "cache": self.cache.get_stats(),
            "aggregates": {name: o.get_stats() for name, o in self.orchestrators.items()},
        }


async def build_cache_store(config: Optional[CacheConfig] = None) -> CacheStore:
    """
    Redis when configured and reachable, else an in-process cache.

    A Redis that is down at startup keeps retrying in the background of
    normal calls, so it is still preferred whenever REDIS_URL is set.
    """
    config = config or get_cache_config()
    if not config.enabled:
        logger.info("Caching disabled, using inert memory cache")
        return MemoryCache(enabled=False)

    if config.redis_url:
        cache = RedisCache(config)
        if not await cache.initialize():
            logger.warning("Redis not reachable at startup, reads will degrade to misses")
        return cache

    return MemoryCache()


def build_sql_service(
    cache: CacheStore,
    session_factory=None,
    config: Optional[AggregationConfig] = None,
    refresh_config: Optional[RefreshConfig] = None,
) -> AnalyticsService:
    """Service backed by the SQL store for both aggregates."""
    from socialpulse.database.session import get_session_factory
    from socialpulse.database.store import DAILY_AGGREGATE, TOP_POSTS_AGGREGATE, SqlAggregateStore

    config = config or get_aggregation_config()
    refresh_config = refresh_config or get_refresh_config()
    session_factory = session_factory or get_session_factory()
    tz = config.timezone

    daily_store = SqlAggregateStore(
        session_factory,
        DAILY_AGGREGATE,
        tz,
        rebuild_function=refresh_config.rebuild_function,
    )
    top_posts_store = SqlAggregateStore(
        session_factory,
        TOP_POSTS_AGGREGATE,
        tz,
        rebuild_function=refresh_config.rebuild_function,
        top_posts_limit=config.top_posts_limit,
    )
    return AnalyticsService(
        cache,
        daily_store,
        top_posts_store,
        config=config,
        refresh_config=refresh_config,
    )


# Singleton instance
_analytics_service: Optional[AnalyticsService] = None


async def get_analytics_service() -> AnalyticsService:
    """Get singleton analytics service (SQL store, Redis or memory cache)."""
    global _analytics_service

    if _analytics_service is None:
        cache = await build_cache_store()
        _analytics_service = build_sql_service(cache)

    return _analytics_service


async def close_analytics_service():
    """Stop the scheduler and close the cache connection."""
    global _analytics_service

    if _analytics_service:
        await _analytics_service.scheduler.stop()
        if isinstance(_analytics_service.cache, RedisCache):
            await _analytics_service.cache.close()
        _analytics_service = None
