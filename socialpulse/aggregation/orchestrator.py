"""
Read Orchestrator

The single read policy for every aggregate endpoint:

    cache -> precomputed slice -> fallback computation -> cache write

Staleness rules:
- "today" is refreshed on a schedule, so the precomputed store is
  probed for a current-period row before its slice is trusted.
- Zero precomputed rows means "not populated yet", never "no data".
- Filtered queries skip the precomputed store (its slices are
  unfiltered) and, unless the definition opts in, the cache too.

Known edge case: a slice that is legitimately empty (no activity) is
indistinguishable from one that was never computed, so it always costs
a fallback query. The fallback then returns the same empty result.

Whichever path answers, rows come back in the same shape and order.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from socialpulse.aggregation.config import AggregationConfig, get_aggregation_config
from socialpulse.aggregation.definitions import AggregateDefinition, Row
from socialpulse.aggregation.fallback import FallbackAggregator
from socialpulse.aggregation.query import QuerySpec
from socialpulse.aggregation.reader import AggregateReader
from socialpulse.cache.base import CacheStore
from socialpulse.cache.config import TTLClass
from socialpulse.errors import (
    CacheUnavailable,
    FallbackComputationFailed,
    PrecomputedReadFailed,
    UpstreamError,
)


logger = logging.getLogger(__name__)


PATH_CACHE = "cache"
PATH_PRECOMPUTED = "precomputed"
PATH_FALLBACK = "fallback"


class ReadOrchestrator:
    """
    Serves one aggregate (daily totals, top posts, ...) for any QuerySpec.

    Holds no locks: concurrent misses for the same key may each compute
    and write back. The last write wins, which is harmless because
    every writer stores the same rows.
    """

    def __init__(
        self,
        definition: AggregateDefinition,
        cache: CacheStore,
        reader: AggregateReader,
        fallback: FallbackAggregator,
        config: Optional[AggregationConfig] = None,
    ):
        self.definition = definition
        self._cache = cache
        self._reader = reader
        self._fallback = fallback
        self._config = config or get_aggregation_config()
        self._tz = self._config.timezone
        self.stats: Dict[str, int] = {
            PATH_CACHE: 0,
            PATH_PRECOMPUTED: 0,
            PATH_FALLBACK: 0,
            "cache_writes": 0,
            "upstream_errors": 0,
        }
        self.last_path: Optional[str] = None

    def resolve_ttl(self, spec: QuerySpec, ttl_class: Optional[TTLClass] = None) -> TTLClass:
        """Pick the effective TTL class; filtered queries are uncached unless allowed."""
        ttl_class = ttl_class or self.definition.default_ttl
        if spec.has_filters and not self.definition.cache_filtered:
            return TTLClass.UNCACHED
        return ttl_class

    def cache_key(self, spec: QuerySpec) -> str:
        return spec.cache_key(self.definition.name)

    async def get_aggregate(
        self,
        spec: QuerySpec,
        ttl_class: Optional[TTLClass] = None,
    ) -> List[Row]:
        """
        Return the aggregate rows for a query.

        Raises:
            UpstreamError: when neither the precomputed store nor the
                fallback computation could produce a result
        """
        effective_ttl = self.resolve_ttl(spec, ttl_class)
        key = self.cache_key(spec) if effective_ttl.cacheable else None

        if key is not None:
            cached = await self._read_cache(key)
            if cached is not None:
                self._record(PATH_CACHE)
                logger.debug(f"{self.definition.name}: cache hit {key}")
                return cached

        rows, precomputed_error = await self._read_precomputed(spec)

        if rows is not None:
            self._record(PATH_PRECOMPUTED)
        else:
            rows = await self._compute_fallback(spec, precomputed_error)
            self._record(PATH_FALLBACK)

        if key is not None:
            await self._write_cache(key, rows, effective_ttl)

        return rows

    def _record(self, path: str):
        self.stats[path] += 1
        self.last_path = path

    async def _read_cache(self, key: str) -> Optional[List[Row]]:
        try:
            return await asyncio.wait_for(self._cache.get(key), self._config.cache_timeout)
        except (asyncio.TimeoutError, CacheUnavailable) as e:
            logger.warning(f"Cache read for {key} unavailable, treating as miss: {e}")
            return None

    async def _write_cache(self, key: str, rows: List[Row], ttl_class: TTLClass):
        try:
            written = await asyncio.wait_for(
                self._cache.set(key, rows, ttl_class.duration),
                self._config.cache_timeout,
            )
        except (asyncio.TimeoutError, CacheUnavailable) as e:
            logger.warning(f"Cache write for {key} skipped: {e}")
            return

        if written:
            self.stats["cache_writes"] += 1
        else:
            logger.debug(f"Cache write for {key} not stored")

    async def _read_precomputed(
        self,
        spec: QuerySpec,
    ) -> Tuple[Optional[List[Row]], Optional[PrecomputedReadFailed]]:
        """
        Returns (rows, None) when the precomputed slice can be used,
        (None, None) when fallback is needed, (None, error) when the
        store failed.
        """
        name = self.definition.name

        if spec.has_filters:
            logger.debug(f"{name}: filtered query, precomputed slice not applicable")
            return None, None

        try:
            if spec.period.is_current:
                if not await self._reader.current_period_available(spec):
                    logger.info(
                        f"{name}: no {spec.period.value} row in precomputed store for "
                        f"client {spec.client_id}, using fallback"
                    )
                    return None, None

            slice_rows = await self._reader.read_slice(spec)

        except PrecomputedReadFailed as e:
            # Recoverable: the fallback still has a chance
            logger.info(f"{name}: {e}, using fallback")
            return None, e

        if not slice_rows:
            logger.info(
                f"{name}: precomputed slice empty for client {spec.client_id} "
                f"{spec.platform.value}/{spec.period.value}, using fallback"
            )
            return None, None

        try:
            return self.definition.finalize(slice_rows, self._tz), None
        except (KeyError, TypeError, ValueError) as e:
            error = PrecomputedReadFailed(f"malformed precomputed rows: {e}")
            logger.info(f"{name}: {error}, using fallback")
            return None, error

    async def _compute_fallback(
        self,
        spec: QuerySpec,
        precomputed_error: Optional[Exception],
    ) -> List[Row]:
        try:
            return await self._fallback.compute(spec)
        except FallbackComputationFailed as e:
            self.stats["upstream_errors"] += 1
            causes: List[BaseException] = [e]
            if precomputed_error is not None:
                causes.insert(0, precomputed_error)
            logger.error(f"{self.definition.name}: all read paths failed for client {spec.client_id}: {e}")
            raise UpstreamError(
                f"Unable to load {self.definition.name} for client {spec.client_id}",
                causes=causes,
            ) from e

    def get_stats(self) -> Dict[str, Any]:
        served = self.stats[PATH_CACHE] + self.stats[PATH_PRECOMPUTED] + self.stats[PATH_FALLBACK]
        return {
            "aggregate": self.definition.name,
            **self.stats,
            "served": served,
            "cache_hit_rate_percent": round(self.stats[PATH_CACHE] / served * 100, 2) if served else 0.0,
        }
