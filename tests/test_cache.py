"""
Tests for the caching layer.

These tests verify:
- Serialization and LZ4 compression
- Cache configuration from the environment
- In-process cache TTL expiry and pattern deletion
- Redis cache degradation (misses, circuit breaker, readiness gating)

Redis itself is mocked; no server is required.
"""

import pytest
import asyncio
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from redis.exceptions import ConnectionError as RedisConnectionError

from socialpulse.cache.compression import CacheCompressor, serialize_value, deserialize_value
from socialpulse.cache.config import (
    CacheConfig,
    CacheTTL,
    DEFAULT_REFRESH_TARGETS,
    RefreshConfig,
    TTLClass,
    get_cache_config,
    get_refresh_config,
)
from socialpulse.cache.memory_cache import MemoryCache
from socialpulse.cache.redis_cache import RedisCache


# =============================================================================
# COMPRESSION TESTS
# =============================================================================

class TestCompression:
    """Test compression utilities."""

    def test_serialize_deserialize_rows(self):
        rows = [{"day": "2025-01-01", "views": 10}, {"day": "2025-01-02", "views": 0}]
        assert deserialize_value(serialize_value(rows)) == rows

    def test_serialize_dates_and_enums(self):
        data = {"day": date(2025, 1, 1), "at": datetime(2025, 1, 1, 10, 30), "ttl": TTLClass.LONG}
        assert deserialize_value(serialize_value(data)) == {
            "day": "2025-01-01",
            "at": "2025-01-01T10:30:00",
            "ttl": "long",
        }

    def test_empty_list_survives(self):
        """An empty aggregate is a valid cached value, not a miss."""
        assert deserialize_value(serialize_value([])) == []

    def test_compressor_small_data_not_compressed(self):
        compressor = CacheCompressor(enabled=True, threshold=1024)
        compressed, stats = compressor.compress(b"hello world")

        assert compressed[0:1] == b'\x00'
        assert stats is None
        assert compressor.decompress(compressed) == b"hello world"

    def test_compressor_large_data_compressed(self):
        compressor = CacheCompressor(enabled=True, threshold=100)
        large_data = b"x" * 10000

        compressed, stats = compressor.compress(large_data)

        assert compressed[0:1] == b'\x01'
        assert stats is not None
        assert stats.compression_ratio > 1
        assert stats.savings_percent > 0
        assert compressor.decompress(compressed) == large_data

    def test_compressor_disabled(self):
        compressor = CacheCompressor(enabled=False, threshold=10)
        compressed, stats = compressor.compress(b"y" * 1000)
        assert compressed[0:1] == b'\x00'
        assert stats is None


# =============================================================================
# CONFIG TESTS
# =============================================================================

class TestCacheTTL:
    """Test TTL classes."""

    def test_durations(self):
        assert TTLClass.SHORT_LIVED.duration == timedelta(minutes=15)
        assert TTLClass.MEDIUM.duration == timedelta(minutes=30)
        assert TTLClass.LONG.duration == timedelta(hours=1)
        assert TTLClass.EXTENDED.duration == timedelta(hours=2)
        assert TTLClass.UNCACHED.duration is None
        assert not TTLClass.UNCACHED.cacheable

    def test_ttl_for_prefix(self):
        assert CacheTTL.for_prefix("daily_agg") == TTLClass.LONG
        assert CacheTTL.for_prefix("top_posts") == TTLClass.MEDIUM
        assert CacheTTL.for_prefix("accounts") == TTLClass.EXTENDED
        assert CacheTTL.for_prefix("today_posts") == TTLClass.SHORT_LIVED
        assert CacheTTL.for_prefix("unknown") == TTLClass.LONG


class TestCacheConfig:
    """Test cache configuration."""

    def test_config_defaults(self):
        config = CacheConfig()
        assert config.compression_threshold == 1024
        assert config.circuit_breaker_threshold == 5

    @patch.dict('os.environ', {'CACHE_ENABLED': 'false', 'CACHE_NAMESPACE': 'staging'})
    def test_config_from_env(self):
        get_cache_config.cache_clear()
        config = get_cache_config()
        assert config.enabled is False
        assert config.namespace == "staging"
        get_cache_config.cache_clear()  # Reset

    @patch.dict('os.environ', {'REFRESH_TARGETS': 'a, b,,c', 'REFRESH_CONCURRENT': 'true'})
    def test_refresh_config_from_env(self):
        get_refresh_config.cache_clear()
        config = get_refresh_config()
        assert config.targets == ["a", "b", "c"]
        assert config.concurrent is True
        get_refresh_config.cache_clear()  # Reset

    @patch.dict('os.environ', {}, clear=True)
    def test_refresh_config_default_targets(self):
        assert RefreshConfig().targets == DEFAULT_REFRESH_TARGETS


# =============================================================================
# MEMORY CACHE TESTS
# =============================================================================

@pytest.mark.asyncio
class TestMemoryCache:
    """Test the in-process cache store."""

    async def test_set_and_get(self, cache):
        assert await cache.set("daily_agg:1:x", [{"views": 1}], timedelta(minutes=5))
        assert await cache.get("daily_agg:1:x") == [{"views": 1}]

    async def test_get_returns_copy(self, cache):
        await cache.set("k", [{"views": 1}], timedelta(minutes=5))
        first = await cache.get("k")
        first[0]["views"] = 999
        assert await cache.get("k") == [{"views": 1}]

    async def test_ttl_expiry(self, cache, clock):
        await cache.set("k", "v", timedelta(seconds=60))
        assert await cache.ttl("k") == 60

        clock.advance(59)
        assert await cache.get("k") == "v"

        clock.advance(1)
        assert await cache.get("k") is None
        assert await cache.ttl("k") == -2

    async def test_no_ttl(self, cache, clock):
        await cache.set("k", "v")
        clock.advance(10 ** 6)
        assert await cache.get("k") == "v"
        assert await cache.ttl("k") == -1

    async def test_delete_pattern(self, cache):
        await cache.set("daily_agg:1:period=7days", [1], timedelta(minutes=5))
        await cache.set("daily_agg:1:period=today", [2], timedelta(minutes=5))
        await cache.set("daily_agg:10:period=today", [3], timedelta(minutes=5))
        await cache.set("daily_agg:2:period=today", [4], timedelta(minutes=5))

        assert await cache.invalidate("daily_agg:1:*") == 2
        assert sorted(cache.keys()) == ["daily_agg:10:period=today", "daily_agg:2:period=today"]

    async def test_delete_pattern_no_matches(self, cache):
        assert await cache.delete_pattern("nothing:*") == 0

    async def test_expired_entries_not_counted(self, cache, clock):
        await cache.set("daily_agg:1:a", 1, timedelta(seconds=10))
        clock.advance(11)
        assert await cache.delete_pattern("daily_agg:1:*") == 0

    async def test_disabled_cache_is_inert(self, clock):
        cache = MemoryCache(clock=clock, enabled=False)
        assert not cache.is_ready()
        assert await cache.set("k", "v", timedelta(minutes=1)) is False
        assert await cache.get("k") is None

    async def test_stats(self, cache):
        await cache.set("k", "v", timedelta(minutes=1))
        await cache.get("k")
        await cache.get("missing")

        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["writes"] == 1
        assert stats["backend"] == "memory"
        assert stats["hit_rate_percent"] == 50.0

        health = await cache.health_check()
        assert health["healthy"] is True


# =============================================================================
# REDIS CACHE TESTS (mocked client)
# =============================================================================

def _mock_redis() -> MagicMock:
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.setex = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=0)
    redis.ttl = AsyncMock(return_value=-2)
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()
    return redis


@pytest.mark.asyncio
class TestRedisCache:
    """Test Redis cache behavior against a mocked client."""

    async def test_get_decodes_compressed_payload(self):
        redis = _mock_redis()
        cache = RedisCache(CacheConfig(enabled=True, compression_threshold=100), redis=redis)

        rows = [{"day": f"2025-01-{d:02d}", "views": d * 100} for d in range(1, 29)]
        payload, stats = CacheCompressor(enabled=True, threshold=100).compress(serialize_value(rows))
        assert stats is not None
        redis.get.return_value = payload

        assert await cache.get("daily_agg:1:x") == rows
        assert cache.get_stats()["hits"] == 1

    async def test_set_uses_ttl(self):
        redis = _mock_redis()
        cache = RedisCache(CacheConfig(enabled=True), redis=redis)

        assert await cache.set("top_posts:1:x", [{"post_id": "a"}], timedelta(minutes=30))

        key, ttl, payload = redis.setex.await_args.args
        assert key == "top_posts:1:x"
        assert ttl == timedelta(minutes=30)
        assert deserialize_value(CacheCompressor().decompress(payload)) == [{"post_id": "a"}]

    async def test_namespace_applied(self):
        redis = _mock_redis()
        cache = RedisCache(CacheConfig(enabled=True, namespace="staging"), redis=redis)
        await cache.get("daily_agg:1:x")
        redis.get.assert_awaited_with("staging:daily_agg:1:x")

    async def test_connection_error_is_a_miss(self):
        redis = _mock_redis()
        redis.get.side_effect = RedisConnectionError("connection reset")
        cache = RedisCache(CacheConfig(enabled=True), redis=redis)

        assert await cache.get("k") is None
        assert cache.get_stats()["errors"] == 1

    async def test_timeout_is_a_miss(self):
        redis = _mock_redis()

        async def slow_get(key):
            await asyncio.sleep(1)

        redis.get.side_effect = slow_get
        cache = RedisCache(CacheConfig(enabled=True, operation_timeout=0.01), redis=redis)

        assert await cache.get("k") is None

    async def test_set_failure_reported_not_raised(self):
        redis = _mock_redis()
        redis.setex.side_effect = RedisConnectionError("down")
        cache = RedisCache(CacheConfig(enabled=True), redis=redis)

        assert await cache.set("k", "v", timedelta(minutes=1)) is False

    async def test_circuit_breaker_stops_calls(self):
        redis = _mock_redis()
        redis.get.side_effect = RedisConnectionError("down")
        cache = RedisCache(
            CacheConfig(enabled=True, circuit_breaker_enabled=True, circuit_breaker_threshold=2),
            redis=redis,
        )

        for _ in range(5):
            assert await cache.get("k") is None

        # Only the calls before the breaker opened reached Redis
        assert redis.get.await_count == 2
        assert not cache.is_ready()
        assert cache.get_stats()["circuit_breaker_open"] is True

    async def test_delete_pattern(self):
        redis = _mock_redis()

        async def scan_iter(match=None, count=None):
            assert match == "daily_agg:1:*"
            for key in (b"daily_agg:1:a", b"daily_agg:1:b"):
                yield key

        redis.scan_iter = scan_iter
        redis.delete.return_value = 2
        cache = RedisCache(CacheConfig(enabled=True), redis=redis)

        assert await cache.delete_pattern("daily_agg:1:*") == 2
        redis.delete.assert_awaited_once_with(b"daily_agg:1:a", b"daily_agg:1:b")

    async def test_delete_pattern_no_matches(self):
        redis = _mock_redis()

        async def scan_iter(match=None, count=None):
            for key in ():
                yield key

        redis.scan_iter = scan_iter
        cache = RedisCache(CacheConfig(enabled=True), redis=redis)

        assert await cache.delete_pattern("daily_agg:9:*") == 0
        redis.delete.assert_not_awaited()

    async def test_unreachable_server_not_retried_every_call(self):
        client = _mock_redis()
        client.ping.side_effect = RedisConnectionError("refused")

        with patch("socialpulse.cache.redis_cache.ConnectionPool") as pool_cls, \
                patch("socialpulse.cache.redis_cache.Redis", return_value=client):
            pool_cls.from_url.return_value.disconnect = AsyncMock()
            cache = RedisCache(CacheConfig(enabled=True, reconnect_interval=30))

            assert await cache.get("k") is None
            assert await cache.get("k") is None
            assert await cache.set("k", "v", timedelta(minutes=1)) is False

        assert client.ping.await_count == 1
        assert not cache.is_ready()

    async def test_disabled(self):
        redis = _mock_redis()
        cache = RedisCache(CacheConfig(enabled=False), redis=redis)

        assert await cache.get("k") is None
        redis.get.assert_not_awaited()
        assert (await cache.health_check())["status"] == "disabled"

    async def test_health_check(self):
        redis = _mock_redis()
        cache = RedisCache(CacheConfig(enabled=True), redis=redis)

        health = await cache.health_check()
        assert health["healthy"] is True
        assert health["status"] == "connected"


# =============================================================================
# RUN TESTS
# =============================================================================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
