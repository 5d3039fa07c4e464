"""
Redis Cache Implementation

Redis-backed cache store with:
- Automatic compression for large values
- Circuit breaker for resilience
- Readiness gating so a dead connection is not retried on every call
- Per-operation timeouts (a timeout is a miss)
- Statistics tracking
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from redis.asyncio import Redis, ConnectionPool
from redis.exceptions import RedisError

from socialpulse.cache.base import CacheStore
from socialpulse.cache.compression import (
    CacheCompressor,
    serialize_value,
    deserialize_value,
)
from socialpulse.cache.config import CacheConfig, get_cache_config
from socialpulse.cache.keys import with_namespace
from socialpulse.errors import CacheUnavailable


logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class CircuitBreakerState:
    """Circuit breaker state tracking."""
    failures: int = 0
    last_failure: float = 0.0
    is_open: bool = False
    opened_at: float = 0.0


class CircuitBreaker:
    """
    Circuit breaker pattern for the Redis connection.

    Fails fast after `threshold` consecutive failures, then lets one
    request through once `timeout` seconds have passed.
    """

    def __init__(self, threshold: int = 5, timeout: int = 60):
        self.threshold = threshold
        self.timeout = timeout
        self.state = CircuitBreakerState()

    def is_available(self) -> bool:
        """Check if circuit allows requests."""
        if not self.state.is_open:
            return True

        if time.time() - self.state.opened_at >= self.timeout:
            # Half-open: allow requests again
            self.state.is_open = False
            self.state.failures = 0
            logger.info("Circuit breaker closed, allowing requests")
            return True

        return False

    def record_success(self):
        self.state.failures = 0
        self.state.is_open = False

    def record_failure(self):
        self.state.failures += 1
        self.state.last_failure = time.time()

        if self.state.failures >= self.threshold and not self.state.is_open:
            self.state.is_open = True
            self.state.opened_at = time.time()
            logger.warning(
                f"Circuit breaker opened after {self.state.failures} failures. "
                f"Will retry in {self.timeout} seconds."
            )


class RedisCache(CacheStore):
    """
    Redis cache store.

    Never raises from get/set/delete_pattern: connectivity errors,
    timeouts and an open circuit all degrade to a miss / no-op.
    """

    backend = "redis"

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        redis: Optional[Redis] = None,
    ):
        super().__init__()
        self.config = config or get_cache_config()
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = redis
        self._compressor = CacheCompressor(
            enabled=self.config.compression_enabled,
            threshold=self.config.compression_threshold,
        )
        self._circuit_breaker = CircuitBreaker(
            threshold=self.config.circuit_breaker_threshold,
            timeout=self.config.circuit_breaker_timeout,
        ) if self.config.circuit_breaker_enabled else None
        self._initialized = redis is not None
        self._last_connect_attempt: Optional[float] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> bool:
        """
        Open the connection pool and verify it with PING.

        Returns False instead of raising so the application can start
        without Redis. A failed attempt is not retried until
        reconnect_interval has passed.
        """
        if self._initialized:
            return True

        async with self._lock:
            if self._initialized:
                return True

            self._last_connect_attempt = time.time()
            try:
                if self._redis is None:
                    self._pool = ConnectionPool.from_url(
                        self.config.redis_url,
                        max_connections=self.config.redis_max_connections,
                        socket_timeout=self.config.redis_socket_timeout,
                        socket_connect_timeout=self.config.redis_connect_timeout,
                        decode_responses=False,  # We handle bytes directly
                    )
                    self._redis = Redis(connection_pool=self._pool)

                await asyncio.wait_for(self._redis.ping(), self.config.operation_timeout)
                self._initialized = True
                logger.info(f"Redis cache initialized: {self.config.redis_url}")

            except (RedisError, OSError, asyncio.TimeoutError) as e:
                logger.error(f"Failed to initialize Redis: {e}")
                self._initialized = False
                await self._discard_connection()

        return self._initialized

    async def _discard_connection(self):
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except (RedisError, OSError) as e:
                logger.debug(f"Error closing Redis client: {e}")
        if self._pool is not None:
            await self._pool.disconnect()
        self._redis = None
        self._pool = None

    async def close(self):
        """Close Redis connection pool."""
        await self._discard_connection()
        self._initialized = False
        logger.info("Redis cache closed")

    def is_ready(self) -> bool:
        """True when connected and the circuit breaker is closed."""
        if not self.config.enabled or not self._initialized:
            return False
        if self._circuit_breaker and not self._circuit_breaker.is_available():
            return False
        return True

    async def _ensure_ready(self) -> bool:
        if not self.config.enabled:
            return False
        if self._initialized:
            return self.is_ready()

        # Do not hammer a dead server from the hot path
        if (
            self._last_connect_attempt is not None
            and time.time() - self._last_connect_attempt < self.config.reconnect_interval
        ):
            return False

        return await self.initialize()

    @asynccontextmanager
    async def _with_circuit_breaker(self):
        """Context manager for circuit breaker pattern."""
        if self._circuit_breaker and not self._circuit_breaker.is_available():
            raise CacheUnavailable("Circuit breaker is open")

        try:
            yield
            if self._circuit_breaker:
                self._circuit_breaker.record_success()
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            if self._circuit_breaker:
                self._circuit_breaker.record_failure()
            raise CacheUnavailable(str(e) or type(e).__name__) from e

    async def _call(self, command: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Run one Redis command under the breaker and the operation timeout."""
        async with self._with_circuit_breaker():
            return await asyncio.wait_for(command(*args), self.config.operation_timeout)

    def _full_key(self, key: str) -> str:
        return with_namespace(self.config.namespace, key)

    # =========================================================================
    # Core Operations
    # =========================================================================

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Returns None if:
        - Key doesn't exist
        - Cache is disabled or not ready
        - Redis is unavailable or too slow
        - Deserialization fails
        """
        if not await self._ensure_ready():
            self._stats.misses += 1
            return None

        start_time = time.time()

        try:
            data = await self._call(self._redis.get, self._full_key(key))
        except CacheUnavailable as e:
            self._stats.errors += 1
            self._stats.misses += 1
            logger.warning(f"Redis unavailable, treating {key} as a miss: {e}")
            return None

        self._stats.record_latency(time.time() - start_time)

        if data is None:
            self._stats.misses += 1
            return None

        try:
            value = deserialize_value(self._compressor.decompress(data))
        except (ValueError, RuntimeError) as e:
            self._stats.errors += 1
            self._stats.misses += 1
            logger.error(f"Cache decode error for {key}: {e}")
            return None

        self._stats.hits += 1
        return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[timedelta] = None,
    ) -> bool:
        """
        Set value in cache with optional TTL.

        Returns True on success, False on failure.
        """
        if not await self._ensure_ready():
            return False

        start_time = time.time()

        try:
            compressed, _ = self._compressor.compress(serialize_value(value))
            full_key = self._full_key(key)
            if ttl:
                await self._call(self._redis.setex, full_key, ttl, compressed)
            else:
                await self._call(self._redis.set, full_key, compressed)

        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Redis unavailable, cache set failed for {key}: {e}")
            return False
        except (TypeError, ValueError) as e:
            self._stats.errors += 1
            logger.error(f"Cache set error for {key}: {e}")
            return False

        self._stats.record_latency(time.time() - start_time)
        self._stats.writes += 1
        return True

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern. Returns count deleted."""
        if not await self._ensure_ready():
            return 0

        full_pattern = self._full_key(pattern)

        try:
            async with self._with_circuit_breaker():
                keys = []
                async for key in self._redis.scan_iter(match=full_pattern, count=100):
                    keys.append(key)

                if not keys:
                    return 0

                deleted = await asyncio.wait_for(
                    self._redis.delete(*keys), self.config.operation_timeout
                )

        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.error(f"Cache delete pattern error for {pattern}: {e}")
            return 0

        self._stats.deletes += deleted
        logger.info(f"Deleted {deleted} keys matching {pattern}")
        return deleted

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds. -1 if no TTL, -2 if missing or unavailable."""
        if not await self._ensure_ready():
            return -2

        try:
            return await self._call(self._redis.ttl, self._full_key(key))
        except CacheUnavailable:
            return -2

    # =========================================================================
    # Statistics and Health
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats["enabled"] = self.config.enabled
        stats["circuit_breaker_open"] = (
            self._circuit_breaker.state.is_open if self._circuit_breaker else False
        )
        return stats

    async def health_check(self) -> Dict[str, Any]:
        """Perform health check."""
        if not self.config.enabled:
            return {"healthy": True, "status": "disabled", "backend": self.backend}

        if not await self._ensure_ready():
            return {
                "healthy": False,
                "status": "unavailable",
                "backend": self.backend,
                "stats": self.get_stats(),
            }

        start = time.time()
        try:
            await self._call(self._redis.ping)
        except CacheUnavailable as e:
            return {
                "healthy": False,
                "status": "error",
                "error": str(e),
                "backend": self.backend,
                "stats": self.get_stats(),
            }

        return {
            "healthy": True,
            "status": "connected",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "backend": self.backend,
            "stats": self.get_stats(),
        }

