"""
In-Process Cache Store

Same contract as RedisCache, held in a dict. Used when no Redis is
configured (local development, single-process deployments) and in
tests, where the injectable clock makes TTL expiry deterministic.

Values are stored serialized so a hit returns a fresh copy, exactly
like a round trip through Redis would.
"""

import fnmatch
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from socialpulse.cache.base import CacheStore
from socialpulse.cache.compression import serialize_value, deserialize_value


logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    value: bytes
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class MemoryCache(CacheStore):
    """Dict-backed cache store with per-entry TTL and glob deletion."""

    backend = "memory"

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        enabled: bool = True,
    ):
        super().__init__()
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.enabled = enabled

    def is_ready(self) -> bool:
        return self.enabled

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        if not self.is_ready():
            self._stats.misses += 1
            return None

        entry = self._live_entry(key)
        if entry is None:
            self._stats.misses += 1
            return None

        self._stats.hits += 1
        return deserialize_value(entry.value)

    async def set(self, key: str, value: Any, ttl: Optional[timedelta] = None) -> bool:
        if not self.is_ready():
            return False

        try:
            payload = serialize_value(value)
        except (TypeError, ValueError) as e:
            self._stats.errors += 1
            logger.error(f"Cache set error for {key}: {e}")
            return False

        expires_at = self._clock() + ttl.total_seconds() if ttl else None
        self._entries[key] = CacheEntry(key=key, value=payload, expires_at=expires_at)
        self._stats.writes += 1
        return True

    async def delete_pattern(self, pattern: str) -> int:
        if not self.is_ready():
            return 0

        matching = [
            key for key in list(self._entries)
            if fnmatch.fnmatchcase(key, pattern) and self._live_entry(key) is not None
        ]
        for key in matching:
            del self._entries[key]

        self._stats.deletes += len(matching)
        if matching:
            logger.info(f"Deleted {len(matching)} keys matching {pattern}")
        return len(matching)

    async def ttl(self, key: str) -> int:
        entry = self._live_entry(key)
        if entry is None:
            return -2
        if entry.expires_at is None:
            return -1
        return int(entry.expires_at - self._clock())

    def keys(self):
        """Live keys, mostly useful for debugging."""
        return [key for key in list(self._entries) if self._live_entry(key) is not None]
