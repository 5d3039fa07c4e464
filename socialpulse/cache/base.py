"""
Cache Store Interface

Every backend follows the same contract:
- get() returns None on a miss AND on any backend failure
- set() is best effort and reports success as a bool
- delete_pattern() returns how many keys were removed (0 is fine)
- is_ready() lets callers skip a dead backend without retrying it
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional


@dataclass
class CacheStats:
    """Cache operation statistics."""
    hits: int = 0
    misses: int = 0
    errors: int = 0
    writes: int = 0
    deletes: int = 0
    latency_samples: List[float] = field(default_factory=list)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def avg_latency_ms(self) -> float:
        recent = self.latency_samples[-100:]
        if not recent:
            return 0.0
        return sum(recent) / len(recent) * 1000

    def record_latency(self, seconds: float):
        """Record a latency sample."""
        self.latency_samples.append(seconds)
        # Keep only last 1000 samples
        if len(self.latency_samples) > 1000:
            self.latency_samples = self.latency_samples[-1000:]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "writes": self.writes,
            "deletes": self.deletes,
            "hit_rate_percent": round(self.hit_rate * 100, 2),
            "avg_latency_ms": round(self.avg_latency_ms, 2),
        }


class CacheStore:
    """Base class for cache backends."""

    backend = "base"

    def __init__(self):
        self._stats = CacheStats()

    def is_ready(self) -> bool:
        raise NotImplementedError

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl: Optional[timedelta] = None) -> bool:
        raise NotImplementedError

    async def delete_pattern(self, pattern: str) -> int:
        raise NotImplementedError

    async def invalidate(self, pattern: str) -> int:
        """Delete every key matching a glob-style pattern."""
        return await self.delete_pattern(pattern)

    def get_stats(self) -> Dict[str, Any]:
        stats = self._stats.as_dict()
        stats["backend"] = self.backend
        stats["ready"] = self.is_ready()
        return stats

    async def health_check(self) -> Dict[str, Any]:
        return {
            "healthy": self.is_ready(),
            "status": "connected" if self.is_ready() else "unavailable",
            "backend": self.backend,
            "stats": self.get_stats(),
        }
