"""
Aggregation Configuration

Timeouts and display settings for the read path.
"""

import os
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


DEFAULT_TIMEZONE = "America/New_York"


def coerce_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown APP_TIMEZONE {name!r}, day boundaries will use UTC")
        return ZoneInfo("UTC")


@dataclass
class AggregationConfig:
    """
    Read-path settings.

    - APP_TIMEZONE: Timezone that defines "today" and day boundaries
    - CACHE_TIMEOUT: Seconds before a cache probe counts as a miss
    - PRECOMPUTED_TIMEOUT: Seconds before a precomputed read routes to fallback
    - FALLBACK_TIMEOUT: Seconds before a fallback computation is an error
    - TOP_POSTS_LIMIT: Size of top-N rankings
    """

    app_timezone: str = field(default_factory=lambda: os.getenv(
        "APP_TIMEZONE",
        DEFAULT_TIMEZONE
    ))
    cache_timeout: float = field(default_factory=lambda: float(os.getenv(
        "CACHE_TIMEOUT",
        "1.5"
    )))
    precomputed_timeout: float = field(default_factory=lambda: float(os.getenv(
        "PRECOMPUTED_TIMEOUT",
        "5"
    )))
    fallback_timeout: float = field(default_factory=lambda: float(os.getenv(
        "FALLBACK_TIMEOUT",
        "15"
    )))
    top_posts_limit: int = field(default_factory=lambda: int(os.getenv(
        "TOP_POSTS_LIMIT",
        "10"
    )))

    @property
    def timezone(self) -> ZoneInfo:
        return coerce_timezone(self.app_timezone)


@lru_cache(maxsize=1)
def get_aggregation_config() -> AggregationConfig:
    """Get singleton aggregation configuration."""
    return AggregationConfig()
