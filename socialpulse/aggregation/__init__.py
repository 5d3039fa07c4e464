"""
Aggregate Read Path

Cached aggregates with staleness-aware fallback:
- QuerySpec: immutable, normalized description of one request
- AggregateDefinition: ordering, bounds and row shape per aggregate
- AggregateReader: precomputed slice access
- FallbackAggregator: on-demand aggregation over raw snapshots
- ReadOrchestrator: cache -> precomputed -> fallback -> cache write

Usage:
    orchestrator = ReadOrchestrator(TOP_POSTS, cache, reader, fallback)
    rows = await orchestrator.get_aggregate(
        QuerySpec(client_id="1", platform="tiktok", period="7days"),
        TTLClass.MEDIUM,
    )
"""

from socialpulse.aggregation.config import AggregationConfig, get_aggregation_config
from socialpulse.aggregation.definitions import (
    AggregateDefinition,
    SortKey,
    DAILY_TOTALS,
    TOP_POSTS,
    top_posts_definition,
)
from socialpulse.aggregation.fallback import FallbackAggregator
from socialpulse.aggregation.orchestrator import ReadOrchestrator
from socialpulse.aggregation.query import (
    DateRange,
    Period,
    Platform,
    QuerySpec,
    resolve_date_range,
)
from socialpulse.aggregation.reader import AggregateReader

__all__ = [
    "AggregationConfig",
    "get_aggregation_config",
    "AggregateDefinition",
    "SortKey",
    "DAILY_TOTALS",
    "TOP_POSTS",
    "top_posts_definition",
    "FallbackAggregator",
    "ReadOrchestrator",
    "DateRange",
    "Period",
    "Platform",
    "QuerySpec",
    "resolve_date_range",
    "AggregateReader",
]
