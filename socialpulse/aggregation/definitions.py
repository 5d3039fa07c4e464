"""
Aggregate Definitions

Each aggregate the dashboard serves is described once here: its cache
prefix, how rows are ordered, how many are kept, and how raw post
snapshots are reduced into the same rows the precomputed views hold.
The read orchestrator applies the same ordering and bound to every
path, so cache, precomputed and fallback results are indistinguishable.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from socialpulse.cache.config import CacheTTL, TTLClass


Row = Dict[str, Any]
Reducer = Callable[[Sequence[Row], ZoneInfo], List[Row]]


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


def _sortable(value: Any, descending: bool = False) -> Tuple[bool, Any]:
    # Missing values sort last in either direction
    if descending:
        return (value is not None, value)
    return (value is None, value)


def _json_native(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, Enum):
        return value.value
    return value


def normalize_row(row: Any) -> Row:
    """Convert a row mapping into the JSON-native shape every path returns."""
    mapping = row if isinstance(row, dict) else dict(row)
    return {key: _json_native(value) for key, value in mapping.items()}


@dataclass(frozen=True)
class AggregateDefinition:
    name: str
    sort_keys: Tuple[SortKey, ...]
    limit: Optional[int] = None
    default_ttl: TTLClass = TTLClass.LONG
    # Ordering and bound pushed down to the raw query
    raw_order_by: Tuple[SortKey, ...] = ()
    raw_limit: Optional[int] = None
    reducer: Optional[Reducer] = field(default=None, compare=False)
    # Shapes rows into the published columns, applied on every path
    projector: Optional[Reducer] = field(default=None, compare=False)
    # Filtered queries have too many combinations to cache by default
    cache_filtered: bool = False

    def order_rows(self, rows: Sequence[Row]) -> List[Row]:
        ordered = list(rows)
        # Stable sorts applied from the least significant key up
        for key in reversed(self.sort_keys):
            ordered.sort(
                key=lambda r, f=key.field, d=key.descending: _sortable(r.get(f), d),
                reverse=key.descending,
            )
        return ordered

    def finalize(self, rows: Sequence[Any], tz: ZoneInfo) -> List[Row]:
        """Project, normalize, order and bound rows. Used on every read path."""
        shaped = [normalize_row(r) for r in rows]
        if self.projector is not None:
            shaped = [normalize_row(r) for r in self.projector(shaped, tz)]
        ordered = self.order_rows(shaped)
        if self.limit is not None:
            ordered = ordered[:self.limit]
        return ordered


def _as_datetime(value: Any, tz: ZoneInfo) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        # Naive snapshot timestamps are stored in UTC
        value = value.replace(tzinfo=ZoneInfo("UTC"))
    return value.astimezone(tz)


def engagement_rate(views: int, likes: int, comments: int, shares: int) -> float:
    if not views:
        return 0.0
    return round((likes + comments + shares) / views * 100, 2)


def reduce_daily_totals(rows: Sequence[Row], tz: ZoneInfo) -> List[Row]:
    """Group raw post snapshots into one totals row per local day."""
    buckets: Dict[str, Dict[str, Any]] = defaultdict(lambda: {
        "posts": 0,
        "accounts": set(),
        "views": 0,
        "likes": 0,
        "comments": 0,
        "shares": 0,
    })

    for row in rows:
        day = _as_datetime(row["created_at"], tz).date().isoformat()
        bucket = buckets[day]
        bucket["posts"] += 1
        if row.get("username"):
            # Accounts are per platform, matching the per-platform precomputed rows
            bucket["accounts"].add((row.get("platform"), row["username"]))
        for metric in ("views", "likes", "comments", "shares"):
            bucket[metric] += int(row.get(metric) or 0)

    result = []
    for day, bucket in buckets.items():
        result.append({
            "day": day,
            "posts": bucket["posts"],
            "accounts": len(bucket["accounts"]),
            "views": bucket["views"],
            "likes": bucket["likes"],
            "comments": bucket["comments"],
            "shares": bucket["shares"],
            "engagement_rate": engagement_rate(
                bucket["views"], bucket["likes"], bucket["comments"], bucket["shares"]
            ),
        })
    return result


TOP_POST_FIELDS = (
    "post_id", "username", "url", "views", "likes", "comments", "caption", "created_at",
)


DAILY_FIELDS = (
    "day", "posts", "accounts", "views", "likes", "comments", "shares", "engagement_rate",
)


def project_daily_totals(rows: Sequence[Row], tz: ZoneInfo) -> List[Row]:
    """Keep only the published daily columns, days as ISO dates."""
    projected = []
    for row in rows:
        item = {name: row.get(name) for name in DAILY_FIELDS}
        day = item["day"]
        if isinstance(day, str) and "T" in day:
            item["day"] = day.split("T", 1)[0]
        if item["engagement_rate"] is not None:
            item["engagement_rate"] = round(float(item["engagement_rate"]), 2)
        projected.append(item)
    return projected


def project_top_posts(rows: Sequence[Row], tz: ZoneInfo) -> List[Row]:
    """Keep only the published top-post columns, timestamps in UTC."""
    projected = []
    for row in rows:
        item = {name: row.get(name) for name in TOP_POST_FIELDS}
        if item["created_at"] is not None:
            item["created_at"] = _as_datetime(item["created_at"], ZoneInfo("UTC"))
        projected.append(item)
    return projected


DAILY_TOTALS = AggregateDefinition(
    name="daily_agg",
    sort_keys=(SortKey("day"),),
    default_ttl=CacheTTL.DAILY_AGG,
    reducer=reduce_daily_totals,
    projector=project_daily_totals,
)


def top_posts_definition(limit: int = 10) -> AggregateDefinition:
    ranking = (SortKey("views", descending=True), SortKey("post_id"))
    return AggregateDefinition(
        name="top_posts",
        sort_keys=ranking,
        limit=limit,
        default_ttl=CacheTTL.TOP_POSTS,
        raw_order_by=ranking,
        raw_limit=limit,
        projector=project_top_posts,
    )


TOP_POSTS = top_posts_definition()
