"""
SQL Aggregate Store

SQLAlchemy adapter that plays both external roles of the read path:
the precomputed store (read_slice, row_exists_for_current_period,
rebuild) and the raw data source (query_raw).

Methods are synchronous; the read path runs them in worker threads.
One store instance serves one aggregate ("daily_agg" or "top_posts").
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union
from zoneinfo import ZoneInfo

from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError

from socialpulse.aggregation.definitions import (
    SortKey,
    TOP_POST_FIELDS,
    engagement_rate,
)
from socialpulse.aggregation.query import DateRange, Period, Platform, resolve_date_range
from socialpulse.database.models import PostSnapshot, PrecomputedDailyTotal, PrecomputedTopPost
from socialpulse.errors import RebuildUnsupported

logger = logging.getLogger(__name__)


DAILY_AGGREGATE = "daily_agg"
TOP_POSTS_AGGREGATE = "top_posts"

_FUNCTION_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

SNAPSHOT_FIELDS = (
    "post_id", "platform", "username", "url", "caption", "views", "likes", "comments", "shares", "created_at",
)


class SqlAggregateStore:
    """Precomputed tables and raw post snapshots behind one narrow interface."""

    def __init__(
        self,
        session_factory: Callable[[], Any],
        aggregate: str,
        tz: ZoneInfo,
        clock: Optional[Callable[[], datetime]] = None,
        rebuild_function: str = "refresh_materialized_view",
        top_posts_limit: int = 10,
    ):
        if aggregate not in (DAILY_AGGREGATE, TOP_POSTS_AGGREGATE):
            raise ValueError(f"Unknown aggregate: {aggregate}")
        if not _FUNCTION_NAME.match(rebuild_function):
            raise ValueError(f"Invalid rebuild function name: {rebuild_function!r}")

        self._session_factory = session_factory
        self.aggregate = aggregate
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(tz))
        self._rebuild_function = rebuild_function
        self._top_posts_limit = top_posts_limit

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _window(self, period: Union[Period, DateRange]) -> DateRange:
        if isinstance(period, DateRange):
            return period
        return resolve_date_range(period, self._clock(), self._tz)

    def _to_utc_naive(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            # Explicit date ranges arrive as naive local midnights
            moment = moment.replace(tzinfo=self._tz)
        return moment.astimezone(timezone.utc).replace(tzinfo=None)

    @staticmethod
    def _platform_value(platform: Union[Platform, str, None]) -> Optional[str]:
        if platform is None:
            return None
        value = platform.value if isinstance(platform, Platform) else str(platform)
        return None if value == Platform.ALL.value else value

    # =========================================================================
    # PRECOMPUTED STORE
    # =========================================================================

    def read_slice(
        self,
        client_id: str,
        platform: Union[Platform, str],
        period: Union[Period, DateRange],
    ) -> List[Dict[str, Any]]:
        """Rows of the precomputed slice. Zero rows is a valid answer."""
        with self._session_factory() as session:
            if self.aggregate == DAILY_AGGREGATE:
                return self._read_daily_totals(session, client_id, platform, period)
            return self._read_top_posts(session, client_id, platform, period)

    def _read_daily_totals(self, session, client_id, platform, period) -> List[Dict[str, Any]]:
        window = self._window(period)

        query = session.query(PrecomputedDailyTotal).filter(
            PrecomputedDailyTotal.client_id == client_id
        )
        platform_value = self._platform_value(platform)
        if platform_value:
            query = query.filter(PrecomputedDailyTotal.platform == platform_value)
        if window.start is not None:
            query = query.filter(PrecomputedDailyTotal.day >= window.start.date())
        if window.end is not None:
            query = query.filter(PrecomputedDailyTotal.day < window.end.date())

        # One row per day, summed across platforms when platform is "all"
        by_day: Dict[Any, Dict[str, Any]] = {}
        for record in query.order_by(PrecomputedDailyTotal.day).all():
            row = by_day.setdefault(record.day, {
                "day": record.day,
                "posts": 0,
                "accounts": 0,
                "views": 0,
                "likes": 0,
                "comments": 0,
                "shares": 0,
            })
            for metric in ("posts", "accounts", "views", "likes", "comments", "shares"):
                row[metric] += getattr(record, metric) or 0

        rows = []
        for row in by_day.values():
            row["engagement_rate"] = engagement_rate(
                row["views"], row["likes"], row["comments"], row["shares"]
            )
            rows.append(row)
        return rows

    def _read_top_posts(self, session, client_id, platform, period) -> List[Dict[str, Any]]:
        if isinstance(period, DateRange):
            # Rankings are only precomputed for named periods
            return []

        query = session.query(PrecomputedTopPost).filter(
            PrecomputedTopPost.client_id == client_id,
            PrecomputedTopPost.period == period.value,
        )
        platform_value = self._platform_value(platform)
        if platform_value:
            query = query.filter(PrecomputedTopPost.platform == platform_value)

        records = (
            query.order_by(PrecomputedTopPost.views.desc(), PrecomputedTopPost.post_id.asc())
            .limit(self._top_posts_limit)
            .all()
        )
        return [{name: getattr(r, name) for name in TOP_POST_FIELDS} for r in records]

    def row_exists_for_current_period(
        self,
        client_id: str,
        period: Period,
        platform: Union[Platform, str, None] = None,
    ) -> bool:
        """Whether the last refresh already covered the current (still open) period."""
        window = self._window(period)
        platform_value = self._platform_value(platform)

        with self._session_factory() as session:
            if self.aggregate == DAILY_AGGREGATE:
                query = session.query(PrecomputedDailyTotal).filter(
                    PrecomputedDailyTotal.client_id == client_id,
                    PrecomputedDailyTotal.day == window.start.date(),
                )
                if platform_value:
                    query = query.filter(PrecomputedDailyTotal.platform == platform_value)
            else:
                query = session.query(PrecomputedTopPost).filter(
                    PrecomputedTopPost.client_id == client_id,
                    PrecomputedTopPost.period == period.value,
                    PrecomputedTopPost.created_at >= self._to_utc_naive(window.start),
                    PrecomputedTopPost.created_at < self._to_utc_naive(window.end),
                )
                if platform_value:
                    query = query.filter(PrecomputedTopPost.platform == platform_value)

            return bool(session.query(query.exists()).scalar())

    def rebuild(self, target_name: str) -> bool:
        """
        Ask PostgreSQL to refresh one precomputed view.

        Raises:
            RebuildUnsupported: not PostgreSQL, or the refresh function
                is not installed
        """
        with self._session_factory() as session:
            dialect = session.get_bind().dialect.name
            if dialect != "postgresql":
                raise RebuildUnsupported(f"{dialect} has no server-side refresh function")

            try:
                session.execute(
                    text(f"SELECT {self._rebuild_function}(:target)"),
                    {"target": target_name},
                )
                session.commit()
            except ProgrammingError as e:
                session.rollback()
                if "does not exist" in str(e.orig):
                    raise RebuildUnsupported(
                        f"function {self._rebuild_function} does not exist"
                    ) from e
                raise

        logger.info(f"Rebuilt {target_name} via {self._rebuild_function}")
        return True

    # =========================================================================
    # RAW DATA SOURCE
    # =========================================================================

    def query_raw(
        self,
        client_id: str,
        platform: Union[Platform, str],
        date_range: DateRange,
        filters: Iterable[str] = (),
        order_by: Sequence[SortKey] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            query = session.query(PostSnapshot).filter(PostSnapshot.client_id == client_id)

            platform_value = self._platform_value(platform)
            if platform_value:
                query = query.filter(PostSnapshot.platform == platform_value)
            if date_range.start is not None:
                query = query.filter(PostSnapshot.created_at >= self._to_utc_naive(date_range.start))
            if date_range.end is not None:
                query = query.filter(PostSnapshot.created_at < self._to_utc_naive(date_range.end))

            filters = list(filters or ())
            if filters:
                # Filters select sub-accounts
                query = query.filter(PostSnapshot.username.in_(filters))

            for key in order_by:
                column = getattr(PostSnapshot, key.field)
                query = query.order_by(column.desc() if key.descending else column.asc())
            if limit is not None:
                query = query.limit(limit)

            return [{name: getattr(s, name) for name in SNAPSHOT_FIELDS} for s in query.all()]
