"""
Query Specification

A QuerySpec fully identifies one aggregate request. It is immutable
and normalized at construction, so two specs with the same fields
always produce the same cache key and the same slice lookup.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Iterable, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from socialpulse.cache.keys import build_key
from socialpulse.errors import InvalidQuery


class Platform(Enum):
    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    YOUTUBE = "youtube"
    ALL = "all"


class Period(Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    THREE_DAYS = "3days"
    SEVEN_DAYS = "7days"
    MONTH = "month"
    ALL = "all"
    CUSTOM_RANGE = "custom_range"

    @property
    def is_current(self) -> bool:
        """True for the still-accumulating period the refresh may lag behind."""
        return self is Period.TODAY


@dataclass(frozen=True)
class DateRange:
    """Half-open [start, end) window. None bounds mean unbounded."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @property
    def unbounded(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True


def _parse_date(value: Union[str, date, None], name: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidQuery(f"{name} must be an ISO date (YYYY-MM-DD), got {value!r}")


def _normalize_filters(filters: Optional[Iterable[str]]) -> Tuple[str, ...]:
    if not filters:
        return ()
    if isinstance(filters, str):
        filters = filters.split(",")
    return tuple(sorted({f.strip() for f in filters if f and f.strip()}))


@dataclass(frozen=True)
class QuerySpec:
    client_id: str
    platform: Platform
    period: Period = Period.ALL
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    filters: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        client_id = str(self.client_id).strip() if self.client_id is not None else ""
        if not client_id:
            raise InvalidQuery("client_id is required")

        try:
            platform = Platform(self.platform) if not isinstance(self.platform, Platform) else self.platform
            period = Period(self.period) if not isinstance(self.period, Period) else self.period
        except ValueError as e:
            raise InvalidQuery(str(e))

        start = _parse_date(self.start_date, "start_date")
        end = _parse_date(self.end_date, "end_date")

        if period is Period.CUSTOM_RANGE:
            if start is None or end is None:
                raise InvalidQuery("custom_range requires start_date and end_date")
            if start > end:
                raise InvalidQuery(f"start_date {start} is after end_date {end}")
        elif start is not None or end is not None:
            raise InvalidQuery(f"explicit dates are only allowed with custom_range, not {period.value}")

        object.__setattr__(self, "client_id", client_id)
        object.__setattr__(self, "platform", platform)
        object.__setattr__(self, "period", period)
        object.__setattr__(self, "start_date", start)
        object.__setattr__(self, "end_date", end)
        object.__setattr__(self, "filters", _normalize_filters(self.filters))

    @property
    def has_filters(self) -> bool:
        return bool(self.filters)

    @property
    def slice_period(self) -> Union[Period, DateRange]:
        """What the precomputed store is asked for: a named period or explicit dates."""
        if self.period is Period.CUSTOM_RANGE:
            return DateRange(
                start=datetime.combine(self.start_date, time.min),
                end=datetime.combine(self.end_date + timedelta(days=1), time.min),
            )
        return self.period

    def cache_key(self, prefix: str) -> str:
        return build_key(
            prefix,
            {
                "platform": self.platform,
                "period": self.period,
                "start_date": self.start_date,
                "end_date": self.end_date,
                "filters": self.filters,
            },
            scope=self.client_id,
        )


def _local_midnight(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def resolve_date_range(
    period: Period,
    now: datetime,
    tz: ZoneInfo,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> DateRange:
    """
    Turn a period into concrete local-time bounds.

    Multi-day periods include today: "7days" is today and the six
    days before it.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz)
    today = now.astimezone(tz).date()
    tomorrow = _local_midnight(today + timedelta(days=1), tz)

    if period is Period.TODAY:
        return DateRange(_local_midnight(today, tz), tomorrow)
    if period is Period.YESTERDAY:
        return DateRange(_local_midnight(today - timedelta(days=1), tz), _local_midnight(today, tz))
    if period is Period.THREE_DAYS:
        return DateRange(_local_midnight(today - timedelta(days=2), tz), tomorrow)
    if period is Period.SEVEN_DAYS:
        return DateRange(_local_midnight(today - timedelta(days=6), tz), tomorrow)
    if period is Period.MONTH:
        first = today.replace(day=1)
        next_first = (first + timedelta(days=32)).replace(day=1)
        return DateRange(_local_midnight(first, tz), _local_midnight(next_first, tz))
    if period is Period.CUSTOM_RANGE:
        if start_date is None or end_date is None:
            raise InvalidQuery("custom_range requires start_date and end_date")
        return DateRange(
            _local_midnight(start_date, tz),
            _local_midnight(end_date + timedelta(days=1), tz),
        )
    return DateRange()


def spec_date_range(spec: QuerySpec, now: datetime, tz: ZoneInfo) -> DateRange:
    return resolve_date_range(spec.period, now, tz, spec.start_date, spec.end_date)
