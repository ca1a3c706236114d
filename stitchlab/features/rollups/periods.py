"""Period range generation for rollup buckets.

Turns a ``[start, end]`` date span into ordered, contiguous, non-overlapping
buckets aligned to calendar days, ISO weeks (Monday start) or calendar months.

Bucket bounds are UTC datetimes; ``end`` is the last microsecond of the
bucket so that inclusive ``start <= ts <= end`` filters never overlap.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from enum import Enum


class Granularity(str, Enum):
    """Rollup bucket granularity. One rollup store exists per value."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class Bucket:
    """A fixed time window that aggregates are keyed to.

    Attributes:
        start: First instant of the bucket (inclusive).
        end: Last instant of the bucket (inclusive).
        label: Canonical bucket label (YYYY-MM-DD, YYYY-Www or YYYY-MM).
    """

    start: datetime
    end: datetime
    label: str

    @property
    def first_day(self) -> date:
        """Calendar day the bucket starts on."""
        return self.start.date()

    @property
    def last_day(self) -> date:
        """Calendar day the bucket ends on."""
        return self.end.date()


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _first_day_of_bucket(day: date, granularity: Granularity) -> date:
    if granularity == Granularity.DAILY:
        return day
    if granularity == Granularity.WEEKLY:
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


def _next_bucket_start(first_day: date, granularity: Granularity) -> date:
    if granularity == Granularity.DAILY:
        return first_day + timedelta(days=1)
    if granularity == Granularity.WEEKLY:
        return first_day + timedelta(days=7)
    if first_day.month == 12:
        return date(first_day.year + 1, 1, 1)
    return date(first_day.year, first_day.month + 1, 1)


def bucket_label(day: date | datetime, granularity: Granularity) -> str:
    """Return the canonical label of the bucket containing ``day``.

    Weekly labels use the ISO year together with the ISO week number, so the
    week starting Monday 2024-12-30 is ``2025-W01``.
    """
    day = _as_date(day)
    if granularity == Granularity.DAILY:
        return day.isoformat()
    if granularity == Granularity.WEEKLY:
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    return f"{day.year:04d}-{day.month:02d}"


def bucket_for(day: date | datetime, granularity: Granularity) -> Bucket:
    """Return the bucket of ``granularity`` that contains ``day``."""
    first = _first_day_of_bucket(_as_date(day), granularity)
    following = _next_bucket_start(first, granularity)
    start = datetime.combine(first, time.min, tzinfo=UTC)
    end = datetime.combine(following, time.min, tzinfo=UTC) - timedelta(microseconds=1)
    return Bucket(start=start, end=end, label=bucket_label(first, granularity))


def generate_ranges(
    start: date | datetime,
    end: date | datetime,
    granularity: Granularity,
) -> list[Bucket]:
    """Generate the ordered buckets covering ``[start, end]``.

    Args:
        start: First day of the span (inclusive).
        end: Last day of the span (inclusive).
        granularity: daily, weekly or monthly.

    Returns:
        Buckets in ascending order; empty when ``start > end``.
    """
    first_day = _as_date(start)
    last_day = _as_date(end)
    if first_day > last_day:
        return []

    buckets: list[Bucket] = []
    cursor = _first_day_of_bucket(first_day, granularity)
    while cursor <= last_day:
        buckets.append(bucket_for(cursor, granularity))
        cursor = _next_bucket_start(cursor, granularity)
    return buckets


def count_buckets(start: date | datetime, end: date | datetime, granularity: Granularity) -> int:
    """Count the buckets ``generate_ranges`` would return, without building them."""
    first_day = _as_date(start)
    last_day = _as_date(end)
    if first_day > last_day:
        return 0
    if granularity == Granularity.DAILY:
        return (last_day - first_day).days + 1
    if granularity == Granularity.WEEKLY:
        first_monday = _first_day_of_bucket(first_day, granularity)
        return (last_day - first_monday).days // 7 + 1
    return (last_day.year - first_day.year) * 12 + (last_day.month - first_day.month) + 1
