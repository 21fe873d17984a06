"""
Month bucketing for timestamped records.

All month keys are UTC calendar months formatted "YYYY-MM"; keys of that form
sort lexicographically in calendar order, which the helpers below rely on.

Output of bucket_by_month / MonthlyCounter.buckets is always:
- contiguous (zero-filled, no skipped months)
- ascending by month key
- first bucket percent_change = 0
"""

from collections import Counter
from datetime import date, datetime
from typing import Callable, Iterable, Iterator, List, Optional, TypeVar

from dateutil.relativedelta import relativedelta

from content_dashboard.core.clock import ensure_utc
from content_dashboard.core.config import TimeRange
from content_dashboard.schemas import MonthBucket

T = TypeVar("T")

# Months shown (current month included) per chart range
_RANGE_MONTHS = {
    TimeRange.PAST_YEAR: 12,
    TimeRange.PAST_6_MONTHS: 6,
}


def month_key(value: datetime) -> str:
    value = ensure_utc(value)
    return f"{value.year:04d}-{value.month:02d}"


def _key_to_date(key: str) -> date:
    year, month = key.split("-")
    return date(int(year), int(month), 1)


def shift_month(key: str, months: int) -> str:
    shifted = _key_to_date(key) + relativedelta(months=months)
    return f"{shifted.year:04d}-{shifted.month:02d}"


def iter_month_keys(start: str, end: str) -> Iterator[str]:
    """Every month key from start to end inclusive."""
    key = start
    while key <= end:
        yield key
        key = shift_month(key, 1)


def percent_change(previous: int, current: int) -> float:
    """
    Period-over-period change in percent.

    0 -> 0 is 0, 0 -> N is 100, otherwise (current - previous) / previous * 100.
    """
    if previous > 0:
        return (current - previous) / previous * 100
    return 100.0 if current > 0 else 0.0


def format_percentage_change(value: float) -> str:
    """12.5 -> "+12.5%", -3 -> "-3.0%"."""
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.1f}%"


class MonthlyCounter:
    """
    Streaming month counter.

    Records are added one at a time as pages arrive, so a series never needs
    the whole corpus in memory.
    """

    def __init__(self):
        self._counts: Counter = Counter()

    def add(self, when: Optional[datetime], amount: int = 1) -> None:
        if when is None:
            return
        self._counts[month_key(when)] += amount

    def merge(self, other: "MonthlyCounter") -> None:
        self._counts.update(other._counts)

    def count(self, key: str) -> int:
        return self._counts.get(key, 0)

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    @property
    def earliest(self) -> Optional[str]:
        return min(self._counts) if self._counts else None

    @property
    def latest(self) -> Optional[str]:
        return max(self._counts) if self._counts else None

    def buckets(
        self,
        now: datetime,
        start: Optional[str] = None,
        end: Optional[str] = None,
        default_start: Optional[str] = None,
    ) -> List[MonthBucket]:
        """
        Zero-filled buckets from the first month to the current month.

        The range starts at ``start`` when given, else the earliest observed
        month, else ``default_start``, else the current month. It ends at the
        current month, or later if ``end`` or observed data lie beyond it.
        """
        last = month_key(now)
        for candidate in (end, self.latest):
            if candidate and candidate > last:
                last = candidate
        first = start or self.earliest or default_start or month_key(now)
        if first > last:
            first = last

        result: List[MonthBucket] = []
        previous: Optional[int] = None
        for key in iter_month_keys(first, last):
            count = self._counts.get(key, 0)
            change = 0.0 if previous is None else percent_change(previous, count)
            result.append(MonthBucket(month_key=key, count=count, percent_change=change))
            previous = count
        return result


def bucket_by_month(
    records: Iterable[T],
    date_selector: Callable[[T], Optional[datetime]],
    now: datetime,
    default_start: Optional[str] = None,
) -> List[MonthBucket]:
    """Group records by the UTC month of ``date_selector(record)``. Records mapping to None are skipped."""
    counter = MonthlyCounter()
    for record in records:
        counter.add(date_selector(record))
    return counter.buckets(now, default_start=default_start)


def visible_start(time_range: TimeRange, now: datetime) -> Optional[str]:
    """First visible month key for a chart range (None for all time)."""
    months = _RANGE_MONTHS.get(time_range)
    if months is None:
        return None
    return shift_month(month_key(now), -(months - 1))


def filter_time_range(buckets: List[MonthBucket], time_range: TimeRange, now: datetime) -> List[MonthBucket]:
    """
    Trim buckets to the chart range.

    Percent changes were computed on the full series, so the first visible
    bucket keeps its change relative to the (hidden) month before it.
    """
    first = visible_start(time_range, now)
    if first is None:
        return list(buckets)
    return [bucket for bucket in buckets if bucket.month_key >= first]
