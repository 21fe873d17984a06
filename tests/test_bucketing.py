"""
Tests for month bucketing.

Tests cover:
- Month key helpers
- Percent change zero-handling
- Gap-free, ascending buckets
- Chart time range filtering
"""

from datetime import datetime, timedelta, timezone

from content_dashboard.core.config import TimeRange
from content_dashboard.services.bucketing import (
    MonthlyCounter,
    bucket_by_month,
    filter_time_range,
    format_percentage_change,
    iter_month_keys,
    month_key,
    percent_change,
    shift_month,
)


def _dt(year, month, day=15):
    return datetime(year, month, day, 12, 0, tzinfo=timezone.utc)


JUNE_2026 = _dt(2026, 6, 20)


class TestMonthKeys:
    """Tests for month key helpers."""

    def test_month_key_format(self):
        assert month_key(_dt(2026, 3)) == "2026-03"

    def test_month_key_uses_utc(self):
        """A late-evening timestamp west of UTC falls in the next UTC month."""
        local = datetime(2026, 1, 31, 20, 0, tzinfo=timezone(timedelta(hours=-8)))
        assert month_key(local) == "2026-02"

    def test_shift_month_across_year(self):
        assert shift_month("2026-01", -1) == "2025-12"
        assert shift_month("2025-12", 1) == "2026-01"
        assert shift_month("2026-10", -11) == "2025-11"

    def test_iter_month_keys_inclusive(self):
        assert list(iter_month_keys("2025-11", "2026-02")) == ["2025-11", "2025-12", "2026-01", "2026-02"]

    def test_iter_month_keys_single(self):
        assert list(iter_month_keys("2026-05", "2026-05")) == ["2026-05"]


class TestPercentChange:
    """Tests for the period-over-period rule."""

    def test_zero_to_zero(self):
        assert percent_change(0, 0) == 0

    def test_zero_to_positive(self):
        assert percent_change(0, 7) == 100

    def test_positive_previous(self):
        assert percent_change(4, 5) == 25
        assert percent_change(4, 2) == -50
        assert percent_change(3, 0) == -100

    def test_format(self):
        assert format_percentage_change(12.5) == "+12.5%"
        assert format_percentage_change(0) == "+0.0%"
        assert format_percentage_change(-3) == "-3.0%"


class TestBucketByMonth:
    """Tests for bucket_by_month."""

    def test_no_gaps_and_zero_fill(self):
        """Every month from the earliest record to now appears once, ascending."""
        dates = [_dt(2026, 1), _dt(2026, 4)]

        buckets = bucket_by_month(dates, lambda d: d, JUNE_2026)

        assert [b.month_key for b in buckets] == ["2026-01", "2026-02", "2026-03", "2026-04", "2026-05", "2026-06"]
        assert [b.count for b in buckets] == [1, 0, 0, 1, 0, 0]
        assert [b.percent_change for b in buckets] == [0, -100, 0, 100, -100, 0]

    def test_first_bucket_has_zero_change(self):
        buckets = bucket_by_month([_dt(2026, 5)] * 3 + [_dt(2026, 6)], lambda d: d, JUNE_2026)

        assert buckets[0].percent_change == 0
        assert buckets[1].count == 1
        assert round(buckets[1].percent_change, 4) == round(-200 / 3, 4)

    def test_skips_none_dates(self):
        buckets = bucket_by_month([None, _dt(2026, 6), None], lambda d: d, JUNE_2026)

        assert len(buckets) == 1
        assert buckets[0].count == 1

    def test_no_data_defaults_to_current_month(self):
        buckets = bucket_by_month([], lambda d: d, JUNE_2026)

        assert [b.month_key for b in buckets] == ["2026-06"]
        assert buckets[0].count == 0

    def test_no_data_uses_configured_start(self):
        buckets = bucket_by_month([], lambda d: d, JUNE_2026, default_start="2026-04")

        assert [b.month_key for b in buckets] == ["2026-04", "2026-05", "2026-06"]
        assert all(b.count == 0 for b in buckets)

    def test_future_dates_extend_range(self):
        buckets = bucket_by_month([_dt(2026, 5), _dt(2026, 8)], lambda d: d, JUNE_2026)

        assert buckets[-1].month_key == "2026-08"
        assert [b.count for b in buckets] == [1, 0, 0, 1]

    def test_idempotent_and_order_independent(self):
        dates = [_dt(2025, 12), _dt(2026, 2), _dt(2026, 2), _dt(2026, 6)]

        first = bucket_by_month(dates, lambda d: d, JUNE_2026)
        second = bucket_by_month(list(reversed(dates)), lambda d: d, JUNE_2026)

        assert first == second


class TestMonthlyCounter:
    """Tests for the streaming counter."""

    def test_earliest_latest(self):
        counter = MonthlyCounter()
        counter.add(_dt(2026, 3))
        counter.add(_dt(2025, 11))
        counter.add(None)

        assert counter.earliest == "2025-11"
        assert counter.latest == "2026-03"
        assert counter.total == 2

    def test_merge(self):
        a = MonthlyCounter()
        b = MonthlyCounter()
        a.add(_dt(2026, 3))
        b.add(_dt(2026, 3))
        b.add(_dt(2026, 4))

        a.merge(b)

        assert a.count("2026-03") == 2
        assert a.count("2026-04") == 1

    def test_shared_start(self):
        """A series can be laid over a wider range than its own data."""
        counter = MonthlyCounter()
        counter.add(_dt(2026, 5))

        buckets = counter.buckets(JUNE_2026, start="2026-02")

        assert [b.month_key for b in buckets][0] == "2026-02"
        assert [b.count for b in buckets] == [0, 0, 0, 1, 0]


class TestFilterTimeRange:
    """Tests for chart range trimming."""

    def setup_method(self):
        now = _dt(2026, 10, 19)
        self.now = now
        self.buckets = bucket_by_month([_dt(2024, 6), _dt(2026, 4), _dt(2026, 5)], lambda d: d, now)

    def test_all(self):
        assert filter_time_range(self.buckets, TimeRange.ALL, self.now) == self.buckets

    def test_past_year(self):
        visible = filter_time_range(self.buckets, TimeRange.PAST_YEAR, self.now)

        assert len(visible) == 12
        assert visible[0].month_key == "2025-11"
        assert visible[-1].month_key == "2026-10"

    def test_past_six_months(self):
        visible = filter_time_range(self.buckets, TimeRange.PAST_6_MONTHS, self.now)

        assert [b.month_key for b in visible] == ["2026-05", "2026-06", "2026-07", "2026-08", "2026-09", "2026-10"]

    def test_percent_change_computed_before_filtering(self):
        """May keeps its change relative to April even though April is hidden."""
        visible = filter_time_range(self.buckets, TimeRange.PAST_6_MONTHS, self.now)

        assert visible[0].month_key == "2026-05"
        assert visible[0].percent_change == 0  # 1 -> 1
        assert visible[1].percent_change == -100  # 1 -> 0
