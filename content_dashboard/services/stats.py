"""
Summary statistics over the whole corpus.

The corpus is streamed page by page into a CorpusTally, so memory stays flat
no matter how many entries the space holds. The scan and the scheduling
reconciliation are independent and run concurrently.

Windows (all relative to the injected "now"):
- recently published: publishedAt >= now - recently_published_days
- needs update: published and updatedAt <= now - needs_update_months * 30 days
  (fixed 30-day months, not calendar months)
- time to publish: records created within the last time_to_publish_days
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from content_dashboard.core.clock import ensure_utc
from content_dashboard.core.config import DashboardConfig
from content_dashboard.core.logging_config import get_logger
from content_dashboard.repository.base import ContentRepository, EntryQuery, gather_all, iter_entries
from content_dashboard.schemas import ContentRecord, ContentStats
from content_dashboard.services.bucketing import month_key, percent_change, shift_month
from content_dashboard.services.scheduling import ReconciledSchedule, SchedulingReconciler

logger = get_logger(__name__)

DAYS_PER_MONTH = 30
SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class StatsWindows:
    now: datetime
    current_month: str
    previous_month: str
    recent_since: datetime
    needs_update_before: datetime
    time_to_publish_since: datetime

    @classmethod
    def from_config(cls, config: DashboardConfig, now: datetime) -> "StatsWindows":
        now = ensure_utc(now)
        current = month_key(now)
        return cls(
            now=now,
            current_month=current,
            previous_month=shift_month(current, -1),
            recent_since=now - timedelta(days=config.recently_published_days),
            needs_update_before=now - timedelta(days=config.needs_update_months * DAYS_PER_MONTH),
            time_to_publish_since=now - timedelta(days=config.time_to_publish_days),
        )


class CorpusTally:
    """Streaming accumulator for the summary metrics."""

    def __init__(self, windows: StatsWindows):
        self.windows = windows
        self.records_scanned = 0
        self.total_published = 0
        self.current_month_published = 0
        self.previous_month_published = 0
        self.recently_published = 0
        self.needs_update = 0
        self._publish_days_sum = 0.0
        self._publish_days_count = 0

    def add(self, record: ContentRecord) -> None:
        w = self.windows
        self.records_scanned += 1

        if record.first_published_at is not None:
            first_month = month_key(record.first_published_at)
            if first_month == w.current_month:
                self.current_month_published += 1
            elif first_month == w.previous_month:
                self.previous_month_published += 1

        if record.published_at is None:
            return

        self.total_published += 1
        if record.published_at >= w.recent_since:
            self.recently_published += 1
        if record.updated_at <= w.needs_update_before:
            self.needs_update += 1
        if record.created_at >= w.time_to_publish_since:
            elapsed = (record.published_at - record.created_at).total_seconds()
            self._publish_days_sum += elapsed / SECONDS_PER_DAY
            self._publish_days_count += 1

    @property
    def average_time_to_publish(self) -> float:
        if self._publish_days_count == 0:
            return 0.0
        return self._publish_days_sum / self._publish_days_count

    def to_stats(self, scheduled_count: int) -> ContentStats:
        return ContentStats(
            total_published=self.total_published,
            percent_change=percent_change(self.previous_month_published, self.current_month_published),
            scheduled_count=scheduled_count,
            recently_published_count=self.recently_published,
            needs_update_count=self.needs_update,
            previous_month_published=self.previous_month_published,
            current_month_published=self.current_month_published,
            average_time_to_publish=self.average_time_to_publish,
        )


@dataclass
class StatsReport:
    stats: ContentStats
    schedule: ReconciledSchedule
    records_scanned: int


class StatsAggregator:
    def __init__(self, repository: ContentRepository, reconciler: Optional[SchedulingReconciler] = None):
        self.repository = repository
        self.reconciler = reconciler or SchedulingReconciler(repository)

    async def _scan(self, config: DashboardConfig, now: datetime) -> CorpusTally:
        tally = CorpusTally(StatsWindows.from_config(config, now))
        query = EntryQuery(excluded_content_types=config.excluded_content_types)
        async for record in iter_entries(self.repository, query):
            tally.add(record)
        return tally

    async def compute(self, config: DashboardConfig, now: datetime) -> StatsReport:
        tally, schedule = await gather_all(
            self._scan(config, now),
            self.reconciler.reconcile(now),
        )
        stats = tally.to_stats(scheduled_count=schedule.count)
        logger.info(
            "Computed content stats",
            records_scanned=tally.records_scanned,
            total_published=stats.total_published,
            scheduled=stats.scheduled_count,
            needs_update=stats.needs_update_count,
        )
        return StatsReport(stats=stats, schedule=schedule, records_scanned=tally.records_scanned)

    async def compute_stats(self, config: DashboardConfig, now: datetime) -> ContentStats:
        report = await self.compute(config, now)
        return report.stats
