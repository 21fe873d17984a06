"""
Dashboard orchestration.

DashboardService is what the presentation layer talks to:
- get_dashboard(): cached composed result (fresh or stale-fallback)
- refresh(): skip both cache tiers and recompute (last snapshot stays the stale fallback)
- resolve_author_name(): on-demand name lookup outside the batch path
- archive_entries() / unpublish_entries(): bulk commands, per-entry failures isolated

A recompute fans out to the stats scan + reconciliation, the chart series scan
and the three display lists (recently published, stale, orphaned) concurrently,
then batch-fetches the scheduled entries by id. A failed branch cancels the
others.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, Optional

from content_dashboard.core.clock import Clock, SystemClock
from content_dashboard.core.config import ConfigProvider, DashboardConfig, Settings, build_config_provider, settings
from content_dashboard.core.context import clear_context, generate_run_id, set_run_id, set_space_id
from content_dashboard.core.errors import DashboardError, RepositoryError, error_boundary
from content_dashboard.core.logging_config import get_logger
from content_dashboard.core.metrics import aggregation_metrics
from content_dashboard.repository.base import (
    ContentRepository,
    EntryQuery,
    collect_entries,
    fetch_entries_by_ids,
    gather_all,
)
from content_dashboard.schemas import BulkActionResult, DashboardResult, DashboardSnapshot
from content_dashboard.services.directory import DirectoryResolver
from content_dashboard.services.scheduling import SchedulingReconciler, build_scheduled_releases
from content_dashboard.services.series import SeriesBuilder
from content_dashboard.services.snapshot_cache import InMemorySnapshotStore, SnapshotCache, SnapshotStore
from content_dashboard.services.stats import StatsAggregator, StatsWindows

logger = get_logger(__name__)


class DashboardService:
    def __init__(
        self,
        repository: ContentRepository,
        config_provider: Optional[ConfigProvider] = None,
        store: Optional[SnapshotStore] = None,
        clock: Optional[Clock] = None,
        app_settings: Optional[Settings] = None,
    ):
        s = app_settings or settings
        self.repository = repository
        self.clock = clock or SystemClock()
        self.config_provider = config_provider or build_config_provider(s)
        self.id_batch_size = s.ID_BATCH_SIZE
        self.display_limit = s.DISPLAY_LIST_LIMIT

        self.directory = DirectoryResolver(repository, self.clock, ttl_seconds=s.DIRECTORY_TTL_SECONDS)
        self.reconciler = SchedulingReconciler(repository)
        self.stats = StatsAggregator(repository, self.reconciler)
        self.series = SeriesBuilder(repository, self.directory)
        self.cache = SnapshotCache(
            store or InMemorySnapshotStore(),
            clock=self.clock,
            memo_ttl=s.MEMO_TTL_SECONDS,
            snapshot_ttl=s.SNAPSHOT_TTL_SECONDS,
            deadline_seconds=s.AGGREGATION_DEADLINE_SECONDS or None,
            key=s.SNAPSHOT_KEY,
        )

    @property
    def job_name(self) -> str:
        return self.cache.key

    async def get_dashboard(self) -> DashboardResult:
        config = self.config_provider.get_config()
        return await self.cache.get_or_compute(
            config.signature_params(),
            lambda signature: self._compute(config, signature),
        )

    async def refresh(self) -> DashboardResult:
        config = self.config_provider.get_config()
        return await self.cache.refresh(
            config.signature_params(),
            lambda signature: self._compute(config, signature),
        )

    async def resolve_author_name(self, user_id: str) -> str:
        return await self.directory.resolve_name(user_id)

    async def _compute(self, config: DashboardConfig, signature: str) -> DashboardSnapshot:
        set_run_id(generate_run_id())
        space_id = getattr(self.repository, "space_id", None)
        if space_id:
            set_space_id(space_id)

        aggregation_metrics.record_start(self.job_name)
        now = self.clock.now()
        windows = StatsWindows.from_config(config, now)
        excluded = config.excluded_content_types

        recent_query = EntryQuery(
            published=True,
            published_after=windows.recent_since,
            excluded_content_types=excluded,
            order="-sys.publishedAt",
        )
        stale_query = EntryQuery(
            published=True,
            updated_before=windows.needs_update_before,
            excluded_content_types=excluded,
            order="sys.updatedAt",
        )
        # Published content by most recent edit; excluded types are what scope it
        orphaned_query = EntryQuery(
            published=True,
            excluded_content_types=excluded,
            order="-sys.updatedAt",
        )

        try:
            stats_report, series_report, recent, stale, orphaned = await gather_all(
                self.stats.compute(config, now),
                self.series.build(config, now),
                collect_entries(self.repository, recent_query, max_records=self.display_limit),
                collect_entries(self.repository, stale_query, max_records=self.display_limit),
                collect_entries(self.repository, orphaned_query, max_records=self.display_limit),
            )
            scheduled = await fetch_entries_by_ids(
                self.repository, stats_report.schedule.record_ids, batch_size=self.id_batch_size
            )
            releases = []
            if config.show_upcoming_releases:
                releases = await build_scheduled_releases(stats_report.schedule, self.directory)
        except DashboardError as e:
            aggregation_metrics.record_failure(self.job_name, str(e))
            logger.error("Dashboard aggregation failed", error_type=type(e).__name__, error=str(e))
            raise
        except asyncio.CancelledError:
            # wait_for cancels us when the deadline passes
            aggregation_metrics.record_failure(self.job_name, "cancelled")
            raise
        finally:
            clear_context()

        aggregation_metrics.record_complete(
            self.job_name,
            records_scanned=stats_report.records_scanned,
            partial_failures=len(stats_report.schedule.skipped_release_ids),
        )

        return DashboardSnapshot(
            computed_at=now,
            request_signature=signature,
            stats=stats_report.stats,
            chart_series=series_report.chart_series,
            scheduled_entities=scheduled,
            recently_published_entities=recent,
            stale_entities=stale,
            orphaned_entities=orphaned,
            scheduled_releases=releases,
            author_names=series_report.author_names,
        )

    async def _apply(self, operation: str, action: Callable[[str], Awaitable[None]], record_id: str) -> Optional[str]:
        with error_boundary(operation, RepositoryError, record_id=record_id) as boundary:
            await action(record_id)
        return str(boundary.error) if boundary.error else None

    async def _bulk(
        self, operation: str, action: Callable[[str], Awaitable[None]], record_ids: Iterable[str]
    ) -> BulkActionResult:
        unique_ids = list(dict.fromkeys(rid for rid in record_ids if rid))
        errors = await asyncio.gather(*(self._apply(operation, action, rid) for rid in unique_ids))

        result = BulkActionResult()
        for record_id, error in zip(unique_ids, errors):
            if error is None:
                result.succeeded.append(record_id)
            else:
                result.failed[record_id] = error

        if result.succeeded:
            self.cache.invalidate()

        logger.info(
            "Bulk action finished",
            operation=operation,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
        )
        return result

    async def archive_entries(self, record_ids: Iterable[str]) -> BulkActionResult:
        return await self._bulk("archive_entry", self.repository.archive_entry, record_ids)

    async def unpublish_entries(self, record_ids: Iterable[str]) -> BulkActionResult:
        return await self._bulk("unpublish_entry", self.repository.unpublish_entry, record_ids)
