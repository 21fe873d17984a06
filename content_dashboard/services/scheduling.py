"""
Scheduling reconciliation.

Turns scheduling records into the set of entry ids that are effectively
scheduled: future publish actions with status "scheduled", where an action on
a release contributes every entry in that release. Entries reached through
several actions (directly and via a release, or via two releases) count once.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Set, Tuple

from content_dashboard.core.errors import RepositoryError, error_boundary
from content_dashboard.core.logging_config import get_logger
from content_dashboard.repository.base import ContentRepository
from content_dashboard.schemas import ReleaseGroup, ScheduledRelease, SchedulingRecord, TargetKind
from content_dashboard.services.directory import UNKNOWN_AUTHOR, DirectoryResolver

logger = get_logger(__name__)


def reconcile_scheduled_ids(
    records: Iterable[SchedulingRecord],
    releases: Mapping[str, ReleaseGroup],
    now: datetime,
) -> Set[str]:
    """
    Union of directly scheduled entry ids and members of scheduled releases.

    Releases missing from ``releases`` (failed to resolve) contribute nothing.
    """
    scheduled: Set[str] = set()
    for record in records:
        if not record.is_effective(now):
            continue
        if record.target_kind == TargetKind.SINGLE_RECORD:
            scheduled.add(record.target_id)
            continue
        release = releases.get(record.target_id)
        if release is not None:
            scheduled |= release.member_record_ids
    return scheduled


@dataclass
class ReconciledSchedule:
    record_ids: Set[str] = field(default_factory=set)
    releases: List[Tuple[ReleaseGroup, SchedulingRecord]] = field(default_factory=list)
    skipped_release_ids: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.record_ids)


class SchedulingReconciler:
    def __init__(self, repository: ContentRepository):
        self.repository = repository

    async def _resolve_release(self, release_id: str) -> Optional[ReleaseGroup]:
        with error_boundary("resolve_release", RepositoryError, release_id=release_id):
            return await self.repository.fetch_release_group(release_id)
        return None

    async def reconcile(self, now: datetime) -> ReconciledSchedule:
        records = await self.repository.fetch_scheduling_records("scheduled")
        effective = [r for r in records if r.is_effective(now)]

        release_ids = sorted({r.target_id for r in effective if r.target_kind == TargetKind.RELEASE_GROUP})
        resolved = await asyncio.gather(*(self._resolve_release(rid) for rid in release_ids))

        releases = {rid: release for rid, release in zip(release_ids, resolved) if release is not None}
        skipped = [rid for rid, release in zip(release_ids, resolved) if release is None]

        pairs = [
            (releases[r.target_id], r)
            for r in effective
            if r.target_kind == TargetKind.RELEASE_GROUP and r.target_id in releases
        ]
        record_ids = reconcile_scheduled_ids(effective, releases, now)

        logger.info(
            "Reconciled schedule",
            actions=len(records),
            effective_actions=len(effective),
            releases=len(releases),
            skipped_releases=len(skipped),
            scheduled_entries=len(record_ids),
        )
        return ReconciledSchedule(record_ids=record_ids, releases=pairs, skipped_release_ids=skipped)


async def build_scheduled_releases(
    schedule: ReconciledSchedule,
    directory: DirectoryResolver,
) -> List[ScheduledRelease]:
    """Upcoming releases table, soonest first, with editor names resolved."""
    names = await directory.resolve_many(release.last_updated_by_id for release, _ in schedule.releases)

    rows = [
        ScheduledRelease(
            id=release.id,
            title=release.title or "Untitled release",
            scheduled_for=action.scheduled_for,
            item_count=len(release.member_record_ids),
            updated_at=release.last_updated_at,
            updated_by=names.get(release.last_updated_by_id or "", UNKNOWN_AUTHOR),
        )
        for release, action in schedule.releases
    ]
    return sorted(rows, key=lambda row: (row.scheduled_for, row.id))
