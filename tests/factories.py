"""Factories for records, scheduling actions, releases and users used across tests."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from content_dashboard.schemas import (
    ContentRecord,
    DirectoryUser,
    ReleaseGroup,
    SchedulingRecord,
    SchedulingStatus,
    TargetKind,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_record(
    record_id: str,
    published_at: Optional[datetime] = None,
    created_at: Optional[datetime] = None,
    updated_at: Optional[datetime] = None,
    first_published_at: Optional[datetime] = None,
    content_type: str = "blogPost",
    created_by: Optional[str] = "user-1",
    updated_by: Optional[str] = None,
    published_by: Optional[str] = None,
) -> ContentRecord:
    """Build a record; unset timestamps are derived from published_at."""
    if created_at is None:
        created_at = (published_at - timedelta(days=1)) if published_at else NOW - timedelta(days=400)
    if updated_at is None:
        updated_at = published_at or created_at
    if first_published_at is None:
        first_published_at = published_at
    return ContentRecord(
        id=record_id,
        content_type_id=content_type,
        created_at=created_at,
        updated_at=updated_at,
        first_published_at=first_published_at,
        published_at=published_at,
        created_by_id=created_by,
        updated_by_id=updated_by or created_by,
        published_by_id=(published_by or created_by) if published_at else None,
    )


def make_action(
    action_id: str,
    target_id: str,
    kind: TargetKind = TargetKind.SINGLE_RECORD,
    scheduled_for: Optional[datetime] = None,
    status: SchedulingStatus = SchedulingStatus.SCHEDULED,
    action: str = "publish",
) -> SchedulingRecord:
    return SchedulingRecord(
        id=action_id,
        status=status,
        action=action,
        scheduled_for=scheduled_for or NOW + timedelta(days=1),
        timezone="UTC",
        target_kind=kind,
        target_id=target_id,
    )


def make_release(release_id: str, members, title: str = "", updated_by: Optional[str] = "user-1") -> ReleaseGroup:
    return ReleaseGroup(
        id=release_id,
        title=title or f"Release {release_id}",
        member_record_ids=frozenset(members),
        last_updated_at=NOW - timedelta(days=1),
        last_updated_by_id=updated_by,
    )


def make_user(user_id: str, first: Optional[str] = None, last: Optional[str] = None, email: Optional[str] = None):
    return DirectoryUser(id=user_id, first_name=first, last_name=last, email=email)


def monthly_corpus() -> list:
    """
    13 published records: one on the 2nd of each month Nov 2025 - Oct 2026,
    plus one published today (2026-10-19).
    """
    records = []
    month_start = datetime(2025, 11, 2, 10, 0, tzinfo=timezone.utc)
    for i in range(12):
        year = month_start.year + (month_start.month - 1 + i) // 12
        month = (month_start.month - 1 + i) % 12 + 1
        published = month_start.replace(year=year, month=month)
        records.append(make_record(f"entry-{i + 1:02d}", published_at=published))
    records.append(make_record("entry-13", published_at=NOW - timedelta(hours=3)))
    return records


