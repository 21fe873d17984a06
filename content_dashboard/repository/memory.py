"""In-process ContentRepository used for tests and offline runs."""

from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from content_dashboard.core.errors import NotFoundError
from content_dashboard.repository.base import EntryPage, EntryQuery
from content_dashboard.schemas import (
    ContentRecord,
    DirectoryUser,
    ReleaseGroup,
    SchedulingRecord,
    SchedulingStatus,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_ORDER_FIELDS = {
    "sys.id": "id",
    "sys.createdAt": "created_at",
    "sys.updatedAt": "updated_at",
    "sys.publishedAt": "published_at",
    "sys.firstPublishedAt": "first_published_at",
}


class InMemoryContentRepository:
    """
    Same contract as the remote client, over plain lists.

    ``calls`` counts invocations per operation so tests can assert on how much
    repository traffic an aggregation generated. ``fail_with()`` makes the
    listed operations (or all of them) raise the given exception.
    """

    def __init__(
        self,
        records: Iterable[ContentRecord] = (),
        scheduling_records: Iterable[SchedulingRecord] = (),
        releases: Iterable[ReleaseGroup] = (),
        users: Iterable[DirectoryUser] = (),
        page_size: int = 100,
    ):
        self.page_size = page_size
        self.records: Dict[str, ContentRecord] = {r.id: r for r in records}
        self.scheduling_records: List[SchedulingRecord] = list(scheduling_records)
        self.releases: Dict[str, ReleaseGroup] = {r.id: r for r in releases}
        self.users: Dict[str, DirectoryUser] = {u.id: u for u in users}
        self.archived: Dict[str, ContentRecord] = {}
        self.calls: Counter = Counter()
        self._failure: Optional[Exception] = None
        self._failing_operations: Optional[set] = None

    def fail_with(self, error: Exception, operations: Optional[Sequence[str]] = None) -> None:
        self._failure = error
        self._failing_operations = set(operations) if operations else None

    def clear_failure(self) -> None:
        self._failure = None
        self._failing_operations = None

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        if self._failure is None:
            return
        if self._failing_operations is None or operation in self._failing_operations:
            raise self._failure

    def _sorted(self, records: List[ContentRecord], order: Optional[str]) -> List[ContentRecord]:
        records = sorted(records, key=lambda r: r.id)
        if not order:
            return records
        descending = order.startswith("-")
        attr = _ORDER_FIELDS.get(order.lstrip("-"), "id")
        if attr == "id":
            return sorted(records, key=lambda r: r.id, reverse=descending)
        return sorted(records, key=lambda r: getattr(r, attr) or _EPOCH, reverse=descending)

    async def fetch_page(self, query: EntryQuery, cursor: Optional[int] = None) -> EntryPage:
        self._enter("fetch_page")
        matching = self._sorted([r for r in self.records.values() if query.matches(r)], query.order)
        skip = cursor or 0
        page = matching[skip : skip + self.page_size]
        consumed = skip + len(page)
        next_cursor = consumed if page and consumed < len(matching) else None
        return EntryPage(records=page, next_cursor=next_cursor, total=len(matching))

    async def fetch_scheduling_records(self, status: str = "scheduled") -> List[SchedulingRecord]:
        self._enter("fetch_scheduling_records")
        wanted = SchedulingStatus.parse(status)
        matching = [r for r in self.scheduling_records if r.status == wanted]
        return sorted(matching, key=lambda r: r.scheduled_for)

    async def fetch_release_group(self, release_id: str) -> ReleaseGroup:
        self._enter("fetch_release_group")
        if release_id not in self.releases:
            raise NotFoundError(f"Release {release_id} not found", status_code=404, operation="fetch_release_group")
        return self.releases[release_id]

    async def fetch_user(self, user_id: str) -> DirectoryUser:
        self._enter("fetch_user")
        if user_id not in self.users:
            raise NotFoundError(f"User {user_id} not found", status_code=404, operation="fetch_user")
        return self.users[user_id]

    async def archive_entry(self, record_id: str) -> None:
        self._enter("archive_entry")
        if record_id not in self.records:
            raise NotFoundError(f"Entry {record_id} not found", status_code=404, operation="archive_entry")
        self.archived[record_id] = self.records.pop(record_id)

    async def unpublish_entry(self, record_id: str) -> None:
        self._enter("unpublish_entry")
        record = self.records.get(record_id)
        if record is None:
            raise NotFoundError(f"Entry {record_id} not found", status_code=404, operation="unpublish_entry")
        self.records[record_id] = record.model_copy(update={"published_at": None, "published_by_id": None})
