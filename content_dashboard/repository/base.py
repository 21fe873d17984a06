"""
Content repository port and pagination helpers.

The aggregation engine only talks to a ContentRepository. Two implementations
ship with the package:

- ContentfulRepository: remote Management API over httpx
- InMemoryContentRepository: in-process lists (tests, offline runs)

Both page entries with an integer cursor (the offset of the next page).

IMPORTANT: pagination guard
A page whose length equals the page size is NOT proof that more pages exist.
iter_entries() stops when the cursor is absent, the page is short, or the
cursor fails to advance, so a misbehaving backend can never loop us forever.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Dict, Iterable, List, Optional, Protocol, Tuple

from content_dashboard.core.logging_config import get_logger
from content_dashboard.schemas import ContentRecord, DirectoryUser, ReleaseGroup, SchedulingRecord

logger = get_logger(__name__)

# Max ids accepted by a single sys.id[in] filter
ID_BATCH_SIZE = 100


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class EntryQuery:
    """Filters supported by the paginated entry query."""

    published: Optional[bool] = None  # True: has publishedAt, False: draft
    published_after: Optional[datetime] = None  # publishedAt >= value
    published_before: Optional[datetime] = None  # publishedAt <= value
    first_published_after: Optional[datetime] = None
    first_published_before: Optional[datetime] = None
    created_after: Optional[datetime] = None
    updated_after: Optional[datetime] = None
    updated_before: Optional[datetime] = None  # updatedAt <= value
    content_types: Tuple[str, ...] = ()
    excluded_content_types: Tuple[str, ...] = ()
    ids: Tuple[str, ...] = ()
    order: Optional[str] = None  # e.g. "-sys.publishedAt"

    def to_params(self) -> Dict[str, str]:
        """Render as remote query string parameters."""
        params: Dict[str, str] = {}
        if self.published is not None:
            params["sys.publishedAt[exists]"] = "true" if self.published else "false"
        if self.published_after is not None:
            params["sys.publishedAt[gte]"] = _iso(self.published_after)
        if self.published_before is not None:
            params["sys.publishedAt[lte]"] = _iso(self.published_before)
        if self.first_published_after is not None:
            params["sys.firstPublishedAt[gte]"] = _iso(self.first_published_after)
        if self.first_published_before is not None:
            params["sys.firstPublishedAt[lte]"] = _iso(self.first_published_before)
        if self.created_after is not None:
            params["sys.createdAt[gte]"] = _iso(self.created_after)
        if self.updated_after is not None:
            params["sys.updatedAt[gte]"] = _iso(self.updated_after)
        if self.updated_before is not None:
            params["sys.updatedAt[lte]"] = _iso(self.updated_before)
        if self.content_types:
            params["sys.contentType.sys.id[in]"] = ",".join(self.content_types)
        if self.excluded_content_types:
            params["sys.contentType.sys.id[nin]"] = ",".join(self.excluded_content_types)
        if self.ids:
            params["sys.id[in]"] = ",".join(self.ids)
        if self.order:
            params["order"] = self.order
        return params

    def matches(self, record: ContentRecord) -> bool:
        """Local evaluation of the same filters (used by in-process repositories)."""
        if self.published is not None and record.is_published != self.published:
            return False
        if not _in_range(record.published_at, self.published_after, self.published_before):
            return False
        if not _in_range(record.first_published_at, self.first_published_after, self.first_published_before):
            return False
        if not _in_range(record.created_at, self.created_after, None):
            return False
        if not _in_range(record.updated_at, self.updated_after, self.updated_before):
            return False
        if self.content_types and record.content_type_id not in self.content_types:
            return False
        if self.excluded_content_types and record.content_type_id in self.excluded_content_types:
            return False
        if self.ids and record.id not in self.ids:
            return False
        return True


def _in_range(value: Optional[datetime], low: Optional[datetime], high: Optional[datetime]) -> bool:
    if low is None and high is None:
        return True
    if value is None:
        return False
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


@dataclass
class EntryPage:
    records: List[ContentRecord] = field(default_factory=list)
    next_cursor: Optional[int] = None
    total: Optional[int] = None


class ContentRepository(Protocol):
    """Remote paginated content source. Implementations never retry."""

    page_size: int

    async def fetch_page(self, query: EntryQuery, cursor: Optional[int] = None) -> EntryPage: ...

    async def fetch_scheduling_records(self, status: str = "scheduled") -> List[SchedulingRecord]: ...

    async def fetch_release_group(self, release_id: str) -> ReleaseGroup: ...

    async def fetch_user(self, user_id: str) -> DirectoryUser: ...

    async def archive_entry(self, record_id: str) -> None: ...

    async def unpublish_entry(self, record_id: str) -> None: ...


async def iter_entries(
    repository: ContentRepository,
    query: EntryQuery,
    max_records: Optional[int] = None,
) -> AsyncIterator[ContentRecord]:
    """
    Stream every record matching ``query``, one page at a time.

    Pages are requested sequentially (each cursor comes from the previous
    response). Stops on a missing cursor, a short page, a cursor that does not
    advance, or once ``max_records`` records have been yielded.
    """
    cursor: Optional[int] = None
    yielded = 0

    while True:
        page = await repository.fetch_page(query, cursor)

        for record in page.records:
            yield record
            yielded += 1
            if max_records is not None and yielded >= max_records:
                return

        if page.next_cursor is None:
            break
        if len(page.records) < repository.page_size:
            break
        if page.next_cursor <= (cursor or 0):
            logger.warning(
                "Pagination cursor did not advance, stopping",
                cursor=cursor,
                next_cursor=page.next_cursor,
            )
            break
        cursor = page.next_cursor


async def collect_entries(
    repository: ContentRepository,
    query: EntryQuery,
    max_records: Optional[int] = None,
) -> List[ContentRecord]:
    return [record async for record in iter_entries(repository, query, max_records=max_records)]


async def gather_all(*aws: Awaitable[Any]) -> List[Any]:
    """
    Run independent sub-fetches concurrently and return their results in order.

    Unlike a bare asyncio.gather, the first failure (or cancellation of the
    caller) cancels the siblings still paging and waits for them to unwind.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.debug("Cancelling sibling fetches", cancelled=len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
        raise


def chunked(items: List[str], size: int) -> List[List[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


async def fetch_entries_by_ids(
    repository: ContentRepository,
    ids: Iterable[str],
    batch_size: int = ID_BATCH_SIZE,
) -> List[ContentRecord]:
    """
    Fetch full records for a set of ids.

    Ids are split into batches of at most ``batch_size`` (the id-filter limit),
    batches are fetched concurrently, and the flattened result is sorted by id.
    """
    batch_size = max(1, min(batch_size, ID_BATCH_SIZE))
    unique_ids = sorted(set(ids))
    if not unique_ids:
        return []

    batches = chunked(unique_ids, batch_size)
    results = await gather_all(
        *(collect_entries(repository, EntryQuery(ids=tuple(batch))) for batch in batches)
    )

    by_id: Dict[str, ContentRecord] = {}
    for batch_records in results:
        for record in batch_records:
            by_id[record.id] = record

    logger.debug("Fetched entries by id", requested=len(unique_ids), found=len(by_id), batches=len(batches))
    return [by_id[record_id] for record_id in sorted(by_id)]
