"""
Caller-side retry policy for content repositories.

Only TransientRepositoryError (timeouts, rate limits, 5xx) is retried, with
exponential backoff plus jitter. Permanent errors surface on the first attempt.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, List, Optional

from content_dashboard.core.config import Settings, settings
from content_dashboard.core.errors import TransientRepositoryError
from content_dashboard.core.logging_config import get_logger
from content_dashboard.repository.base import ContentRepository, EntryPage, EntryQuery
from content_dashboard.schemas import DirectoryUser, ReleaseGroup, SchedulingRecord

logger = get_logger(__name__)


def backoff_delay(attempt: int, base_delay: float, max_delay: float, retry_after: Optional[float] = None) -> float:
    """Delay before retry number ``attempt`` (0-indexed)."""
    delay = base_delay * (2**attempt) + random.uniform(0, base_delay)
    if retry_after is not None:
        delay = max(delay, retry_after)
    return min(delay, max_delay)


class RetryingRepository:
    """Wraps any ContentRepository with bounded retries on transient errors."""

    def __init__(
        self,
        inner: ContentRepository,
        attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.inner = inner
        self.attempts = max(1, attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, inner: ContentRepository, app_settings: Optional[Settings] = None) -> "RetryingRepository":
        s = app_settings or settings
        return cls(
            inner,
            attempts=s.RETRY_ATTEMPTS,
            base_delay=s.RETRY_BASE_DELAY_SECONDS,
            max_delay=s.RETRY_MAX_DELAY_SECONDS,
        )

    @property
    def page_size(self) -> int:
        return self.inner.page_size

    async def _call(self, operation: str, func: Callable[..., Awaitable[Any]], *args) -> Any:
        for attempt in range(self.attempts):
            try:
                return await func(*args)
            except TransientRepositoryError as e:
                if attempt >= self.attempts - 1:
                    logger.warning(
                        "Repository call failed after retries",
                        operation=operation,
                        attempts=self.attempts,
                        error=str(e),
                    )
                    raise
                wait_time = backoff_delay(attempt, self.base_delay, self.max_delay, e.retry_after)
                logger.info(
                    "Transient repository error, retrying",
                    operation=operation,
                    attempt=attempt + 1,
                    wait_seconds=round(wait_time, 2),
                    error=str(e),
                )
                await self._sleep(wait_time)

    async def fetch_page(self, query: EntryQuery, cursor: Optional[int] = None) -> EntryPage:
        return await self._call("fetch_page", self.inner.fetch_page, query, cursor)

    async def fetch_scheduling_records(self, status: str = "scheduled") -> List[SchedulingRecord]:
        return await self._call("fetch_scheduling_records", self.inner.fetch_scheduling_records, status)

    async def fetch_release_group(self, release_id: str) -> ReleaseGroup:
        return await self._call("fetch_release_group", self.inner.fetch_release_group, release_id)

    async def fetch_user(self, user_id: str) -> DirectoryUser:
        return await self._call("fetch_user", self.inner.fetch_user, user_id)

    async def archive_entry(self, record_id: str) -> None:
        await self._call("archive_entry", self.inner.archive_entry, record_id)

    async def unpublish_entry(self, record_id: str) -> None:
        await self._call("unpublish_entry", self.inner.unpublish_entry, record_id)
