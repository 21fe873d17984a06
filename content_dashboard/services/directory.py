"""
Author/editor name resolution.

Names are memoized in a TTLCache driven by the injected clock. Concurrent
lookups for the same id share one in-flight task; the pending entry is removed
when the task finishes, whether it succeeded or failed.

A failed lookup resolves to the raw id and that fallback is cached for the
TTL, so one missing user never aborts an aggregation pass or gets re-fetched
on every call.
"""

import asyncio
from typing import Dict, Iterable, Optional

from cachetools import TTLCache

from content_dashboard.core.clock import Clock, SystemClock
from content_dashboard.core.errors import RepositoryError
from content_dashboard.core.logging_config import get_logger
from content_dashboard.repository.base import ContentRepository

logger = get_logger(__name__)

UNKNOWN_AUTHOR = "Unknown"


class DirectoryResolver:
    def __init__(
        self,
        repository: ContentRepository,
        clock: Optional[Clock] = None,
        ttl_seconds: float = 300,
        maxsize: int = 2048,
    ):
        self.repository = repository
        self.clock = clock or SystemClock()
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=self.clock.timestamp)
        self._pending: Dict[str, asyncio.Task] = {}

    async def resolve_name(self, user_id: Optional[str]) -> str:
        """Display name for ``user_id``; the raw id when the directory has no answer."""
        if not user_id:
            return UNKNOWN_AUTHOR

        cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        task = self._pending.get(user_id)
        if task is None:
            task = asyncio.ensure_future(self._lookup(user_id))
            self._pending[user_id] = task
            task.add_done_callback(lambda done, uid=user_id: self._forget(uid, done))

        # Shield so one cancelled caller doesn't cancel the lookup for everyone
        return await asyncio.shield(task)

    def _forget(self, user_id: str, task: asyncio.Task) -> None:
        if self._pending.get(user_id) is task:
            del self._pending[user_id]

    async def _lookup(self, user_id: str) -> str:
        try:
            user = await self.repository.fetch_user(user_id)
            name = user.display_name
        except RepositoryError as e:
            logger.warning("Directory lookup failed, using raw id", user_id=user_id, error=str(e))
            name = user_id

        self._cache[user_id] = name
        return name

    async def resolve_many(self, user_ids: Iterable[Optional[str]]) -> Dict[str, str]:
        """Resolve several ids concurrently. Empty ids are skipped."""
        unique = sorted({uid for uid in user_ids if uid})
        names = await asyncio.gather(*(self.resolve_name(uid) for uid in unique))
        return dict(zip(unique, names))

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def clear(self) -> None:
        self._cache.clear()
