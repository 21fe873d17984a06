"""
Two-tier dashboard cache with stale-on-error fallback.

Tiers:
- request memo: TTLCache keyed by the request signature (short TTL, in-process)
- snapshot: SnapshotStore under a fixed key plus "<key>:timestamp" (longer
  TTL, survives restarts when backed by FileSnapshotStore)

Read path:
1. memo hit -> fresh
2. persisted snapshot younger than the snapshot TTL with the same signature
   -> fresh (and re-memoized)
3. recompute (under the deadline, if any); success writes both tiers
4. recompute raised a DashboardError -> any persisted snapshot, however old,
   is returned marked stale; with no snapshot at all the error propagates

Concurrent reads with the same signature share one computation (steps 2-4).
refresh() skips steps 1-2 but keeps step 4, so refreshing during an outage
still answers with the last snapshot.

Corrupt persisted data (unparsable JSON, undecodable bytes, bad timestamp) is
deleted and treated as a miss.
"""

import asyncio
import hashlib
import json
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, Tuple

from cachetools import TTLCache
from pydantic import ValidationError

from content_dashboard.core.clock import Clock, SystemClock
from content_dashboard.core.errors import (
    AggregationTimeoutError,
    DashboardError,
    capture_message,
    error_boundary,
)
from content_dashboard.core.logging_config import get_logger
from content_dashboard.core.metrics import aggregation_metrics
from content_dashboard.schemas import DashboardResult, DashboardSnapshot, ResultState

logger = get_logger(__name__)

DEFAULT_SNAPSHOT_KEY = "content-dashboard"

ComputeFn = Callable[[str], Awaitable[DashboardSnapshot]]


def request_signature(params: Mapping[str, Any]) -> str:
    """Deterministic hash of the request parameters (key order does not matter)."""
    param_str = json.dumps(params, sort_keys=True, default=str)
    return hashlib.md5(param_str.encode()).hexdigest()


class SnapshotStore(Protocol):
    """Durable string key-value store for the snapshot tier."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemorySnapshotStore:
    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class FileSnapshotStore:
    """One file per key under ``directory``. Writes go through a temp file and rename."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / (re.sub(r"[^A-Za-z0-9_.-]", "_", key) + ".json")

    def get(self, key: str) -> Optional[str]:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class SnapshotCache:
    def __init__(
        self,
        store: SnapshotStore,
        clock: Optional[Clock] = None,
        memo_ttl: float = 300,
        snapshot_ttl: float = 1800,
        deadline_seconds: Optional[float] = None,
        key: str = DEFAULT_SNAPSHOT_KEY,
        memo_maxsize: int = 32,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.snapshot_ttl = snapshot_ttl
        self.deadline_seconds = deadline_seconds
        self.key = key
        self.timestamp_key = f"{key}:timestamp"
        self._memo: TTLCache = TTLCache(maxsize=memo_maxsize, ttl=memo_ttl, timer=self.clock.timestamp)
        self._pending: Dict[Tuple[str, bool], asyncio.Future] = {}

    def _load(self) -> Optional[Tuple[DashboardSnapshot, Optional[float]]]:
        """Persisted snapshot and its write time; None when absent or corrupt."""
        try:
            # UnicodeDecodeError from a file-backed store is a ValueError
            raw = self.store.get(self.key)
            if raw is None:
                return None
            raw_timestamp = self.store.get(self.timestamp_key)
            snapshot = DashboardSnapshot.model_validate_json(raw)
            written_at = float(raw_timestamp) if raw_timestamp is not None else None
        except (ValidationError, ValueError) as e:
            logger.warning("Discarding corrupt dashboard snapshot", key=self.key, error=str(e))
            self._delete_persisted()
            return None
        return snapshot, written_at

    def _save(self, snapshot: DashboardSnapshot) -> None:
        # A failed cache write must not fail a successful computation
        with error_boundary("save_snapshot", OSError, key=self.key):
            self.store.set(self.key, snapshot.model_dump_json(by_alias=True))
            self.store.set(self.timestamp_key, str(self.clock.timestamp()))

    def _delete_persisted(self) -> None:
        self.store.delete(self.key)
        self.store.delete(self.timestamp_key)

    def _is_fresh(self, written_at: Optional[float]) -> bool:
        if written_at is None:
            return False
        return self.clock.timestamp() - written_at < self.snapshot_ttl

    async def _compute(self, compute: ComputeFn, signature: str) -> DashboardSnapshot:
        if not self.deadline_seconds:
            return await compute(signature)
        try:
            return await asyncio.wait_for(compute(signature), timeout=self.deadline_seconds)
        except asyncio.TimeoutError:
            raise AggregationTimeoutError(self.deadline_seconds) from None

    async def get_or_compute(
        self, params: Mapping[str, Any], compute: ComputeFn, force: bool = False
    ) -> DashboardResult:
        """
        Cached dashboard for ``params``.

        With ``force`` the memo and a fresh snapshot are skipped and the result
        is recomputed; the persisted snapshot still serves as the stale fallback
        until a successful recompute replaces it.

        Concurrent calls with the same signature share one in-flight computation.
        """
        signature = request_signature(params)

        if not force:
            memoized = self._memo.get(signature)
            if memoized is not None:
                logger.debug("Dashboard memo hit", signature=signature)
                return DashboardResult(snapshot=memoized, state=ResultState.FRESH)

        pending_key = (signature, force)
        task = self._pending.get(pending_key)
        if task is None:
            task = asyncio.ensure_future(self._resolve(signature, compute, force))
            self._pending[pending_key] = task
            task.add_done_callback(lambda done, k=pending_key: self._forget(k, done))
        else:
            logger.debug("Joining in-flight dashboard computation", signature=signature)

        # Shield so one cancelled caller doesn't cancel the computation for everyone
        return await asyncio.shield(task)

    def _forget(self, pending_key: Tuple[str, bool], task: asyncio.Future) -> None:
        if self._pending.get(pending_key) is task:
            del self._pending[pending_key]

    async def _resolve(self, signature: str, compute: ComputeFn, force: bool) -> DashboardResult:
        persisted = self._load()
        if persisted is not None and not force:
            snapshot, written_at = persisted
            if self._is_fresh(written_at) and snapshot.request_signature == signature:
                logger.debug("Dashboard snapshot hit", signature=signature)
                self._memo[signature] = snapshot
                return DashboardResult(snapshot=snapshot, state=ResultState.FRESH)

        try:
            snapshot = await self._compute(compute, signature)
        except DashboardError as e:
            if persisted is None:
                raise
            capture_message(
                "Serving stale dashboard snapshot",
                level="warning",
                context={
                    "error_type": type(e).__name__,
                    "error": str(e),
                    "computed_at": persisted[0].computed_at.isoformat(),
                    "forced": force,
                },
            )
            aggregation_metrics.record_stale_fallback(self.key)
            return DashboardResult(snapshot=persisted[0], state=ResultState.STALE, error=str(e))

        self._save(snapshot)
        self._memo[signature] = snapshot
        return DashboardResult(snapshot=snapshot, state=ResultState.FRESH)

    async def refresh(self, params: Mapping[str, Any], compute: ComputeFn) -> DashboardResult:
        """Drop the memo tier and recompute; the snapshot tier is replaced on success."""
        self._memo.clear()
        logger.info("Dashboard refresh requested", key=self.key)
        return await self.get_or_compute(params, compute, force=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def invalidate(self) -> None:
        """Drop both tiers; the next read recomputes."""
        self._memo.clear()
        self._delete_persisted()
        logger.info("Dashboard cache invalidated", key=self.key)
