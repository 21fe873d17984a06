"""Simple in-memory metrics for dashboard aggregation runs.

These metrics are process-local and reset on restart.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Optional


@dataclass
class AggregationMetrics:
    """Metrics for a single aggregation run."""

    job_name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    records_scanned: int = 0
    partial_failures: int = 0
    succeeded: bool = False
    error: Optional[str] = None
    duration_seconds: float = 0.0


@dataclass
class MetricsStore:
    """Thread-safe store for aggregation metrics."""

    _lock: Lock = field(default_factory=Lock)
    _last_runs: dict = field(default_factory=dict)  # job_name -> AggregationMetrics
    _total_runs: dict = field(default_factory=lambda: {})  # job_name -> count
    _total_failures: dict = field(default_factory=lambda: {})  # job_name -> count
    _stale_fallbacks: dict = field(default_factory=lambda: {})  # job_name -> count

    def record_start(self, job_name: str) -> None:
        """Record the start of an aggregation run."""
        with self._lock:
            self._last_runs[job_name] = AggregationMetrics(
                job_name=job_name,
                started_at=datetime.now(timezone.utc),
            )

    def _finish(self, job_name: str) -> AggregationMetrics:
        # Must be called while holding self._lock
        now = datetime.now(timezone.utc)
        metrics = self._last_runs.get(job_name)
        if metrics is None:
            # Run wasn't recorded starting, create a completed record
            metrics = AggregationMetrics(job_name=job_name, started_at=now)
            self._last_runs[job_name] = metrics
        metrics.completed_at = now
        metrics.duration_seconds = (now - metrics.started_at).total_seconds()
        self._total_runs[job_name] = self._total_runs.get(job_name, 0) + 1
        return metrics

    def record_complete(self, job_name: str, records_scanned: int, partial_failures: int = 0) -> None:
        """Record a successful aggregation run."""
        with self._lock:
            metrics = self._finish(job_name)
            metrics.records_scanned = records_scanned
            metrics.partial_failures = partial_failures
            metrics.succeeded = True

    def record_failure(self, job_name: str, error: str) -> None:
        """Record a failed aggregation run."""
        with self._lock:
            metrics = self._finish(job_name)
            metrics.succeeded = False
            metrics.error = error
            self._total_failures[job_name] = self._total_failures.get(job_name, 0) + 1

    def record_stale_fallback(self, job_name: str) -> None:
        """Record that a failed run was answered from a stale snapshot."""
        with self._lock:
            self._stale_fallbacks[job_name] = self._stale_fallbacks.get(job_name, 0) + 1

    def get_last_run(self, job_name: str) -> Optional[AggregationMetrics]:
        """Get metrics for the last run of a job."""
        with self._lock:
            return self._last_runs.get(job_name)

    def get_all_metrics(self) -> dict:
        """Get all metrics as a dictionary."""
        with self._lock:
            result = {}
            # A process may serve stale snapshots before it ever runs an aggregation
            for job_name in sorted(set(self._last_runs) | set(self._stale_fallbacks)):
                metrics = self._last_runs.get(job_name)
                last_run = None
                if metrics is not None:
                    last_run = {
                        "started_at": metrics.started_at.isoformat(),
                        "completed_at": metrics.completed_at.isoformat() if metrics.completed_at else None,
                        "records_scanned": metrics.records_scanned,
                        "partial_failures": metrics.partial_failures,
                        "succeeded": metrics.succeeded,
                        "error": metrics.error,
                        "duration_seconds": round(metrics.duration_seconds, 1),
                    }
                result[job_name] = {
                    "last_run": last_run,
                    "total_runs": self._total_runs.get(job_name, 0),
                    "total_failures": self._total_failures.get(job_name, 0),
                    "stale_fallbacks": self._stale_fallbacks.get(job_name, 0),
                }
            return result

    def clear(self) -> None:
        with self._lock:
            self._last_runs.clear()
            self._total_runs.clear()
            self._total_failures.clear()
            self._stale_fallbacks.clear()


# Global metrics store
aggregation_metrics = MetricsStore()
