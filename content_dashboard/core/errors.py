"""
Error taxonomy and unified error capture.

Taxonomy:
- TransientRepositoryError: timeouts, rate limits, 5xx. Retried by the
  caller-side retry policy, then surfaced.
- PermanentRepositoryError / NotFoundError: malformed queries, missing
  resources. Surfaced immediately, never retried.
- Partial-resolution failures (one release, one user): isolated with
  error_boundary() and logged at warning level; the batch continues.
- AggregationTimeoutError: the aggregation exceeded its deadline. The cache
  layer treats it like any other DashboardError and falls back to stale data.

Usage:
    # Capture an exception with run context
    capture_exception(exc, context={"release_id": "abc"})

    # Isolate a partial failure
    with error_boundary("resolve_release", RepositoryError, release_id=release_id):
        release = await repository.fetch_release_group(release_id)
"""

from typing import Optional, Any, Dict, Tuple, Type
from datetime import datetime, timezone
from contextlib import contextmanager
import structlog

from content_dashboard.core.context import get_context_dict

logger = structlog.get_logger(__name__)

__all__ = [
    "DashboardError",
    "RepositoryError",
    "TransientRepositoryError",
    "PermanentRepositoryError",
    "NotFoundError",
    "AggregationTimeoutError",
    "capture_exception",
    "capture_message",
    "ErrorHandler",
    "error_boundary",
]


class DashboardError(Exception):
    """Base class for every typed failure the dashboard engine raises."""


class RepositoryError(DashboardError):
    """A content repository call failed."""

    retryable: bool = False

    def __init__(self, message: str, status_code: Optional[int] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation


class TransientRepositoryError(RepositoryError):
    """Timeouts, rate limits and server errors. Safe to retry."""

    retryable = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        operation: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, status_code=status_code, operation=operation)
        self.retry_after = retry_after


class PermanentRepositoryError(RepositoryError):
    """Malformed queries, auth failures and other non-retryable errors."""


class NotFoundError(PermanentRepositoryError):
    """The requested entry, release or user does not exist."""


class AggregationTimeoutError(DashboardError):
    """The aggregation did not finish before its deadline."""

    def __init__(self, deadline_seconds: float):
        super().__init__(f"Aggregation exceeded deadline of {deadline_seconds:.1f}s")
        self.deadline_seconds = deadline_seconds


def capture_exception(
    exc: BaseException,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error",
) -> None:
    """
    Log an exception with run context.

    Args:
        exc: Exception to capture
        context: Additional context dict (e.g., {"release_id": "abc"})
        level: Severity level (debug, info, warning, error)
    """
    enriched_context = {
        **get_context_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "error_type": type(exc).__name__,
        "error": str(exc),
        **(context or {}),
    }

    log_func = getattr(logger, level, logger.error)
    if level == "error":
        log_func("Exception captured", exc_info=exc, **enriched_context)
    else:
        # Partial failures are expected; keep them to one line
        log_func("Exception captured", **enriched_context)


def capture_message(
    message: str,
    level: str = "info",
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log a non-exception event with run context.

    Useful for stale-data fallbacks and other degraded-but-working paths.
    """
    enriched_context = {
        **get_context_dict(),
        **(context or {}),
    }
    log_func = getattr(logger, level, logger.info)
    log_func(message, **enriched_context)


class ErrorHandler:
    """
    Context manager that captures and suppresses a given set of exception types.

    Anything not listed in ``suppress`` is captured and re-raised, so a
    programming error never disappears behind a partial-failure boundary.

    Usage:
        with ErrorHandler("resolve_release", suppress=(RepositoryError,), context={"release_id": rid}):
            release = await repository.fetch_release_group(rid)

    Args:
        operation: Name of the operation (logged as "operation")
        suppress: Exception types to swallow after logging
        context: Additional context dict
        level: Log level used for suppressed exceptions
    """

    def __init__(
        self,
        operation: str,
        suppress: Tuple[Type[BaseException], ...] = (),
        context: Optional[Dict[str, Any]] = None,
        level: str = "warning",
    ):
        self.operation = operation
        self.suppress = suppress
        self.context = context or {}
        self.level = level
        self.error: Optional[BaseException] = None

    def __enter__(self) -> "ErrorHandler":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_val is None:
            return False

        suppressed = bool(self.suppress) and isinstance(exc_val, self.suppress)
        capture_exception(
            exc_val,
            context={"operation": self.operation, **self.context},
            level=self.level if suppressed else "error",
        )
        if suppressed:
            self.error = exc_val
        return suppressed


@contextmanager
def error_boundary(operation: str, *suppress: Type[BaseException], **context):
    """
    Simplified error boundary for isolating partial failures.

    Usage:
        with error_boundary("resolve_user", RepositoryError, user_id=user_id) as boundary:
            user = await repository.fetch_user(user_id)
        if boundary.error:
            ...
    """
    handler = ErrorHandler(operation, suppress=tuple(suppress), context=context)
    with handler:
        yield handler
