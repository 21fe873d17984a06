"""
Run context for log correlation.

Every dashboard aggregation gets a run_id so the page fetches, release lookups
and directory calls it fans out to can be correlated. Values live in
contextvars, so tasks spawned with asyncio.gather inherit them, and are also
bound into the structlog context so every event of the run carries them.

Usage:
    set_run_id(generate_run_id())
    set_space_id(repository.space_id)
    try:
        ...
    finally:
        clear_context()
"""

from contextvars import ContextVar
from typing import Optional
import uuid

from content_dashboard.core.logging_config import bind_log_context, clear_log_context

__all__ = [
    "generate_run_id",
    "set_run_id",
    "get_run_id",
    "set_space_id",
    "get_space_id",
    "clear_context",
    "get_context_dict",
]

_run_id: ContextVar[Optional[str]] = ContextVar("run_id", default=None)
_space_id: ContextVar[Optional[str]] = ContextVar("space_id", default=None)


def generate_run_id() -> str:
    """
    Generate a new aggregation run ID.

    Format: run_{16 hex chars}
    Example: run_a1b2c3d4e5f6a7b8
    """
    return f"run_{uuid.uuid4().hex[:16]}"


def set_run_id(run_id: str) -> None:
    _run_id.set(run_id)
    bind_log_context(run_id=run_id)


def get_run_id() -> Optional[str]:
    return _run_id.get()


def set_space_id(space_id: str) -> None:
    """Set the content space being aggregated."""
    _space_id.set(space_id)
    bind_log_context(space_id=space_id)


def get_space_id() -> Optional[str]:
    return _space_id.get()


def clear_context() -> None:
    """Called at the end of a run so the ids do not leak into later events."""
    _run_id.set(None)
    _space_id.set(None)
    clear_log_context("run_id", "space_id")


def get_context_dict() -> dict:
    """Current run context, for enriching error reports."""
    return {
        "run_id": get_run_id(),
        "space_id": get_space_id(),
    }
