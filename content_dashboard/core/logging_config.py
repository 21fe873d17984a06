"""
Structured logging for the dashboard engine (structlog).

Every event carries the aggregation run context (run_id, space_id) once a run
has bound it, so the page fetches, release lookups and directory calls of one
recompute can be grepped together.

Usage:
    from content_dashboard.core.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Stats computed", total_published=1200, scheduled=4)

Environment:
    DASHBOARD_ENV=production   JSON lines (one event per line)
    LOG_LEVEL=DEBUG            default INFO

JSON output:
    {"event": "Stats computed", "total_published": 1200, "scheduled": 4,
     "run_id": "run_a1b2c3d4e5f6a7b8", "level": "info", "timestamp": "2026-10-19T12:00:00Z"}
"""

import logging
import os
import sys
from typing import Any, MutableMapping, Optional, Union

import structlog

IS_PRODUCTION = os.getenv("DASHBOARD_ENV", "").lower() == "production"
IS_TEST = "pytest" in sys.modules

# Libraries that log every request at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def _resolve_level(level: Union[str, int, None]) -> int:
    if isinstance(level, int):
        return level
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    return getattr(logging, name, logging.INFO)


def _drop_empty_context(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    # Outside a run, run_id / space_id are None
    for key in ("run_id", "space_id"):
        if event_dict.get(key) is None:
            event_dict.pop(key, None)
    return event_dict


def configure_logging(level: Union[str, int, None] = None, json_output: Optional[bool] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Level name or number; defaults to $LOG_LEVEL, then INFO
        json_output: Force JSON (True) or console (False) rendering;
            defaults to JSON only when DASHBOARD_ENV=production
    """
    log_level = _resolve_level(level)
    use_json = IS_PRODUCTION if json_output is None else json_output

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _drop_empty_context,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if use_json:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=not IS_TEST and sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # stdout is reserved for CLI output (summary / --json payload)
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)
    logging.getLogger().setLevel(log_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, log_level))


def bind_log_context(**values: Any) -> None:
    """Attach key/values to every event logged from the current async context."""
    structlog.contextvars.bind_contextvars(**values)


def clear_log_context(*keys: str) -> None:
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger (typically ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


configure_logging()
