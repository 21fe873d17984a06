"""
Test fixtures for content-dashboard tests.

Provides a frozen clock, test settings and metrics isolation. Record,
scheduling and user factories live in factories.py.
All tests run against 2026-10-19 12:00 UTC unless they move the clock.
"""

from datetime import datetime

import pytest

from content_dashboard.core.clock import FrozenClock
from content_dashboard.core.config import Settings
from content_dashboard.core.metrics import aggregation_metrics
from factories import NOW


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def test_settings() -> Settings:
    """Settings with no aggregation deadline and default TTLs."""
    return Settings(
        CONTENTFUL_SPACE_ID="space-test",
        CONTENTFUL_MANAGEMENT_TOKEN="token-test",
        AGGREGATION_DEADLINE_SECONDS=0,
        MEMO_TTL_SECONDS=300,
        SNAPSHOT_TTL_SECONDS=1800,
        DIRECTORY_TTL_SECONDS=300,
        ID_BATCH_SIZE=100,
        DISPLAY_LIST_LIMIT=100,
    )


@pytest.fixture(autouse=True)
def clear_metrics():
    """Reset the process-wide metrics store between tests."""
    aggregation_metrics.clear()
    yield
    aggregation_metrics.clear()
