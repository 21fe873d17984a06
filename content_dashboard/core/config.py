"""
Configuration for the content dashboard.

Two layers:
- Settings: process-level settings read from the environment / .env
  (credentials, page sizes, TTLs, deadlines).
- DashboardConfig: the per-dashboard options an editor can change (windows,
  tracked/excluded content types, default chart range). Invalid values fall
  back silently to defaults so a bad option never breaks the dashboard.

The engine never reads a global key-value store for DashboardConfig; it asks
an injected ConfigProvider.
"""

import json
import re
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Protocol

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from content_dashboard.core.logging_config import get_logger

load_dotenv()

logger = get_logger(__name__)

DEFAULT_RECENTLY_PUBLISHED_DAYS = 7
DEFAULT_NEEDS_UPDATE_MONTHS = 6
DEFAULT_TIME_TO_PUBLISH_DAYS = 30

_MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class Settings(BaseSettings):
    PROJECT_NAME: str = "Content Dashboard"

    # Contentful Management API
    CONTENTFUL_SPACE_ID: str = ""  # Required for remote runs
    CONTENTFUL_ENVIRONMENT_ID: str = "master"
    CONTENTFUL_MANAGEMENT_TOKEN: str = ""
    CONTENTFUL_API_BASE: str = "https://api.contentful.com"

    # Repository paging
    PAGE_SIZE: int = 1000  # Max entries per page (CMA hard limit)
    ID_BATCH_SIZE: int = 100  # Max ids per sys.id[in] filter
    DISPLAY_LIST_LIMIT: int = 100  # Rows per recently-published / stale table
    REQUEST_TIMEOUT_SECONDS: float = 15.0

    # Caller-side retry policy
    RETRY_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 1.0
    RETRY_MAX_DELAY_SECONDS: float = 30.0

    # Cache tiers
    MEMO_TTL_SECONDS: int = 300  # 5 min request-memo tier
    SNAPSHOT_TTL_SECONDS: int = 1800  # 30 min snapshot tier
    DIRECTORY_TTL_SECONDS: int = 300  # 5 min author name cache
    SNAPSHOT_KEY: str = "content-dashboard"
    SNAPSHOT_DIR: str = ".cache/content-dashboard"

    # Aggregation deadline (0 disables)
    AGGREGATION_DEADLINE_SECONDS: float = 120.0

    # Dashboard option defaults (overridable per install via DASHBOARD_CONFIG_PATH)
    DASHBOARD_CONFIG_PATH: str = ""
    RECENTLY_PUBLISHED_DAYS: int = DEFAULT_RECENTLY_PUBLISHED_DAYS
    NEEDS_UPDATE_MONTHS: int = DEFAULT_NEEDS_UPDATE_MONTHS
    TIME_TO_PUBLISH_DAYS: int = DEFAULT_TIME_TO_PUBLISH_DAYS
    TRACKED_CONTENT_TYPES: str = ""  # Comma-separated content type ids
    EXCLUDED_CONTENT_TYPES: str = ""  # Comma-separated content type ids
    DEFAULT_TIME_RANGE: str = "past-year"
    SHOW_UPCOMING_RELEASES: bool = True

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()


class TimeRange(str, Enum):
    """Chart time range."""

    ALL = "all"
    PAST_YEAR = "past-year"
    PAST_6_MONTHS = "past-6-months"

    @classmethod
    def parse(cls, value: Any) -> Optional["TimeRange"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        # Older installs stored "year" / "6months"
        legacy = {"year": cls.PAST_YEAR, "6months": cls.PAST_6_MONTHS}
        if normalized in legacy:
            return legacy[normalized]
        try:
            return cls(normalized)
        except ValueError:
            return None


class DashboardConfig(BaseModel):
    """Dashboard options. Every field falls back to its default when invalid."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    recently_published_days: int = DEFAULT_RECENTLY_PUBLISHED_DAYS
    needs_update_months: int = DEFAULT_NEEDS_UPDATE_MONTHS
    time_to_publish_days: int = DEFAULT_TIME_TO_PUBLISH_DAYS
    tracked_content_types: tuple[str, ...] = ()
    excluded_content_types: tuple[str, ...] = ()
    default_time_range: TimeRange = TimeRange.PAST_YEAR
    show_upcoming_releases: bool = True
    chart_start_month: Optional[str] = None  # "YYYY-MM", used when there is no data

    @field_validator("recently_published_days", "needs_update_months", "time_to_publish_days", mode="before")
    @classmethod
    def _positive_int_or_default(cls, value: Any, info: ValidationInfo) -> int:
        default = cls.model_fields[info.field_name].default
        if isinstance(value, bool) or value is None:
            return default
        try:
            number = int(value)
        except (TypeError, ValueError):
            return default
        if number <= 0:
            return default
        return number

    @field_validator("tracked_content_types", "excluded_content_types", mode="before")
    @classmethod
    def _id_list_or_empty(cls, value: Any) -> tuple[str, ...]:
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple, set, frozenset)):
            return ()
        seen: dict[str, None] = {}
        for item in value:
            if isinstance(item, str) and item.strip():
                seen[item.strip()] = None
        return tuple(seen)

    @field_validator("default_time_range", mode="before")
    @classmethod
    def _time_range_or_default(cls, value: Any) -> TimeRange:
        return TimeRange.parse(value) or TimeRange.PAST_YEAR

    @field_validator("show_upcoming_releases", mode="before")
    @classmethod
    def _bool_or_default(cls, value: Any) -> bool:
        return value if isinstance(value, bool) else True

    @field_validator("chart_start_month", mode="before")
    @classmethod
    def _month_key_or_none(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and _MONTH_KEY_RE.match(value.strip()):
            return value.strip()
        return None

    @classmethod
    def from_mapping(cls, data: Any) -> "DashboardConfig":
        """Build a config from loosely-typed stored data (anything non-dict -> defaults)."""
        if not isinstance(data, dict):
            return cls()
        return cls.model_validate(data)

    def signature_params(self) -> dict[str, Any]:
        """Parameters that change the computed dashboard (the request-memo key)."""
        return {
            "recently_published_days": self.recently_published_days,
            "needs_update_months": self.needs_update_months,
            "time_to_publish_days": self.time_to_publish_days,
            "tracked_content_types": sorted(self.tracked_content_types),
            "excluded_content_types": sorted(self.excluded_content_types),
            "default_time_range": self.default_time_range.value,
            "show_upcoming_releases": self.show_upcoming_releases,
            "chart_start_month": self.chart_start_month,
        }


class ConfigProvider(Protocol):
    """Port the dashboard service reads its options through."""

    def get_config(self) -> DashboardConfig: ...


class StaticConfigProvider:
    def __init__(self, config: Optional[DashboardConfig] = None):
        self._config = config or DashboardConfig()

    def get_config(self) -> DashboardConfig:
        return self._config


class SettingsConfigProvider:
    """Dashboard options taken from process settings (environment / .env)."""

    def __init__(self, app_settings: Optional[Settings] = None):
        self._settings = app_settings or settings

    def get_config(self) -> DashboardConfig:
        s = self._settings
        return DashboardConfig(
            recently_published_days=s.RECENTLY_PUBLISHED_DAYS,
            needs_update_months=s.NEEDS_UPDATE_MONTHS,
            time_to_publish_days=s.TIME_TO_PUBLISH_DAYS,
            tracked_content_types=s.TRACKED_CONTENT_TYPES,
            excluded_content_types=s.EXCLUDED_CONTENT_TYPES,
            default_time_range=s.DEFAULT_TIME_RANGE,
            show_upcoming_releases=s.SHOW_UPCOMING_RELEASES,
        )


class JsonFileConfigProvider:
    """
    Read-only provider over a JSON document of dashboard options.

    Accepts the camelCase keys older installs stored
    (``{"needsUpdateMonths": 6, "excludedContentTypes": [...]}``).
    A missing or corrupt file yields the fallback config.
    """

    def __init__(self, path: str | Path, fallback: Optional[ConfigProvider] = None):
        self._path = Path(path)
        self._fallback = fallback or StaticConfigProvider()

    def get_config(self) -> DashboardConfig:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return self._fallback.get_config()
        except UnicodeDecodeError as e:
            logger.warning("Dashboard config is not valid UTF-8, using defaults", path=str(self._path), error=str(e))
            return self._fallback.get_config()
        except OSError as e:
            logger.warning("Dashboard config unreadable, using defaults", path=str(self._path), error=str(e))
            return self._fallback.get_config()

        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning("Dashboard config is not valid JSON, using defaults", path=str(self._path), error=str(e))
            return self._fallback.get_config()

        return DashboardConfig.from_mapping(data)


def build_config_provider(app_settings: Optional[Settings] = None) -> ConfigProvider:
    """Pick the provider for this process: JSON file when configured, else settings."""
    s = app_settings or settings
    env_provider = SettingsConfigProvider(s)
    if s.DASHBOARD_CONFIG_PATH:
        return JsonFileConfigProvider(s.DASHBOARD_CONFIG_PATH, fallback=env_provider)
    return env_provider
