from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from content_dashboard.core.clock import ensure_utc


class CamelModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the API into aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(date_parser.isoparse(str(value)))


def _link_id(link: Any) -> Optional[str]:
    # {"sys": {"type": "Link", "linkType": "User", "id": "abc"}}
    if not isinstance(link, dict):
        return None
    return (link.get("sys") or {}).get("id")


class ContentRecord(CamelModel):
    id: str
    content_type_id: str
    created_at: datetime
    updated_at: datetime
    first_published_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    created_by_id: Optional[str] = None
    updated_by_id: Optional[str] = None
    published_by_id: Optional[str] = None

    @field_validator("created_at", "updated_at", "first_published_at", "published_at", mode="before")
    @classmethod
    def _as_utc(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    @model_validator(mode="after")
    def _check_publish_order(self) -> "ContentRecord":
        if self.published_at is not None:
            if self.first_published_at is None:
                raise ValueError(f"Record {self.id} has publishedAt without firstPublishedAt")
            if self.first_published_at > self.published_at:
                raise ValueError(f"Record {self.id} has firstPublishedAt after publishedAt")
        return self

    @property
    def is_published(self) -> bool:
        return self.published_at is not None

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "ContentRecord":
        """Build a record from an entry payload (only the ``sys`` block is read)."""
        sys = item.get("sys") or {}
        return cls(
            id=sys["id"],
            content_type_id=_link_id(sys.get("contentType")) or "unknown",
            created_at=sys.get("createdAt"),
            updated_at=sys.get("updatedAt"),
            first_published_at=sys.get("firstPublishedAt"),
            published_at=sys.get("publishedAt"),
            created_by_id=_link_id(sys.get("createdBy")),
            updated_by_id=_link_id(sys.get("updatedBy")),
            published_by_id=_link_id(sys.get("publishedBy")),
        )


class SchedulingStatus(str, Enum):
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: str) -> "SchedulingStatus":
        # The API spells it "canceled"
        if value == "canceled":
            return cls.CANCELLED
        return cls(value)


class TargetKind(str, Enum):
    SINGLE_RECORD = "single_record"
    RELEASE_GROUP = "release_group"


class SchedulingRecord(CamelModel):
    id: str
    status: SchedulingStatus
    action: str
    scheduled_for: datetime
    timezone: Optional[str] = None
    target_kind: TargetKind
    target_id: str

    @field_validator("scheduled_for", mode="before")
    @classmethod
    def _as_utc(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    def is_effective(self, now: datetime) -> bool:
        """Only future publish actions that are still scheduled count."""
        return (
            self.status == SchedulingStatus.SCHEDULED
            and self.action == "publish"
            and self.scheduled_for > ensure_utc(now)
        )

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "SchedulingRecord":
        sys = item.get("sys") or {}
        entity_sys = (item.get("entity") or {}).get("sys") or {}
        scheduled_for = item.get("scheduledFor") or {}
        link_type = entity_sys.get("linkType")
        return cls(
            id=sys["id"],
            status=SchedulingStatus.parse(sys.get("status", "scheduled")),
            action=item.get("action", ""),
            scheduled_for=scheduled_for.get("datetime"),
            timezone=scheduled_for.get("timezone"),
            target_kind=TargetKind.RELEASE_GROUP if link_type == "Release" else TargetKind.SINGLE_RECORD,
            target_id=entity_sys["id"],
        )


class ReleaseGroup(CamelModel):
    id: str
    title: str = ""
    member_record_ids: frozenset[str] = frozenset()
    last_updated_at: Optional[datetime] = None
    last_updated_by_id: Optional[str] = None

    @field_validator("last_updated_at", mode="before")
    @classmethod
    def _as_utc(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "ReleaseGroup":
        sys = item.get("sys") or {}
        members = set()
        for link in (item.get("entities") or {}).get("items") or []:
            link_sys = link.get("sys") or {}
            # Releases may also bundle assets; only entries are content records
            if link_sys.get("linkType", "Entry") == "Entry" and link_sys.get("id"):
                members.add(link_sys["id"])
        return cls(
            id=sys["id"],
            title=item.get("title") or "",
            member_record_ids=frozenset(members),
            last_updated_at=sys.get("updatedAt"),
            last_updated_by_id=_link_id(sys.get("updatedBy")),
        )


class DirectoryUser(CamelModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        if self.email:
            return self.email
        return self.id

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "DirectoryUser":
        return cls(
            id=(item.get("sys") or {})["id"],
            first_name=item.get("firstName"),
            last_name=item.get("lastName"),
            email=item.get("email"),
        )


class MonthBucket(CamelModel):
    month_key: str  # YYYY-MM
    count: int
    percent_change: float = 0.0


class ContentStats(CamelModel):
    total_published: int = 0
    percent_change: float = 0.0  # first publishes, current vs previous calendar month
    scheduled_count: int = 0
    recently_published_count: int = 0
    needs_update_count: int = 0
    previous_month_published: int = 0
    current_month_published: int = 0
    average_time_to_publish: float = 0.0  # days


class TrendSeries(CamelModel):
    new: List[MonthBucket] = Field(default_factory=list)
    updated: List[MonthBucket] = Field(default_factory=list)


class MultiSeries(CamelModel):
    """Several monthly series over one shared month range (one per legend label)."""

    months: List[str] = Field(default_factory=list)
    keys: List[str] = Field(default_factory=list)
    series: Dict[str, List[MonthBucket]] = Field(default_factory=dict)

    def rows(self) -> List[Dict[str, Any]]:
        """Chart rows: ``{"date": "2026-10", "blogPost": 3, ...}``."""
        counts = {key: {b.month_key: b.count for b in self.series.get(key, [])} for key in self.keys}
        rows = []
        for month in self.months:
            row: Dict[str, Any] = {"date": month}
            for key in self.keys:
                row[key] = counts[key].get(month, 0)
            rows.append(row)
        return rows


class MultiSeriesPair(CamelModel):
    new: MultiSeries = Field(default_factory=MultiSeries)
    updated: MultiSeries = Field(default_factory=MultiSeries)


class ChartSeries(CamelModel):
    monthly: TrendSeries = Field(default_factory=TrendSeries)
    per_content_type: MultiSeriesPair = Field(default_factory=MultiSeriesPair)
    per_author: MultiSeriesPair = Field(default_factory=MultiSeriesPair)


class ScheduledRelease(CamelModel):
    id: str
    title: str
    scheduled_for: datetime
    item_count: int
    updated_at: Optional[datetime] = None
    updated_by: str = "Unknown"


class DashboardSnapshot(CamelModel):
    computed_at: datetime
    request_signature: str
    stats: ContentStats
    chart_series: ChartSeries
    scheduled_entities: List[ContentRecord] = Field(default_factory=list)
    recently_published_entities: List[ContentRecord] = Field(default_factory=list)
    stale_entities: List[ContentRecord] = Field(default_factory=list)
    orphaned_entities: List[ContentRecord] = Field(default_factory=list)
    scheduled_releases: List[ScheduledRelease] = Field(default_factory=list)
    author_names: Dict[str, str] = Field(default_factory=dict)


class ResultState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"


class DashboardResult(CamelModel):
    snapshot: DashboardSnapshot
    state: ResultState = ResultState.FRESH
    error: Optional[str] = None  # Why the stale snapshot was served

    @property
    def stale(self) -> bool:
        return self.state == ResultState.STALE


class BulkActionResult(CamelModel):
    succeeded: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)  # record id -> error message
