"""
Contentful Management API client.

API Endpoints:
- GET /spaces/{space}/environments/{env}/entries - Entries (skip/limit paging, max 1000)
- GET /spaces/{space}/scheduled_actions - Scheduled actions (cursor paging via pages.next)
- GET /spaces/{space}/environments/{env}/releases/{id} - Release with its entity links
- GET /spaces/{space}/users/{id} - Space member lookup
- PUT /spaces/{space}/environments/{env}/entries/{id}/archived - Archive
- DELETE /spaces/{space}/environments/{env}/entries/{id}/published - Unpublish

Errors are mapped onto the dashboard taxonomy:
- timeouts, transport errors, 429 and 5xx -> TransientRepositoryError
- 404 -> NotFoundError
- other 4xx -> PermanentRepositoryError

The client never retries; wrap it in RetryingRepository for that.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import httpx
from pydantic import ValidationError

from content_dashboard.core.config import Settings, settings
from content_dashboard.core.errors import (
    NotFoundError,
    PermanentRepositoryError,
    TransientRepositoryError,
)
from content_dashboard.core.logging_config import get_logger
from content_dashboard.repository.base import EntryPage, EntryQuery
from content_dashboard.schemas import ContentRecord, DirectoryUser, ReleaseGroup, SchedulingRecord

logger = get_logger(__name__)

# CMA hard limits
MAX_PAGE_SIZE = 1000
SCHEDULED_ACTIONS_LIMIT = 500


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("X-Contentful-RateLimit-Reset") or response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class ContentfulRepository:
    """ContentRepository over the Contentful Management API."""

    def __init__(
        self,
        space_id: str,
        environment_id: str = "master",
        token: str = "",
        base_url: str = "https://api.contentful.com",
        page_size: int = MAX_PAGE_SIZE,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not space_id:
            raise ValueError("space_id is required")
        self.space_id = space_id
        self.environment_id = environment_id
        self.page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/vnd.contentful.management.v1+json",
        }
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, app_settings: Optional[Settings] = None) -> "ContentfulRepository":
        s = app_settings or settings
        return cls(
            space_id=s.CONTENTFUL_SPACE_ID,
            environment_id=s.CONTENTFUL_ENVIRONMENT_ID,
            token=s.CONTENTFUL_MANAGEMENT_TOKEN,
            base_url=s.CONTENTFUL_API_BASE,
            page_size=s.PAGE_SIZE,
            timeout=s.REQUEST_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ContentfulRepository":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    @property
    def _space_path(self) -> str:
        return f"{self._base_url}/spaces/{self.space_id}"

    @property
    def _env_path(self) -> str:
        return f"{self._space_path}/environments/{self.environment_id}"

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(
                method, url, params=params, headers={**self._headers, **(headers or {})}
            )
        except httpx.TimeoutException as e:
            raise TransientRepositoryError(f"{operation} timed out: {e}", operation=operation) from e
        except httpx.TransportError as e:
            raise TransientRepositoryError(f"{operation} transport error: {e}", operation=operation) from e

        status = response.status_code
        if status == 429:
            raise TransientRepositoryError(
                f"{operation} rate limited",
                status_code=status,
                operation=operation,
                retry_after=_retry_after(response),
            )
        if status >= 500:
            raise TransientRepositoryError(f"{operation} failed with HTTP {status}", status_code=status, operation=operation)
        if status == 404:
            raise NotFoundError(f"{operation}: resource not found", status_code=status, operation=operation)
        if status >= 400:
            raise PermanentRepositoryError(
                f"{operation} rejected with HTTP {status}: {response.text[:200]}",
                status_code=status,
                operation=operation,
            )

        if status == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise PermanentRepositoryError(f"{operation} returned invalid JSON", status_code=status, operation=operation) from e

    async def fetch_page(self, query: EntryQuery, cursor: Optional[int] = None) -> EntryPage:
        skip = cursor or 0
        params = {**query.to_params(), "skip": skip, "limit": self.page_size}
        data = await self._request("GET", f"{self._env_path}/entries", "fetch_page", params=params)

        items = data.get("items") or []
        try:
            records = [ContentRecord.from_api(item) for item in items]
        except (ValidationError, KeyError) as e:
            raise PermanentRepositoryError(f"fetch_page returned a malformed entry: {e}", operation="fetch_page") from e

        total = data.get("total")
        consumed = skip + len(items)
        next_cursor = None
        if items and (total is None or consumed < total):
            next_cursor = consumed

        logger.debug("Fetched entries page", skip=skip, count=len(records), total=total)
        return EntryPage(records=records, next_cursor=next_cursor, total=total)

    async def fetch_scheduling_records(self, status: str = "scheduled") -> List[SchedulingRecord]:
        url = f"{self._space_path}/scheduled_actions"
        params: Optional[Dict[str, Any]] = {
            "environment.sys.id": self.environment_id,
            "sys.status[in]": status,
            "order": "scheduledFor.datetime",
            "limit": SCHEDULED_ACTIONS_LIMIT,
        }
        records: List[SchedulingRecord] = []
        seen_pages = set()

        while True:
            data = await self._request("GET", url, "fetch_scheduling_records", params=params)
            for item in data.get("items") or []:
                try:
                    records.append(SchedulingRecord.from_api(item))
                except (ValidationError, KeyError, ValueError) as e:
                    raise PermanentRepositoryError(
                        f"fetch_scheduling_records returned a malformed action: {e}",
                        operation="fetch_scheduling_records",
                    ) from e

            next_page = (data.get("pages") or {}).get("next")
            if not next_page or next_page in seen_pages:
                break
            seen_pages.add(next_page)
            # pages.next is a relative link carrying the full query
            if next_page.startswith("?"):
                url = f"{self._space_path}/scheduled_actions{next_page}"
            else:
                url = urljoin(f"{self._base_url}/", next_page)
            params = None

        logger.debug("Fetched scheduling records", status=status, count=len(records))
        return records

    async def fetch_release_group(self, release_id: str) -> ReleaseGroup:
        data = await self._request("GET", f"{self._env_path}/releases/{release_id}", "fetch_release_group")
        try:
            return ReleaseGroup.from_api(data)
        except (ValidationError, KeyError) as e:
            raise PermanentRepositoryError(f"Malformed release {release_id}: {e}", operation="fetch_release_group") from e

    async def fetch_user(self, user_id: str) -> DirectoryUser:
        data = await self._request("GET", f"{self._space_path}/users/{user_id}", "fetch_user")
        try:
            return DirectoryUser.from_api(data)
        except (ValidationError, KeyError) as e:
            raise PermanentRepositoryError(f"Malformed user {user_id}: {e}", operation="fetch_user") from e

    async def _entry_version(self, record_id: str, operation: str) -> int:
        data = await self._request("GET", f"{self._env_path}/entries/{record_id}", operation)
        version = (data.get("sys") or {}).get("version")
        if version is None:
            raise PermanentRepositoryError(f"Entry {record_id} has no version", operation=operation)
        return version

    async def archive_entry(self, record_id: str) -> None:
        version = await self._entry_version(record_id, "archive_entry")
        await self._request(
            "PUT",
            f"{self._env_path}/entries/{record_id}/archived",
            "archive_entry",
            headers={"X-Contentful-Version": str(version)},
        )
        logger.info("Archived entry", record_id=record_id)

    async def unpublish_entry(self, record_id: str) -> None:
        version = await self._entry_version(record_id, "unpublish_entry")
        await self._request(
            "DELETE",
            f"{self._env_path}/entries/{record_id}/published",
            "unpublish_entry",
            headers={"X-Contentful-Version": str(version)},
        )
        logger.info("Unpublished entry", record_id=record_id)
