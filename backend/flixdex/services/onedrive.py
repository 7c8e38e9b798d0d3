"""OneDrive folder listing over the Microsoft Graph API.

Provides:
- Paginated "list children of folder" calls
- Classification of failures into auth, transient and protocol errors
- Request pacing to stay under Graph throttling limits

The client never retries; callers decide what a failed page means.
"""

from __future__ import annotations

import asyncio
import enum
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from flixdex.core.config import settings
from flixdex.core.logging import get_logger

logger = get_logger(__name__)

# Fields requested for every child entry
SELECT_FIELDS = "id,name,file,folder,size,mimeType,@microsoft.graph.downloadUrl"

DOWNLOAD_URL_KEY = "@microsoft.graph.downloadUrl"
NEXT_LINK_KEY = "@odata.nextLink"


class RequestPacer:
    """Rate limiter for Graph API requests.

    Implements:
    - Minimum delay between requests (prevents burst requests)
    - Per-minute request limiting with sliding window
    """

    def __init__(
        self,
        min_delay: float = 0.1,
        requests_per_minute: int = 600,
    ):
        self.min_delay = min_delay
        self.requests_per_minute = requests_per_minute
        self._last_request: datetime | None = None
        self._request_times: list[datetime] = []
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until it's safe to make a request."""
        async with self._lock:
            now = datetime.now(timezone.utc)

            cutoff = now - timedelta(seconds=60)
            self._request_times = [t for t in self._request_times if t > cutoff]

            if len(self._request_times) >= self.requests_per_minute:
                # Wait until oldest request falls out of window
                oldest = self._request_times[0]
                wait_time = 60 - (now - oldest).total_seconds()
                if wait_time > 0:
                    logger.debug(
                        "rate_pacer_waiting",
                        wait_seconds=round(wait_time, 2),
                        reason="per_minute_limit",
                    )
                    await asyncio.sleep(wait_time)
                    now = datetime.now(timezone.utc)

            if self._last_request and self.min_delay > 0:
                elapsed = (now - self._last_request).total_seconds()
                if elapsed < self.min_delay:
                    await asyncio.sleep(self.min_delay - elapsed)

            self._last_request = datetime.now(timezone.utc)
            self._request_times.append(self._last_request)


# Shared by every scan in the process so concurrent runs pace together
_pacer: RequestPacer | None = None


def get_request_pacer() -> RequestPacer:
    """Get or create the global request pacer."""
    global _pacer
    if _pacer is None:
        _pacer = RequestPacer(
            min_delay=settings.graph_request_delay,
            requests_per_minute=settings.graph_requests_per_minute,
        )
    return _pacer


class RemoteTreeError(Exception):
    """Base exception for remote folder listing errors."""

    pass


class RemoteAuthExpiredError(RemoteTreeError):
    """Raised when the access token is rejected (expired or revoked)."""

    pass


class RemoteTransientError(RemoteTreeError):
    """Raised for network failures, timeouts and 5xx responses."""

    pass


class RemoteRateLimitError(RemoteTransientError):
    """Raised when Graph throttles the caller (HTTP 429)."""

    def __init__(self, message: str = "Graph API rate limit exceeded", retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class RemoteProtocolError(RemoteTreeError):
    """Raised when Graph answers with something we cannot use."""

    pass


class RemoteEntryKind(str, enum.Enum):
    """Kind of a child entry in a folder listing."""

    FOLDER = "folder"
    FILE = "file"


class RemoteEntry(BaseModel):
    """A folder or file returned by a listing call."""

    kind: RemoteEntryKind
    id: str
    name: str = ""
    size: int | None = None
    mime_type: str | None = None
    download_url: str | None = None

    @property
    def is_folder(self) -> bool:
        return self.kind == RemoteEntryKind.FOLDER


class RemotePage(BaseModel):
    """One page of a folder listing."""

    entries: list[RemoteEntry]
    next_cursor: str | None = None


class OneDriveClient:
    """Lists OneDrive folder children through Microsoft Graph."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        page_size: int | None = None,
        timeout: float | None = None,
        pacer: RequestPacer | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Graph API base URL. Defaults to settings.
            page_size: Children requested per page. Defaults to settings.
            timeout: Per-request timeout in seconds. Defaults to settings.
            pacer: Request pacer. Defaults to the process-wide pacer.
            http_client: Pre-built httpx client (tests inject a mock transport).
        """
        self.base_url = (base_url or settings.graph_api_base).rstrip("/")
        self.page_size = page_size or settings.graph_page_size
        self.timeout = timeout or settings.graph_request_timeout
        self._pacer = pacer
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def children_url(self, folder_id: str) -> str:
        """Build the children-listing URL for a drive item."""
        return f"{self.base_url}/me/drive/items/{quote(folder_id, safe='')}/children"

    async def list_children(
        self,
        access_token: str,
        folder_id: str,
        cursor: str | None = None,
    ) -> RemotePage:
        """List one page of a folder's children.

        Args:
            access_token: Bearer token for the user's drive.
            folder_id: Provider id of the folder to list.
            cursor: Next link from the previous page, requested verbatim.

        Returns:
            RemotePage with the entries and the next cursor (None when the
            listing is exhausted).

        Raises:
            RemoteAuthExpiredError: If the token is rejected.
            RemoteTransientError: On network errors, 429 or 5xx.
            RemoteProtocolError: On any other unusable response.
        """
        client = await self._get_client()
        pacer = self._pacer or get_request_pacer()
        await pacer.acquire()

        headers = {"Authorization": f"Bearer {access_token}"}

        try:
            if cursor:
                response = await client.get(cursor, headers=headers)
            else:
                response = await client.get(
                    self.children_url(folder_id),
                    headers=headers,
                    params={"$select": SELECT_FIELDS, "$top": str(self.page_size)},
                )
        except httpx.InvalidURL as e:
            raise RemoteProtocolError(
                f"Next link for folder {folder_id} is not a usable URL: {e}"
            ) from e
        except httpx.HTTPError as e:
            raise RemoteTransientError(
                f"Request for folder {folder_id} failed: {e.__class__.__name__}: {e}"
            ) from e

        self._raise_for_status(response, folder_id)
        return self._parse_page(response, folder_id)

    def _raise_for_status(self, response: httpx.Response, folder_id: str) -> None:
        """Map a non-success status to the matching RemoteTreeError."""
        status = response.status_code
        if 200 <= status < 300:
            return

        if status == 401:
            raise RemoteAuthExpiredError(
                f"Access token rejected while listing folder {folder_id}"
            )

        if status == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            raise RemoteRateLimitError(
                f"Rate limited while listing folder {folder_id}",
                retry_after=retry_after,
            )

        if status >= 500:
            raise RemoteTransientError(
                f"Graph API returned {status} for folder {folder_id}"
            )

        raise RemoteProtocolError(
            f"Graph API returned {status} for folder {folder_id}: {_error_code(response)}"
        )

    def _parse_page(self, response: httpx.Response, folder_id: str) -> RemotePage:
        """Turn a listing response body into a RemotePage."""
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteProtocolError(
                f"Listing for folder {folder_id} is not valid JSON"
            ) from e

        if not isinstance(data, dict) or not isinstance(data.get("value"), list):
            raise RemoteProtocolError(
                f"Listing for folder {folder_id} has no 'value' array"
            )

        next_cursor = data.get(NEXT_LINK_KEY)
        if next_cursor is not None and not isinstance(next_cursor, str):
            raise RemoteProtocolError(
                f"Listing for folder {folder_id} has a non-string next link"
            )
        if next_cursor and not next_cursor.startswith(("https://", "http://")):
            raise RemoteProtocolError(
                f"Listing for folder {folder_id} has a next link that is not an http(s) URL"
            )

        entries: list[RemoteEntry] = []
        for raw in data["value"]:
            entry = self._parse_entry(raw, folder_id)
            if entry is not None:
                entries.append(entry)

        return RemotePage(entries=entries, next_cursor=next_cursor or None)

    def _parse_entry(self, raw: Any, folder_id: str) -> RemoteEntry | None:
        """Parse one child item; returns None for items that are neither folders nor files."""
        if not isinstance(raw, dict) or not isinstance(raw.get("id"), str):
            raise RemoteProtocolError(
                f"Listing for folder {folder_id} contains an item without an id"
            )

        name = raw.get("name") or ""

        try:
            if "folder" in raw:
                return RemoteEntry(kind=RemoteEntryKind.FOLDER, id=raw["id"], name=name)

            if "file" in raw:
                file_facet = raw.get("file") or {}
                mime_type = file_facet.get("mimeType") if isinstance(file_facet, dict) else None
                size = raw.get("size")
                return RemoteEntry(
                    kind=RemoteEntryKind.FILE,
                    id=raw["id"],
                    name=name,
                    size=size if isinstance(size, int) else None,
                    mime_type=mime_type or raw.get("mimeType"),
                    download_url=raw.get(DOWNLOAD_URL_KEY),
                )
        except ValidationError as e:
            raise RemoteProtocolError(
                f"Listing for folder {folder_id} has a malformed item {raw['id']}: "
                f"{e.error_count()} invalid field(s)"
            ) from e

        # Packages (OneNote notebooks etc.) and other facets
        logger.debug("remote_entry_skipped", folder_id=folder_id, item_id=raw["id"])
        return None


def _parse_retry_after(value: str | None) -> int | None:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        return max(0, int(value))
    except ValueError:
        return None


def _error_code(response: httpx.Response) -> str:
    """Best-effort extraction of the Graph error code from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return "unknown"
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("code", "unknown"))
    return "unknown"
