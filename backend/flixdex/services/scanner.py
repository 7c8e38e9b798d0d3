"""Drive scanning engine.

Walks a remote folder tree depth-first and catalogs every file the media
classifier accepts. The walk keeps an explicit stack of pending folder
ids, so tree depth never turns into call-stack depth, and there is no
cap on depth or item count.

Failure policy:
- An expired or rejected token aborts the whole run. Items already
  written stay in the catalog.
- A transient failure is retried a bounded number of times with
  backoff. If it keeps failing, or the response is unusable, the rest
  of that folder's listing is abandoned and the walk moves on to the
  folders already pending.
- A failed catalog write skips that item only.

Each accepted item is committed as soon as it is written, so a client
polling the catalog sees items appear in discovery order.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flixdex.core.config import settings
from flixdex.core.logging import get_logger
from flixdex.db.session import async_session_maker
from flixdex.services.catalog import CatalogService
from flixdex.services.media_classifier import is_media
from flixdex.services.onedrive import (
    OneDriveClient,
    RemoteAuthExpiredError,
    RemoteEntry,
    RemotePage,
    RemoteProtocolError,
    RemoteRateLimitError,
    RemoteTransientError,
)

logger = get_logger(__name__)

RETRY_JITTER = 0.3  # 30% jitter

# Keep the error list on a run record readable
MAX_RECORDED_ERRORS = 50


class ScanResult(BaseModel):
    """Counters for one scan run."""

    folders_scanned: int = 0
    folders_failed: int = 0
    files_seen: int = 0
    items_found: int = 0
    items_added: int = 0
    items_failed: int = 0
    errors: list[str] = Field(default_factory=list)

    def record_error(self, message: str) -> None:
        if len(self.errors) < MAX_RECORDED_ERRORS:
            self.errors.append(message)


class ScanAbortedError(Exception):
    """Raised when a run must stop because the access token is no longer valid."""

    def __init__(self, message: str, result: ScanResult):
        super().__init__(message)
        self.result = result


class ScanCanceledError(Exception):
    """Raised when a run stops because cancellation was requested."""

    def __init__(self, result: ScanResult):
        super().__init__("Scan canceled")
        self.result = result


ProgressCallback = Callable[[ScanResult], Awaitable[None]]


class ScanOrchestrator:
    """Recursive traversal of a remote folder tree into the catalog."""

    def __init__(
        self,
        client: OneDriveClient,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        page_retries: int | None = None,
        retry_base_delay: float | None = None,
        retry_max_delay: float | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            client: Remote tree client used to list folders.
            session_factory: Session factory for catalog writes.
            page_retries: Retries of a transient page failure. Defaults to settings.
            retry_base_delay: Base backoff delay in seconds. Defaults to settings.
            retry_max_delay: Maximum backoff delay in seconds. Defaults to settings.
        """
        self.client = client
        self.session_factory = session_factory or async_session_maker
        self.page_retries = (
            settings.scan_page_retries if page_retries is None else page_retries
        )
        self.retry_base_delay = (
            settings.scan_retry_base_delay if retry_base_delay is None else retry_base_delay
        )
        self.retry_max_delay = (
            settings.scan_retry_max_delay if retry_max_delay is None else retry_max_delay
        )

    async def run(
        self,
        access_token: str,
        *,
        user_id: str,
        folder_id: str,
        root_provider_folder_id: str,
        cancel_event: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ScanResult:
        """Scan a remote folder tree and catalog its media files.

        Args:
            access_token: Bearer token borrowed for this run only.
            user_id: Owner of the cataloged items.
            folder_id: Library folder registration the items belong to.
            root_provider_folder_id: Provider id of the folder to start from.
            cancel_event: Optional event; when set the run stops at the next page.
            on_progress: Optional coroutine called after every page.

        Returns:
            ScanResult for a run that walked the whole reachable tree.

        Raises:
            ScanAbortedError: If the access token was rejected.
            ScanCanceledError: If cancel_event was set.
        """
        result = ScanResult()
        pending: list[str] = [root_provider_folder_id]
        visited: set[str] = set()

        logger.info(
            "scan_started",
            user_id=user_id,
            folder_id=folder_id,
            root_provider_folder_id=root_provider_folder_id,
        )

        async with self.session_factory() as db:
            catalog = CatalogService(db)

            while pending:
                remote_folder_id = pending.pop()
                if remote_folder_id in visited:
                    continue
                visited.add(remote_folder_id)

                subfolders = await self._scan_folder(
                    db,
                    catalog,
                    access_token,
                    remote_folder_id,
                    user_id=user_id,
                    folder_id=folder_id,
                    result=result,
                    cancel_event=cancel_event,
                    on_progress=on_progress,
                )

                # Reversed so the first subfolder discovered is visited next
                pending.extend(reversed(subfolders))

        logger.info(
            "scan_finished",
            user_id=user_id,
            folder_id=folder_id,
            folders_scanned=result.folders_scanned,
            folders_failed=result.folders_failed,
            items_found=result.items_found,
            items_added=result.items_added,
        )
        return result

    async def _scan_folder(
        self,
        db: AsyncSession,
        catalog: CatalogService,
        access_token: str,
        remote_folder_id: str,
        *,
        user_id: str,
        folder_id: str,
        result: ScanResult,
        cancel_event: asyncio.Event | None,
        on_progress: ProgressCallback | None,
    ) -> list[str]:
        """List every page of one folder, cataloging files.

        Returns:
            Provider ids of the subfolders discovered in this folder.
        """
        subfolders: list[str] = []
        cursor: str | None = None

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise ScanCanceledError(result)

            try:
                page = await self._fetch_page(
                    access_token,
                    remote_folder_id,
                    cursor,
                    result=result,
                    cancel_event=cancel_event,
                )
            except RemoteAuthExpiredError as e:
                logger.warning(
                    "scan_aborted_auth_expired",
                    user_id=user_id,
                    folder_id=folder_id,
                    remote_folder_id=remote_folder_id,
                )
                result.record_error(str(e))
                raise ScanAbortedError(str(e), result) from e
            except (RemoteTransientError, RemoteProtocolError) as e:
                result.folders_failed += 1
                result.record_error(f"{remote_folder_id}: {e}")
                logger.warning(
                    "scan_folder_abandoned",
                    user_id=user_id,
                    folder_id=folder_id,
                    remote_folder_id=remote_folder_id,
                    error_type=e.__class__.__name__,
                    error=str(e),
                )
                return subfolders

            for entry in page.entries:
                if entry.is_folder:
                    subfolders.append(entry.id)
                    continue

                result.files_seen += 1
                if not is_media(entry.mime_type, entry.name):
                    continue

                result.items_found += 1
                await self._store_item(db, catalog, user_id, folder_id, entry, result)

            if on_progress is not None:
                await on_progress(result)

            if not page.next_cursor:
                break
            cursor = page.next_cursor

        result.folders_scanned += 1
        return subfolders

    async def _fetch_page(
        self,
        access_token: str,
        remote_folder_id: str,
        cursor: str | None,
        *,
        result: ScanResult,
        cancel_event: asyncio.Event | None,
    ) -> RemotePage:
        """Fetch one listing page, retrying transient failures with backoff.

        Raises:
            ScanCanceledError: If cancel_event is set during a backoff wait.
        """
        for attempt in range(self.page_retries + 1):
            try:
                return await self.client.list_children(access_token, remote_folder_id, cursor)
            except RemoteTransientError as e:
                if attempt >= self.page_retries:
                    raise

                delay = self._retry_delay(attempt, e)
                logger.warning(
                    "scan_page_retry",
                    remote_folder_id=remote_folder_id,
                    attempt=attempt + 1,
                    max_retries=self.page_retries,
                    delay_seconds=round(delay, 1),
                    error=str(e),
                )
                if await self._wait_or_cancel(delay, cancel_event):
                    raise ScanCanceledError(result) from e

        raise RemoteTransientError(f"Retries exhausted for folder {remote_folder_id}")

    async def _wait_or_cancel(self, delay: float, cancel_event: asyncio.Event | None) -> bool:
        """Sleep for ``delay`` seconds; returns True if cancel_event was set meanwhile."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    def _retry_delay(self, attempt: int, error: RemoteTransientError) -> float:
        """Backoff delay before retry number ``attempt + 1``."""
        if isinstance(error, RemoteRateLimitError) and error.retry_after is not None:
            return min(float(error.retry_after), self.retry_max_delay)

        delay = min(self.retry_base_delay * (2 ** attempt), self.retry_max_delay)
        jitter = delay * RETRY_JITTER * (2 * random.random() - 1)
        return max(0.0, delay + jitter)

    async def _store_item(
        self,
        db: AsyncSession,
        catalog: CatalogService,
        user_id: str,
        folder_id: str,
        entry: RemoteEntry,
        result: ScanResult,
    ) -> None:
        """Write one media item; a storage failure skips the item."""
        try:
            inserted = await catalog.add_media_item(user_id, folder_id, entry)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            result.items_failed += 1
            result.record_error(f"{entry.id}: {e.__class__.__name__}")
            logger.error(
                "scan_item_store_failed",
                user_id=user_id,
                folder_id=folder_id,
                provider_item_id=entry.id,
                error=str(e),
            )
            return

        if inserted:
            result.items_added += 1
