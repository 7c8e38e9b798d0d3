"""Catalog store for library folders and media items.

Writes use insert-if-absent so that repeated scans, and scans racing
each other, never create duplicate rows. A conflict is a no-op, not an
error.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from flixdex.core.logging import get_logger
from flixdex.db.models import LibraryFolder, MediaItem
from flixdex.services.onedrive import RemoteEntry

logger = get_logger(__name__)


class CatalogService:
    """Keyed persistence for folder registrations and media items."""

    def __init__(self, db: AsyncSession):
        """Initialize the catalog service.

        Args:
            db: Async database session.
        """
        self.db = db

    # ========== Folders ==========

    async def get_or_create_folder(
        self,
        user_id: str,
        path: str,
        provider: str,
        provider_folder_id: str,
    ) -> tuple[LibraryFolder, bool]:
        """Look up the user's registration for a path, creating it if missing.

        An existing registration is returned unchanged, even when the
        request names a different provider folder id.

        Args:
            user_id: Owning user.
            path: Local path label.
            provider: Provider name.
            provider_folder_id: Provider-native id of the folder.

        Returns:
            Tuple of (LibraryFolder, created).
        """
        existing = await self._get_folder_by_path(user_id, path)
        if existing is not None:
            return existing, False

        stmt = (
            sqlite_insert(LibraryFolder)
            .values(
                user_id=user_id,
                path=path,
                provider=provider,
                provider_folder_id=provider_folder_id,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "path"])
        )
        result = await self.db.execute(stmt)
        created = result.rowcount > 0

        folder = await self._get_folder_by_path(user_id, path)
        if folder is None:
            # Only possible if the row vanished between insert and select
            raise RuntimeError(f"Library folder for path {path!r} could not be loaded")

        if created:
            logger.info(
                "library_folder_created",
                folder_id=folder.id,
                user_id=user_id,
                path=path,
                provider=provider,
            )
        return folder, created

    async def get_folder(self, user_id: str, folder_id: str) -> LibraryFolder | None:
        """Get one of the user's library folders by id."""
        result = await self.db.execute(
            select(LibraryFolder).where(
                LibraryFolder.id == folder_id,
                LibraryFolder.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_folders(self, user_id: str) -> list[LibraryFolder]:
        """List the user's library folders, oldest first."""
        result = await self.db.execute(
            select(LibraryFolder)
            .where(LibraryFolder.user_id == user_id)
            .order_by(LibraryFolder.created_at.asc())
        )
        return list(result.scalars().all())

    async def _get_folder_by_path(self, user_id: str, path: str) -> LibraryFolder | None:
        result = await self.db.execute(
            select(LibraryFolder).where(
                LibraryFolder.user_id == user_id,
                LibraryFolder.path == path,
            )
        )
        return result.scalar_one_or_none()

    # ========== Media items ==========

    async def add_media_item(
        self,
        user_id: str,
        folder_id: str,
        entry: RemoteEntry,
    ) -> bool:
        """Record a discovered file unless the user already has it.

        Args:
            user_id: Owning user.
            folder_id: Library folder the scan belongs to.
            entry: File entry from the remote listing.

        Returns:
            True if a new row was inserted, False if it was already cataloged.
        """
        stmt = (
            sqlite_insert(MediaItem)
            .values(
                user_id=user_id,
                folder_id=folder_id,
                title=entry.name,
                filename=entry.name,
                size_bytes=entry.size,
                mime_type=entry.mime_type,
                provider_item_id=entry.id,
                download_url=entry.download_url,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "provider_item_id"])
        )
        result = await self.db.execute(stmt)
        return result.rowcount > 0

    async def list_media_items(self, user_id: str) -> list[MediaItem]:
        """List all of the user's media items, newest first."""
        result = await self.db.execute(
            select(MediaItem)
            .where(MediaItem.user_id == user_id)
            .order_by(MediaItem.created_at.desc(), MediaItem.id)
        )
        return list(result.scalars().all())

    async def count_media_items(self, user_id: str, folder_id: str | None = None) -> int:
        """Count the user's media items, optionally within one library folder."""
        query = select(func.count(MediaItem.id)).where(MediaItem.user_id == user_id)
        if folder_id is not None:
            query = query.where(MediaItem.folder_id == folder_id)
        result = await self.db.execute(query)
        return result.scalar() or 0
