"""Tests for CatalogService - folder registrations and media items."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from fakes import file_entry
from flixdex.db.models import LibraryFolder, MediaItem
from flixdex.services.catalog import CatalogService


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def folder(db_session):
    """A registered library folder for user-1."""
    folder, _ = await CatalogService(db_session).get_or_create_folder(
        "user-1", "/Movies", "onedrive", "root-1"
    )
    await db_session.commit()
    return folder


# =============================================================================
# Folder Tests
# =============================================================================


class TestGetOrCreateFolder:
    """Tests for get_or_create_folder."""

    async def test_creates_folder(self, db_session):
        service = CatalogService(db_session)

        folder, created = await service.get_or_create_folder(
            "user-1", "/Movies", "onedrive", "root-1"
        )

        assert created is True
        assert folder.id
        assert folder.user_id == "user-1"
        assert folder.path == "/Movies"
        assert folder.provider == "onedrive"
        assert folder.provider_folder_id == "root-1"

    async def test_same_path_returns_existing(self, db_session):
        """A second request for the same (user, path) reuses the registration."""
        service = CatalogService(db_session)
        first, _ = await service.get_or_create_folder("user-1", "/Movies", "onedrive", "root-1")

        second, created = await service.get_or_create_folder(
            "user-1", "/Movies", "onedrive", "other-root"
        )

        assert created is False
        assert second.id == first.id
        assert second.provider_folder_id == "root-1"

        count = await db_session.execute(select(func.count(LibraryFolder.id)))
        assert count.scalar() == 1

    async def test_same_path_different_users(self, db_session):
        service = CatalogService(db_session)
        a, _ = await service.get_or_create_folder("user-1", "/Movies", "onedrive", "root-1")
        b, created = await service.get_or_create_folder("user-2", "/Movies", "onedrive", "root-2")

        assert created is True
        assert a.id != b.id

    async def test_insert_race_returns_existing_row(self, session_factory, monkeypatch):
        """A registration that loses the insert race returns the winner's row."""
        async with session_factory() as first_db, session_factory() as second_db:
            first, _ = await CatalogService(first_db).get_or_create_folder(
                "user-1", "/Shows", "onedrive", "root-1"
            )
            await first_db.commit()

            # The second caller looked up the path before the first insert landed
            second_service = CatalogService(second_db)
            lookup = second_service._get_folder_by_path
            misses = [None]

            async def stale_then_fresh(user_id, path):
                if misses:
                    return misses.pop()
                return await lookup(user_id, path)

            monkeypatch.setattr(second_service, "_get_folder_by_path", stale_then_fresh)

            second, created = await second_service.get_or_create_folder(
                "user-1", "/Shows", "onedrive", "root-2"
            )
            await second_db.commit()

        assert created is False
        assert second.id == first.id
        assert second.provider_folder_id == "root-1"

        async with session_factory() as db:
            count = await db.execute(select(func.count(LibraryFolder.id)))
            assert count.scalar() == 1


class TestFolderQueries:
    """Tests for get_folder and list_folders."""

    async def test_get_folder_is_scoped_to_user(self, db_session, folder):
        service = CatalogService(db_session)
        assert (await service.get_folder("user-1", folder.id)).id == folder.id
        assert await service.get_folder("user-2", folder.id) is None

    async def test_list_folders_oldest_first(self, db_session):
        service = CatalogService(db_session)
        first, _ = await service.get_or_create_folder("user-1", "/A", "onedrive", "a")
        second, _ = await service.get_or_create_folder("user-1", "/B", "onedrive", "b")
        await service.get_or_create_folder("user-2", "/C", "onedrive", "c")

        folders = await service.list_folders("user-1")

        assert [f.id for f in folders] == [first.id, second.id]


# =============================================================================
# Media Item Tests
# =============================================================================


class TestAddMediaItem:
    """Tests for add_media_item."""

    async def test_inserts_item(self, db_session, folder):
        service = CatalogService(db_session)
        entry = file_entry("item-1", "movie.mp4", mime_type="video/mp4", size=1000)

        inserted = await service.add_media_item("user-1", folder.id, entry)

        assert inserted is True
        items = await service.list_media_items("user-1")
        assert len(items) == 1
        item = items[0]
        assert item.title == "movie.mp4"
        assert item.filename == "movie.mp4"
        assert item.size_bytes == 1000
        assert item.mime_type == "video/mp4"
        assert item.provider_item_id == "item-1"
        assert item.download_url == "https://download.example/item-1"
        assert item.folder_id == folder.id

    async def test_duplicate_is_ignored(self, db_session, folder):
        """Re-adding a known provider item is a no-op and keeps the first row."""
        service = CatalogService(db_session)
        await service.add_media_item("user-1", folder.id, file_entry("item-1", "movie.mp4"))

        renamed = file_entry("item-1", "renamed.mp4", size=2000)
        inserted = await service.add_media_item("user-1", folder.id, renamed)

        assert inserted is False
        items = await service.list_media_items("user-1")
        assert len(items) == 1
        assert items[0].filename == "movie.mp4"
        assert items[0].size_bytes == 1000

    async def test_same_item_for_two_users(self, db_session, folder):
        service = CatalogService(db_session)
        other_folder, _ = await service.get_or_create_folder(
            "user-2", "/Movies", "onedrive", "root-1"
        )

        assert await service.add_media_item("user-1", folder.id, file_entry("item-1", "a.mp4"))
        assert await service.add_media_item(
            "user-2", other_folder.id, file_entry("item-1", "a.mp4")
        )

        assert await service.count_media_items("user-1") == 1
        assert await service.count_media_items("user-2") == 1


class TestMediaItemQueries:
    """Tests for list_media_items and count_media_items."""

    async def test_list_newest_first(self, db_session, folder):
        now = datetime.now(timezone.utc)
        for index, name in enumerate(["old.mp4", "middle.mp4", "new.mp4"]):
            db_session.add(
                MediaItem(
                    user_id="user-1",
                    folder_id=folder.id,
                    title=name,
                    filename=name,
                    provider_item_id=f"item-{index}",
                    created_at=now + timedelta(seconds=index),
                )
            )
        await db_session.flush()

        items = await CatalogService(db_session).list_media_items("user-1")

        assert [item.filename for item in items] == ["new.mp4", "middle.mp4", "old.mp4"]

    async def test_list_excludes_other_users(self, db_session, folder):
        service = CatalogService(db_session)
        await service.add_media_item("user-1", folder.id, file_entry("item-1", "a.mp4"))

        assert await service.list_media_items("user-2") == []

    async def test_count_by_folder(self, db_session, folder):
        service = CatalogService(db_session)
        other, _ = await service.get_or_create_folder("user-1", "/Other", "onedrive", "root-2")
        await service.add_media_item("user-1", folder.id, file_entry("item-1", "a.mp4"))
        await service.add_media_item("user-1", other.id, file_entry("item-2", "b.mp4"))

        assert await service.count_media_items("user-1") == 2
        assert await service.count_media_items("user-1", folder_id=folder.id) == 1
