"""Pydantic schemas for the Library API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from flixdex.db.models.enums import ScanRunStatus


# ==================== Scan trigger ====================


class ScanRequest(BaseModel):
    """Request to scan a remote folder into the catalog.

    Field presence is checked by the endpoint so that a missing token is
    reported as a bad request rather than a validation error.
    """

    model_config = ConfigDict(populate_by_name=True)

    folder_id: str | None = Field(None, alias="folderId")
    access_token: str | None = Field(None, alias="accessToken")
    path: str | None = None
    provider: str | None = None


class ScanResponse(BaseModel):
    """Acknowledgement that a scan was started in the background."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    status: str = "scanning_background"
    folder_id: str = Field(alias="folderId")
    scan_id: str = Field(alias="scanId")


# ==================== Catalog ====================


class MediaItemResponse(BaseModel):
    """A cataloged video file."""

    id: str
    user_id: str
    folder_id: str
    title: str
    filename: str
    size_bytes: int | None = None
    mime_type: str | None = None
    provider_item_id: str
    download_url: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MediaItemListResponse(BaseModel):
    """All of the user's media items, newest first."""

    items: list[MediaItemResponse]


class LibraryFolderResponse(BaseModel):
    """A registered library folder."""

    id: str
    path: str
    provider: str
    provider_folder_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class LibraryFolderListResponse(BaseModel):
    """The user's registered library folders."""

    items: list[LibraryFolderResponse]


# ==================== Scan runs ====================


class ScanRunResponse(BaseModel):
    """Status and counters of one scan run."""

    id: str
    folder_id: str
    root_provider_folder_id: str
    status: ScanRunStatus

    # Progress
    folders_scanned: int = 0
    folders_failed: int = 0
    files_seen: int = 0
    items_found: int = 0
    items_added: int = 0
    items_failed: int = 0

    last_error: str | None = None

    # Timing
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: int | None = None

    model_config = {"from_attributes": True}


class ScanRunListResponse(BaseModel):
    """The user's scan runs, newest first."""

    items: list[ScanRunResponse]
