"""LibraryFolder model - a drive folder a user asked to index."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flixdex.db.base import Base, new_id, utc_now

if TYPE_CHECKING:
    from flixdex.db.models.media_item import MediaItem
    from flixdex.db.models.scan_run import ScanRun


class LibraryFolder(Base):
    """Registration of a remote folder under a local path label.

    A user registers a given path at most once; later scans of the same
    path reuse this row. Rows are never updated or deleted by scanning.
    """

    __tablename__ = "library_folders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[str] = mapped_column(String(1024), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="onedrive")
    provider_folder_id: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    # Relationships
    media_items: Mapped[list[MediaItem]] = relationship(
        "MediaItem", back_populates="folder"
    )
    scan_runs: Mapped[list[ScanRun]] = relationship(
        "ScanRun", back_populates="folder"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "path", name="uq_library_folders_user_path"),
    )
