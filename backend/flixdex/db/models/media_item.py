"""MediaItem model for discovered video files."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flixdex.db.base import Base, new_id, utc_now

if TYPE_CHECKING:
    from flixdex.db.models.library_folder import LibraryFolder


class MediaItem(Base):
    """A video file found on a user's drive.

    The provider item id is the dedup key within a user: a file seen by a
    later scan is left untouched, including its download_url, which the
    provider only keeps valid for a short while.
    """

    __tablename__ = "media_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    folder_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("library_folders.id", ondelete="CASCADE"), nullable=False
    )

    title: Mapped[str] = mapped_column(String(1024), nullable=False)
    filename: Mapped[str] = mapped_column(String(1024), nullable=False)
    size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(255), nullable=True)

    provider_item_id: Mapped[str] = mapped_column(String(255), nullable=False)
    download_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    # Relationships
    folder: Mapped[LibraryFolder] = relationship(
        "LibraryFolder", back_populates="media_items"
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "provider_item_id", name="uq_media_items_user_provider_item"
        ),
        Index("ix_media_items_user_created", "user_id", "created_at"),
        Index("ix_media_items_folder_id", "folder_id"),
    )
