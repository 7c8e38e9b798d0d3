"""ScanRun model for tracking background scans."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flixdex.db.base import Base, new_id, utc_now
from flixdex.db.models.enums import ScanRunStatus

if TYPE_CHECKING:
    from flixdex.db.models.library_folder import LibraryFolder


class ScanRun(Base):
    """One execution of the drive scanner for a library folder.

    Lets a polling client tell a finished scan from a running or
    aborted one. The access token used by the run is never stored.
    """

    __tablename__ = "scan_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    folder_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("library_folders.id", ondelete="CASCADE"), nullable=False
    )
    root_provider_folder_id: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[ScanRunStatus] = mapped_column(
        Enum(ScanRunStatus), default=ScanRunStatus.QUEUED, nullable=False
    )

    # Progress counters
    folders_scanned: Mapped[int] = mapped_column(Integer, default=0)
    folders_failed: Mapped[int] = mapped_column(Integer, default=0)
    files_seen: Mapped[int] = mapped_column(Integer, default=0)
    items_found: Mapped[int] = mapped_column(Integer, default=0)
    items_added: Mapped[int] = mapped_column(Integer, default=0)
    items_failed: Mapped[int] = mapped_column(Integer, default=0)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    folder: Mapped[LibraryFolder] = relationship(
        "LibraryFolder", back_populates="scan_runs"
    )

    __table_args__ = (
        Index("ix_scan_runs_user_created", "user_id", "created_at"),
        Index("ix_scan_runs_status", "status"),
        Index("ix_scan_runs_folder_id", "folder_id"),
    )

    @property
    def duration_ms(self) -> int | None:
        """Wall-clock duration of the run, once finished."""
        if self.started_at and self.finished_at:
            # SQLite hands back naive datetimes for timezone-aware columns
            started_at = self.started_at
            finished_at = self.finished_at
            if started_at.tzinfo is None:
                started_at = started_at.replace(tzinfo=timezone.utc)
            if finished_at.tzinfo is None:
                finished_at = finished_at.replace(tzinfo=timezone.utc)
            return int((finished_at - started_at).total_seconds() * 1000)
        return None
