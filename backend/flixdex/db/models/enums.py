"""Enum types for database models."""

from __future__ import annotations

import enum


class ScanRunStatus(str, enum.Enum):
    """Lifecycle of a single scan run."""

    QUEUED = "QUEUED"
    TRAVERSING = "TRAVERSING"
    COMPLETED = "COMPLETED"
    ABORTED = "ABORTED"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanRunStatus.COMPLETED, ScanRunStatus.ABORTED)


class StorageProvider(str, enum.Enum):
    """Remote drive providers that can be scanned."""

    ONEDRIVE = "onedrive"
