"""Database models for Flixdex."""

from flixdex.db.models.enums import ScanRunStatus, StorageProvider
from flixdex.db.models.library_folder import LibraryFolder
from flixdex.db.models.media_item import MediaItem
from flixdex.db.models.scan_run import ScanRun
from flixdex.db.models.user_data import UserData

__all__ = [
    # Models
    "LibraryFolder",
    "MediaItem",
    "ScanRun",
    "UserData",
    # Enums
    "ScanRunStatus",
    "StorageProvider",
]
