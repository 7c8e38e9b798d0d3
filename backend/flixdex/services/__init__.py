"""Business logic services for Flixdex."""

from flixdex.services.catalog import CatalogService
from flixdex.services.media_classifier import is_media
from flixdex.services.onedrive import OneDriveClient, RemoteTreeError
from flixdex.services.scan_runs import ScanRunService
from flixdex.services.scanner import ScanAbortedError, ScanOrchestrator, ScanResult
from flixdex.services.user_data import UserDataService

__all__ = [
    "CatalogService",
    "OneDriveClient",
    "RemoteTreeError",
    "ScanAbortedError",
    "ScanOrchestrator",
    "ScanResult",
    "ScanRunService",
    "UserDataService",
    "is_media",
]
