"""Background workers for Flixdex."""

from flixdex.workers.scan_runner import (
    ScanRunner,
    ScanRunnerNotRunningError,
    get_scan_runner,
    start_scan_runner,
    stop_scan_runner,
)

__all__ = [
    "ScanRunner",
    "ScanRunnerNotRunningError",
    "get_scan_runner",
    "start_scan_runner",
    "stop_scan_runner",
]
