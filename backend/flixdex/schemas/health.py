"""Health check schemas."""

from __future__ import annotations

from pydantic import BaseModel


class ScanRunnerHealth(BaseModel):
    """Scan runner state as seen by this process."""

    is_running: bool
    tracked_runs: int
    traversing_runs: int


class HealthResponse(BaseModel):
    """Health check response schema.

    ``status`` is "degraded" while the scan runner is not accepting scans.
    """

    status: str
    version: str
    scan_runner: ScanRunnerHealth
