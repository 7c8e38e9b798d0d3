"""Scan run tracking for background scans."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from flixdex.core.logging import get_logger
from flixdex.db.base import utc_now
from flixdex.db.models import LibraryFolder, ScanRun, ScanRunStatus
from flixdex.services.scanner import ScanResult

logger = get_logger(__name__)

ACTIVE_STATUSES = [ScanRunStatus.QUEUED, ScanRunStatus.TRAVERSING]


class ScanRunService:
    """Records the lifecycle of scan runs.

    Runs move QUEUED -> TRAVERSING -> COMPLETED | ABORTED. Terminal runs
    are never reopened.
    """

    def __init__(self, db: AsyncSession):
        """Initialize the scan run service.

        Args:
            db: Async database session.
        """
        self.db = db

    async def create(
        self,
        folder: LibraryFolder,
        root_provider_folder_id: str | None = None,
    ) -> ScanRun:
        """Create a QUEUED run for a library folder.

        Args:
            folder: The folder registration the items are filed under.
            root_provider_folder_id: Remote folder to start from. Defaults to
                the folder registered with the library folder.

        Returns:
            The created ScanRun.
        """
        run = ScanRun(
            user_id=folder.user_id,
            folder_id=folder.id,
            root_provider_folder_id=root_provider_folder_id or folder.provider_folder_id,
            status=ScanRunStatus.QUEUED,
        )
        self.db.add(run)
        await self.db.flush()

        logger.info(
            "scan_run_created",
            scan_id=run.id,
            user_id=run.user_id,
            folder_id=run.folder_id,
        )
        return run

    async def mark_traversing(self, run_id: str) -> ScanRun | None:
        """Move a QUEUED run to TRAVERSING.

        Returns:
            The updated run, or None if it is missing or no longer QUEUED.
        """
        run = await self._get(run_id)
        if run is None or run.status != ScanRunStatus.QUEUED:
            return None

        run.status = ScanRunStatus.TRAVERSING
        run.started_at = utc_now()
        await self.db.flush()
        return run

    async def update_progress(self, run_id: str, result: ScanResult) -> None:
        """Copy the running counters onto the run record."""
        await self.db.execute(
            update(ScanRun)
            .where(ScanRun.id == run_id)
            .values(**self._counter_values(result))
        )
        await self.db.flush()

    async def complete(
        self,
        run_id: str,
        *,
        status: ScanRunStatus,
        result: ScanResult | None = None,
        error: str | None = None,
    ) -> ScanRun | None:
        """Move a run to a terminal status.

        Args:
            run_id: ID of the run.
            status: COMPLETED or ABORTED.
            result: Final counters, if the traversal produced any.
            error: Reason the run aborted, or a summary of folder failures.

        Returns:
            The updated run, or None if not found.
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal scan status")

        run = await self._get(run_id)
        if run is None:
            logger.warning("scan_run_not_found", scan_id=run_id)
            return None

        if run.status.is_terminal:
            logger.warning(
                "scan_run_already_finished",
                scan_id=run_id,
                status=run.status.value,
            )
            return run

        run.status = status
        run.finished_at = utc_now()
        run.last_error = error
        if result is not None:
            for key, value in self._counter_values(result).items():
                setattr(run, key, value)

        await self.db.flush()

        log = logger.info if status == ScanRunStatus.COMPLETED else logger.warning
        log(
            "scan_run_finished",
            scan_id=run_id,
            status=status.value,
            items_added=run.items_added,
            folders_failed=run.folders_failed,
            duration_ms=run.duration_ms,
            error=error,
        )
        return run

    async def get_run(self, user_id: str, run_id: str) -> ScanRun | None:
        """Get one of the user's runs by ID."""
        result = await self.db.execute(
            select(ScanRun).where(ScanRun.id == run_id, ScanRun.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_runs(
        self,
        user_id: str,
        folder_id: str | None = None,
    ) -> list[ScanRun]:
        """List the user's runs, newest first."""
        query = select(ScanRun).where(ScanRun.user_id == user_id)
        if folder_id is not None:
            query = query.where(ScanRun.folder_id == folder_id)
        result = await self.db.execute(query.order_by(ScanRun.created_at.desc()))
        return list(result.scalars().all())

    async def recover_orphaned_runs(self) -> int:
        """Abort runs that were active when the process stopped.

        The access token of an interrupted run is gone, so it cannot be
        resumed; the user has to trigger a new scan.

        Returns:
            Number of runs aborted.
        """
        result = await self.db.execute(
            update(ScanRun)
            .where(ScanRun.status.in_(ACTIVE_STATUSES))
            .values(
                status=ScanRunStatus.ABORTED,
                finished_at=utc_now(),
                last_error="Scan interrupted by restart",
            )
            .returning(ScanRun.id)
        )
        recovered = result.all()
        await self.db.flush()

        if recovered:
            logger.warning(
                "orphaned_scan_runs_aborted",
                count=len(recovered),
            )
        return len(recovered)

    async def _get(self, run_id: str) -> ScanRun | None:
        result = await self.db.execute(select(ScanRun).where(ScanRun.id == run_id))
        return result.scalar_one_or_none()

    @staticmethod
    def _counter_values(result: ScanResult) -> dict[str, Any]:
        return {
            "folders_scanned": result.folders_scanned,
            "folders_failed": result.folders_failed,
            "files_seen": result.files_seen,
            "items_found": result.items_found,
            "items_added": result.items_added,
            "items_failed": result.items_failed,
        }
