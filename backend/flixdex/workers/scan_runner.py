"""Background runner for drive scans.

A scan outlives the request that triggered it. Each run is an asyncio
task owned by the process-wide ScanRunner, which records its outcome on
the ScanRun row so it can be inspected later. The access token only
lives in the task for the duration of the run.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flixdex.core.config import settings
from flixdex.core.logging import get_logger
from flixdex.db.models import ScanRunStatus
from flixdex.db.session import async_session_maker
from flixdex.services.onedrive import OneDriveClient
from flixdex.services.scan_runs import ScanRunService
from flixdex.services.scanner import (
    ScanAbortedError,
    ScanCanceledError,
    ScanOrchestrator,
    ScanResult,
)

logger = get_logger(__name__)


class ScanRunnerNotRunningError(Exception):
    """Raised when a scan is submitted to a runner that is not started."""

    pass


class ScanRunner:
    """Schedules scan runs as detached tasks and tracks them until done.

    Features:
    - Bounded number of concurrently traversing runs (others wait QUEUED)
    - Cooperative cancellation per run
    - Throttled, non-fatal progress writes
    - Graceful shutdown with timeout
    - Orphaned run recovery on startup
    """

    def __init__(
        self,
        *,
        client: OneDriveClient | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        max_concurrent: int | None = None,
        progress_interval: float | None = None,
        shutdown_timeout: float | None = None,
        page_retries: int | None = None,
    ):
        """Initialize the runner.

        Args:
            client: Remote tree client shared by all runs. Created lazily if omitted.
            session_factory: Session factory for run bookkeeping and catalog writes.
            max_concurrent: Runs allowed to traverse at once. Defaults to settings.
            progress_interval: Minimum seconds between progress writes. Defaults to settings.
            shutdown_timeout: Seconds to wait for runs on stop. Defaults to settings.
            page_retries: Passed through to the orchestrator. Defaults to settings.
        """
        self.session_factory = session_factory or async_session_maker
        self.max_concurrent = max_concurrent or settings.max_concurrent_scans
        self.progress_interval = (
            settings.scan_progress_interval if progress_interval is None else progress_interval
        )
        self.shutdown_timeout = (
            settings.scan_shutdown_timeout if shutdown_timeout is None else shutdown_timeout
        )
        self.page_retries = page_retries

        self._client = client
        self._owns_client = client is None
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._tasks: dict[str, asyncio.Task] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._latest_results: dict[str, ScanResult] = {}
        self._running = False
        self._stopping = False
        self._started_at: datetime | None = None
        self._traversing = 0
        self._runs_completed = 0
        self._runs_aborted = 0

    # ========== Lifecycle ==========

    async def start(self) -> None:
        """Recover runs orphaned by a previous process and accept new ones."""
        if self._running:
            logger.warning("scan_runner_already_running")
            return

        async with self.session_factory() as db:
            recovered = await ScanRunService(db).recover_orphaned_runs()
            await db.commit()

        self._running = True
        self._stopping = False
        self._started_at = datetime.now(timezone.utc)
        logger.info(
            "scan_runner_started",
            max_concurrent=self.max_concurrent,
            recovered_runs=recovered,
        )

    async def stop(self) -> None:
        """Stop all runs, waiting up to shutdown_timeout before cancelling them."""
        if not self._running:
            return

        logger.info("scan_runner_stopping", active_runs=len(self._tasks))
        self._running = False
        self._stopping = True

        for event in self._cancel_events.values():
            event.set()

        tasks = list(self._tasks.values())
        if tasks:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*tasks, return_exceptions=True),
                    timeout=self.shutdown_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "scan_runner_shutdown_timeout",
                    pending_runs=len([t for t in tasks if not t.done()]),
                )
                for task in tasks:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None

        logger.info("scan_runner_stopped")

    # ========== Runs ==========

    def submit(
        self,
        run_id: str,
        *,
        user_id: str,
        folder_id: str,
        root_provider_folder_id: str,
        access_token: str,
    ) -> None:
        """Schedule a QUEUED run and return immediately.

        Raises:
            ScanRunnerNotRunningError: If the runner has not been started.
        """
        if not self._running:
            raise ScanRunnerNotRunningError("Scan runner is not running")

        cancel_event = asyncio.Event()
        self._cancel_events[run_id] = cancel_event
        task = asyncio.create_task(
            self._execute(
                run_id,
                user_id=user_id,
                folder_id=folder_id,
                root_provider_folder_id=root_provider_folder_id,
                access_token=access_token,
                cancel_event=cancel_event,
            ),
            name=f"scan-{run_id}",
        )
        self._tasks[run_id] = task
        task.add_done_callback(lambda _: self._forget(run_id))

        logger.info("scan_run_submitted", scan_id=run_id, user_id=user_id)

    def cancel(self, run_id: str) -> bool:
        """Ask a run to stop at its next page.

        Returns:
            True if the run is tracked by this runner, False otherwise.
        """
        event = self._cancel_events.get(run_id)
        if event is None:
            return False
        event.set()
        logger.info("scan_run_cancel_requested", scan_id=run_id)
        return True

    def is_tracking(self, run_id: str) -> bool:
        """Check if a run is still queued or traversing in this runner."""
        return run_id in self._tasks

    async def wait_for(self, run_id: str) -> None:
        """Wait until a tracked run has finished."""
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _execute(
        self,
        run_id: str,
        *,
        user_id: str,
        folder_id: str,
        root_provider_folder_id: str,
        access_token: str,
        cancel_event: asyncio.Event,
    ) -> None:
        """Run one scan to a terminal state. Never raises except on task cancellation."""
        try:
            async with self._semaphore:
                if cancel_event.is_set():
                    await self._finish(
                        run_id, ScanRunStatus.ABORTED, None, self._cancel_reason()
                    )
                    return

                async with self.session_factory() as db:
                    run = await ScanRunService(db).mark_traversing(run_id)
                    await db.commit()

                if run is None:
                    logger.warning("scan_run_not_queued", scan_id=run_id)
                    return

                self._traversing += 1
                try:
                    orchestrator = ScanOrchestrator(
                        self._get_client(),
                        self.session_factory,
                        page_retries=self.page_retries,
                    )
                    result = await orchestrator.run(
                        access_token,
                        user_id=user_id,
                        folder_id=folder_id,
                        root_provider_folder_id=root_provider_folder_id,
                        cancel_event=cancel_event,
                        on_progress=self._progress_writer(run_id),
                    )
                finally:
                    self._traversing -= 1

        except ScanAbortedError as e:
            await self._finish(run_id, ScanRunStatus.ABORTED, e.result, str(e))
        except ScanCanceledError as e:
            await self._finish(
                run_id, ScanRunStatus.ABORTED, e.result, self._cancel_reason()
            )
        except asyncio.CancelledError:
            await self._finish(
                run_id,
                ScanRunStatus.ABORTED,
                self._latest_results.get(run_id),
                "Scan stopped by shutdown",
            )
            raise
        except Exception as e:
            logger.error(
                "scan_run_crashed",
                scan_id=run_id,
                error=str(e),
                exc_info=True,
            )
            await self._finish(
                run_id,
                ScanRunStatus.ABORTED,
                self._latest_results.get(run_id),
                f"Unexpected error: {e}",
            )
        else:
            error = None
            if result.folders_failed:
                error = f"{result.folders_failed} folder(s) could not be listed"
            await self._finish(run_id, ScanRunStatus.COMPLETED, result, error)

    async def _finish(
        self,
        run_id: str,
        status: ScanRunStatus,
        result: ScanResult | None,
        error: str | None,
    ) -> None:
        """Record the terminal status of a run. Failures here are logged, not raised."""
        if status == ScanRunStatus.COMPLETED:
            self._runs_completed += 1
        else:
            self._runs_aborted += 1

        try:
            async with self.session_factory() as db:
                await ScanRunService(db).complete(
                    run_id, status=status, result=result, error=error
                )
                await db.commit()
        except Exception as e:
            logger.error(
                "scan_run_finish_failed",
                scan_id=run_id,
                status=status.value,
                error=str(e),
            )

    def _progress_writer(self, run_id: str):
        """Build the throttled progress callback for one run."""
        last_update: datetime | None = None

        async def write_progress(result: ScanResult) -> None:
            nonlocal last_update
            self._latest_results[run_id] = result
            now = datetime.now(timezone.utc)
            if last_update and (now - last_update).total_seconds() < self.progress_interval:
                return

            try:
                async with self.session_factory() as db:
                    await ScanRunService(db).update_progress(run_id, result)
                    await db.commit()
                last_update = now
            except Exception as e:
                # Progress is advisory; SQLite lock contention must not fail the scan
                logger.debug(
                    "scan_progress_update_failed",
                    scan_id=run_id,
                    error=str(e),
                )

        return write_progress

    def _cancel_reason(self) -> str:
        return "Scan stopped by shutdown" if self._stopping else "Scan canceled"

    def _get_client(self) -> OneDriveClient:
        if self._client is None:
            self._client = OneDriveClient()
        return self._client

    def _forget(self, run_id: str) -> None:
        self._tasks.pop(run_id, None)
        self._cancel_events.pop(run_id, None)
        self._latest_results.pop(run_id, None)

    # ========== Introspection ==========

    def _uptime_seconds(self) -> int:
        if self._started_at:
            return int((datetime.now(timezone.utc) - self._started_at).total_seconds())
        return 0

    @property
    def is_running(self) -> bool:
        """Check if the runner accepts new scans."""
        return self._running

    @property
    def stats(self) -> dict[str, Any]:
        """Get runner statistics."""
        return {
            "is_running": self._running,
            "max_concurrent": self.max_concurrent,
            "tracked_runs": len(self._tasks),
            "traversing_runs": self._traversing,
            "runs_completed": self._runs_completed,
            "runs_aborted": self._runs_aborted,
            "uptime_seconds": self._uptime_seconds(),
        }


# Global runner instance
_runner: ScanRunner | None = None


def get_scan_runner() -> ScanRunner:
    """Get the global scan runner, creating it if needed."""
    global _runner
    if _runner is None:
        _runner = ScanRunner()
    return _runner


async def start_scan_runner() -> None:
    """Start the global scan runner. Called from application startup."""
    await get_scan_runner().start()


async def stop_scan_runner() -> None:
    """Stop the global scan runner. Called from application shutdown."""
    global _runner
    if _runner is not None:
        await _runner.stop()
        _runner = None
