"""Library API endpoints: scan trigger, catalog reader and scan runs."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from flixdex.api.deps import get_current_user, get_runner
from flixdex.core.config import settings
from flixdex.core.logging import get_logger
from flixdex.core.security import CurrentUser
from flixdex.db import get_db
from flixdex.db.models import ScanRunStatus, StorageProvider
from flixdex.schemas.library import (
    LibraryFolderListResponse,
    LibraryFolderResponse,
    MediaItemListResponse,
    MediaItemResponse,
    ScanRequest,
    ScanResponse,
    ScanRunListResponse,
    ScanRunResponse,
)
from flixdex.services.catalog import CatalogService
from flixdex.services.scan_runs import ScanRunService
from flixdex.workers.scan_runner import ScanRunner, ScanRunnerNotRunningError

logger = get_logger(__name__)

router = APIRouter(prefix="/library", tags=["library"])


def _is_valid_access_token(token: str | None) -> bool:
    """Format check only; the provider decides whether the token is accepted."""
    if not token or not token.strip():
        return False
    return not any(ch.isspace() for ch in token)


@router.post("/scan", response_model=ScanResponse)
async def start_scan(
    request: ScanRequest,
    user: CurrentUser = Depends(get_current_user),
    runner: ScanRunner = Depends(get_runner),
    db: AsyncSession = Depends(get_db),
) -> ScanResponse:
    """Register a library folder and scan it in the background.

    Responds as soon as the run is queued. Progress and outcome are
    available from the scan run endpoints; cataloged items appear in
    the items listing as they are found.
    """
    if not _is_valid_access_token(request.access_token):
        raise HTTPException(status_code=400, detail="Missing or invalid access token")

    if not request.folder_id or not request.folder_id.strip():
        raise HTTPException(status_code=400, detail="folderId is required")

    if not request.path or not request.path.strip():
        raise HTTPException(status_code=400, detail="path is required")

    try:
        provider = StorageProvider(request.provider or settings.default_provider)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported provider: {request.provider}",
        )

    catalog = CatalogService(db)
    folder, created = await catalog.get_or_create_folder(
        user.id,
        request.path,
        provider.value,
        request.folder_id,
    )

    runs = ScanRunService(db)
    run = await runs.create(folder, root_provider_folder_id=request.folder_id)

    # The run must be visible to the background task before it starts
    await db.commit()

    try:
        runner.submit(
            run.id,
            user_id=user.id,
            folder_id=folder.id,
            root_provider_folder_id=run.root_provider_folder_id,
            access_token=request.access_token,
        )
    except ScanRunnerNotRunningError as e:
        await runs.complete(run.id, status=ScanRunStatus.ABORTED, error=str(e))
        await db.commit()
        raise HTTPException(status_code=503, detail="Scanning is not available")

    logger.info(
        "scan_requested",
        user_id=user.id,
        folder_id=folder.id,
        scan_id=run.id,
        folder_created=created,
        provider=provider.value,
    )

    return ScanResponse(folder_id=folder.id, scan_id=run.id)


@router.get("/items", response_model=MediaItemListResponse)
async def list_items(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MediaItemListResponse:
    """List every cataloged media item of the user, newest first."""
    items = await CatalogService(db).list_media_items(user.id)
    return MediaItemListResponse(
        items=[MediaItemResponse.model_validate(item) for item in items]
    )


@router.get("/folders", response_model=LibraryFolderListResponse)
async def list_folders(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> LibraryFolderListResponse:
    """List the user's registered library folders."""
    folders = await CatalogService(db).list_folders(user.id)
    return LibraryFolderListResponse(
        items=[LibraryFolderResponse.model_validate(folder) for folder in folders]
    )


@router.get("/scans", response_model=ScanRunListResponse)
async def list_scans(
    folder_id: str | None = Query(None, description="Filter by library folder"),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ScanRunListResponse:
    """List the user's scan runs, newest first."""
    runs = await ScanRunService(db).list_runs(user.id, folder_id=folder_id)
    return ScanRunListResponse(
        items=[ScanRunResponse.model_validate(run) for run in runs]
    )


@router.get("/scans/{scan_id}", response_model=ScanRunResponse)
async def get_scan(
    scan_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ScanRunResponse:
    """Get the status of one scan run."""
    run = await ScanRunService(db).get_run(user.id, scan_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Scan run not found")
    return ScanRunResponse.model_validate(run)


@router.post("/scans/{scan_id}/cancel", response_model=ScanRunResponse)
async def cancel_scan(
    scan_id: str,
    user: CurrentUser = Depends(get_current_user),
    runner: ScanRunner = Depends(get_runner),
    db: AsyncSession = Depends(get_db),
) -> ScanRunResponse:
    """Cancel a queued or traversing scan run.

    A run tracked by this process stops at its next page and records
    itself as aborted. A run no other task owns is aborted directly.
    """
    runs = ScanRunService(db)
    run = await runs.get_run(user.id, scan_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Scan run not found")

    if run.status.is_terminal:
        raise HTTPException(
            status_code=409,
            detail=f"Scan run already {run.status.value.lower()}",
        )

    if not runner.cancel(scan_id):
        run = await runs.complete(
            scan_id, status=ScanRunStatus.ABORTED, error="Scan canceled"
        )

    logger.info("scan_cancel_requested", user_id=user.id, scan_id=scan_id)
    return ScanRunResponse.model_validate(run)
