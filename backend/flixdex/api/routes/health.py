"""Health check endpoint."""

from fastapi import APIRouter, Depends

from flixdex.api.deps import get_runner
from flixdex.core.config import settings
from flixdex.schemas.health import HealthResponse, ScanRunnerHealth
from flixdex.workers.scan_runner import ScanRunner

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(runner: ScanRunner = Depends(get_runner)) -> HealthResponse:
    """Report the service version and whether scans can be started."""
    stats = runner.stats
    return HealthResponse(
        status="ok" if stats["is_running"] else "degraded",
        version=settings.version,
        scan_runner=ScanRunnerHealth(
            is_running=stats["is_running"],
            tracked_runs=stats["tracked_runs"],
            traversing_runs=stats["traversing_runs"],
        ),
    )
