"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.api.deps import get_orchestrator
from app.pipeline.orchestrator import Orchestrator

router = APIRouter()


@router.get("/health")
async def health_check(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Liveness plus the number of pipelines currently running."""
    return {
        "status": "OK",
        "message": "YouTube Audio Downloader Backend is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "activeJobs": orchestrator.active_runs,
    }
