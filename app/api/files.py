"""Published artifact downloads."""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, JSONResponse

from app.api.deps import get_orchestrator
from app.errors import ServiceError
from app.pipeline.orchestrator import Orchestrator

router = APIRouter()


@router.get("/downloads/{filename}")
async def download_file(filename: str, orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Serve a finished file as an attachment."""
    try:
        path = orchestrator.artifact_path(filename)
    except ServiceError:
        return JSONResponse(status_code=404, content={"error": "File not found"})
    # filename= makes FileResponse send Content-Disposition: attachment
    return FileResponse(path, media_type="application/octet-stream", filename=filename)
