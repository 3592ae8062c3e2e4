"""Download API: submit a conversion, poll its status, or stream directly.

  POST /api/download                   - start a two-phase job, returns downloadId
  GET  /api/download-status/{id}       - poll until completed / failed / not_found
  GET  /api/stream/{video_id}          - convert on the fly into the response body
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from app.api.deps import get_orchestrator
from app.errors import PUBLIC_MESSAGES
from app.media.transcoder import TargetFormat
from app.pipeline.orchestrator import JobStatus, JobStatusView, Orchestrator

router = APIRouter()


class DownloadRequest(BaseModel):
    url: Optional[str] = None
    format: str = TargetFormat.MP3.value
    quality: str = "highest"


class DownloadResponse(BaseModel):
    message: str
    videoId: str
    title: str
    author: str
    duration: int
    downloadId: str
    filename: str
    estimatedSize: Optional[int] = None


def _target_format(value: str) -> TargetFormat:
    try:
        return TargetFormat(value.lower())
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported format '{value}'. Valid: {[f.value for f in TargetFormat]}",
        )


# ---------------------------------------------------------------------------
# POST /api/download
# ---------------------------------------------------------------------------

@router.post("/download", response_model=DownloadResponse)
async def start_download(request: DownloadRequest, orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Validate, look up the video, pick a stream and start the conversion job.

    Returns as soon as the job is registered. Poll /api/download-status/{downloadId}.
    """
    target_format = _target_format(request.format)
    result = await orchestrator.submit(request.url, target_format=target_format, quality=request.quality)
    return DownloadResponse(
        message="Download started",
        videoId=result.content_id,
        title=result.title,
        author=result.author,
        duration=result.duration_seconds,
        downloadId=result.job_id,
        filename=result.filename,
        estimatedSize=result.estimated_size_bytes,
    )


# ---------------------------------------------------------------------------
# GET /api/download-status/{download_id}
# ---------------------------------------------------------------------------

@router.get("/download-status/{download_id}")
async def download_status(download_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Return job status in the shape the frontend polls."""
    view = orchestrator.get_job_status(download_id)
    response = {
        "status": view.status.value,
        "message": _status_message(view),
    }

    if view.status == JobStatus.COMPLETED:
        response.update({
            "filename": view.filename,
            "filesize": view.filesize_bytes,
            "downloadUrl": f"/downloads/{view.filename}",
            "completedAt": view.completed_at.isoformat() if view.completed_at else None,
        })
    elif view.status == JobStatus.PROCESSING and view.progress_percent is not None:
        response["progress"] = view.progress_percent
    elif view.status == JobStatus.FAILED and view.error_kind is not None:
        response["error"] = PUBLIC_MESSAGES[view.error_kind]

    return response


# ---------------------------------------------------------------------------
# GET /api/stream/{video_id}
# ---------------------------------------------------------------------------

@router.get("/stream/{video_id}")
async def stream_audio(video_id: str, format: str = TargetFormat.MP3.value,
                       orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Convert and send in one response; no job, no file left behind."""
    stream = await orchestrator.stream_direct(video_id, _target_format(format))
    return StreamingResponse(
        stream.body,
        media_type=stream.media_type,
        headers={"Content-Disposition": f'attachment; filename="{stream.filename}"'},
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status_message(view: JobStatusView) -> str:
    return {
        JobStatus.PENDING:    "Queued for processing...",
        JobStatus.PROCESSING: "File is being processed...",
        JobStatus.COMPLETED:  "File is ready for download",
        JobStatus.FAILED:     "Processing failed",
        JobStatus.NOT_FOUND:  "Download not found or expired",
    }.get(view.status, "")
