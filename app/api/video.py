"""Video metadata endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.deps import get_orchestrator
from app.pipeline.orchestrator import Orchestrator

router = APIRouter()


class VideoUrlRequest(BaseModel):
    url: Optional[str] = None


@router.post("/video-info")
async def video_info(request: VideoUrlRequest, orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Title, author, thumbnails and the audio formats on offer, best first."""
    return await orchestrator.describe(request.url)


@router.post("/check-video")
async def check_video(request: VideoUrlRequest, orchestrator: Orchestrator = Depends(get_orchestrator)):
    return await orchestrator.check(request.url)
