"""Aggregate the API routers."""

from fastapi import APIRouter
from app.api.health import router as health_router
from app.api.video import router as video_router
from app.api.downloads import router as downloads_router
from app.api.files import router as files_router

api_router = APIRouter(prefix="/api")
api_router.include_router(health_router, tags=["health"])
api_router.include_router(video_router, tags=["video"])
api_router.include_router(downloads_router, tags=["downloads"])

# Finished files are served at the root: /downloads/{filename}
files_router_root = APIRouter()
files_router_root.include_router(files_router, tags=["files"])
