"""YouTube audio downloader backend - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app.config import Settings, settings
from app.errors import ServiceError
from app.api.router import api_router, files_router_root
from app.jobs.registry import JobRegistry
from app.media.catalog import CatalogProvider
from app.media.transcoder import FfmpegTranscoder, Transcoder
from app.media.ytdlp_catalog import YtDlpCatalog
from app.pipeline.orchestrator import Orchestrator
from app.storage.artifacts import ArtifactStore
from app.storage.janitor import Janitor

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Settings] = None,
    catalog: Optional[CatalogProvider] = None,
    transcoder: Optional[Transcoder] = None,
) -> FastAPI:
    """Build the application. ``catalog``/``transcoder`` override the yt-dlp/ffmpeg defaults."""
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic."""
        store = ArtifactStore(config.downloads_dir)
        registry = JobRegistry(store)
        orchestrator = Orchestrator(
            registry=registry,
            store=store,
            catalog=catalog or YtDlpCatalog(
                user_agent=config.source_user_agent,
                chunk_size=config.stream_chunk_size,
                timeout_seconds=config.source_timeout_seconds,
            ),
            transcoder=transcoder or FfmpegTranscoder(
                binary=config.ffmpeg_binary,
                chunk_size=config.stream_chunk_size,
                buffer_chunks=config.pipeline_buffer_chunks,
            ),
            config=config,
        )
        janitor = Janitor(
            store,
            registry,
            retention_seconds=config.artifact_retention_seconds,
            interval_seconds=config.cleanup_interval_seconds,
        )
        await janitor.start()

        app.state.config = config
        app.state.registry = registry
        app.state.orchestrator = orchestrator
        app.state.janitor = janitor

        logger.info("YouTube Audio Downloader Backend running on port %d", config.port)
        logger.info("Downloads directory: %s", store.base_dir)

        yield

        # Shutdown
        logger.info("Shutting down")
        await janitor.stop()
        await orchestrator.shutdown()
        janitor.sweep()

    app = FastAPI(
        title="YouTube Audio Downloader",
        description="Fetch a video's audio track, convert it to MP3 and serve it for download",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.is_invalid_input:
            logger.info("Rejected request: %s", exc.detail)
        else:
            logger.error("Request failed: %s", exc)
        content = {"error": exc.public_message, "kind": exc.kind.value}
        if config.debug:
            content["message"] = exc.detail
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": str(exc) if config.debug else "Something went wrong",
            },
        )

    app.include_router(api_router)  # All /api/* endpoints
    app.include_router(files_router_root)  # /downloads/{filename}
    return app


logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.port)
