"""Download → transcode → publish pipeline.

Coordinates the catalog, the stream selector, the job registry, the
transcoder and the artifact store. ``submit`` returns as soon as a job is
registered; the run itself continues as a background task and is observed
through ``get_job_status``.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional, Set

from app.config import Settings, settings as default_settings
from app.errors import ErrorKind, ServiceError
from app.jobs.models import InvalidTransition, Job, JobState
from app.jobs.registry import JobRegistry
from app.media.catalog import CatalogProvider, ContentRef, StreamCandidate, VideoInfo
from app.media.selector import list_audio_formats, select_audio_stream
from app.media.transcoder import MEDIA_TYPES, TargetFormat, TranscodeOptions, Transcoder
from app.media.youtube import (
    extract_content_id,
    is_valid_content_id,
    sanitize_filename,
    validate_url,
    watch_url,
)
from app.pipeline.stages import drain_to_file, make_channel, open_sink, pump, run_stages
from app.storage.artifacts import ArtifactStore

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Status as reported to pollers."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    NOT_FOUND = "not_found"


_STATUS_FOR_STATE = {
    JobState.PENDING: JobStatus.PENDING,
    JobState.FETCHING: JobStatus.PROCESSING,
    JobState.TRANSCODING: JobStatus.PROCESSING,
    JobState.COMPLETED: JobStatus.COMPLETED,
    JobState.FAILED: JobStatus.FAILED,
    JobState.EXPIRED: JobStatus.NOT_FOUND,
}


@dataclass
class SubmitResult:
    job_id: str
    content_id: str
    title: str
    author: str
    duration_seconds: int
    filename: str
    estimated_size_bytes: Optional[int] = None


@dataclass
class JobStatusView:
    status: JobStatus
    job_id: Optional[str] = None
    filename: Optional[str] = None
    filesize_bytes: Optional[int] = None
    completed_at: Optional[datetime] = None
    progress_percent: Optional[float] = None
    error_kind: Optional[ErrorKind] = None


@dataclass
class DirectStream:
    filename: str
    media_type: str
    body: AsyncIterator[bytes]


class Orchestrator:
    """Runs one independent pipeline task per submitted job."""

    def __init__(
        self,
        registry: JobRegistry,
        store: ArtifactStore,
        catalog: CatalogProvider,
        transcoder: Transcoder,
        config: Optional[Settings] = None,
    ):
        self._registry = registry
        self._store = store
        self._catalog = catalog
        self._transcoder = transcoder
        self._config = config or default_settings
        self._runs: Set[asyncio.Task] = set()

    # ── Lookup ────────────────────────────────────────────────────────

    @staticmethod
    def resolve(source_url: Optional[str]) -> ContentRef:
        """Validate a user-supplied URL. Raises ServiceError before anything is touched."""
        if not source_url:
            raise ServiceError(ErrorKind.INVALID_URL, "YouTube URL is required")
        if not validate_url(source_url):
            raise ServiceError(ErrorKind.INVALID_URL, f"Not a YouTube URL: {source_url}")
        content_id = extract_content_id(source_url)
        if not content_id:
            raise ServiceError(ErrorKind.UNRESOLVABLE_ID, f"No video ID in {source_url}")
        return ContentRef(content_id=content_id, source_url=source_url)

    @staticmethod
    def _select(info: VideoInfo) -> StreamCandidate:
        candidate = select_audio_stream(info.candidates)
        if candidate is None:
            raise ServiceError(
                ErrorKind.NO_SUITABLE_FORMAT,
                f"None of {len(info.candidates)} formats carries audio",
            )
        return candidate

    def _options(self, target_format: TargetFormat, title: str, author: str,
                 duration_seconds: int) -> TranscodeOptions:
        return TranscodeOptions(
            target_format=target_format,
            bitrate_kbps=self._config.audio_bitrate_kbps,
            channels=self._config.audio_channels,
            sample_rate=self._config.audio_sample_rate,
            metadata={"title": title, "artist": author},
            duration_seconds=duration_seconds or None,
        )

    async def describe(self, source_url: str) -> Dict[str, Any]:
        """Metadata plus the audio formats on offer, best first."""
        ref = self.resolve(source_url)
        info = await self._catalog.fetch_info(ref)
        formats = list_audio_formats(info.candidates)
        if not formats:
            raise ServiceError(ErrorKind.NO_SUITABLE_FORMAT, "No audio formats available for this video")
        return {
            "videoId": ref.content_id,
            "title": info.title,
            "author": info.author,
            "lengthSeconds": info.duration_seconds,
            "thumbnails": info.thumbnails,
            "description": info.description,
            "uploadDate": info.upload_date,
            "viewCount": info.view_count,
            "audioFormats": formats,
            "recommendedFormat": formats[0],
        }

    async def check(self, source_url: str) -> Dict[str, Any]:
        ref = self.resolve(source_url)
        info = await self._catalog.fetch_info(ref)
        return {
            "isDownloadable": any(c.has_audio for c in info.candidates),
            "title": info.title,
            "duration": info.duration_seconds,
        }

    # ── Two-phase mode ────────────────────────────────────────────────

    async def submit(
        self,
        source_url: str,
        target_format: TargetFormat = TargetFormat.MP3,
        quality: str = "highest",
    ) -> SubmitResult:
        """Register a job and start its pipeline in the background.

        Everything that can fail before the job exists (bad URL, catalog
        errors, no audio) is raised here and leaves no trace.
        """
        ref = self.resolve(source_url)
        info = await self._catalog.fetch_info(ref)
        candidate = self._select(info)
        logger.info(
            "Selected format: %s, Quality: %skbps (requested %s)",
            candidate.format_id, candidate.audio_bitrate_kbps or "unknown", quality,
        )

        job = self._registry.create(
            content_id=ref.content_id,
            title=info.title,
            author=info.author,
            duration_seconds=info.duration_seconds,
            target_format=target_format,
            source_container=candidate.container,
            source_format_id=candidate.format_id,
            estimated_size_bytes=candidate.content_length_bytes,
        )
        task = asyncio.create_task(self._run(job, candidate), name=f"job-{job.job_id}")
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)

        return SubmitResult(
            job_id=job.job_id,
            content_id=ref.content_id,
            title=info.title,
            author=info.author,
            duration_seconds=info.duration_seconds,
            filename=job.output_filename,
            estimated_size_bytes=candidate.content_length_bytes,
        )

    async def _run(self, job: Job, candidate: StreamCandidate) -> None:
        job_id = job.job_id
        try:
            job = self._registry.transition(job_id, JobState.FETCHING)
            logger.info("Starting download for: %s", job.title)
            channel = make_channel(self._config.pipeline_buffer_chunks)
            async with open_sink(job.temp_path) as sink:
                _, written = await run_stages(
                    pump(self._catalog.open_stream(candidate), channel),
                    drain_to_file(channel, sink),
                )
            logger.info("Download completed (%d bytes), starting conversion", written)

            job = self._registry.transition(job_id, JobState.TRANSCODING)
            await self._transcoder.transcode_file(
                job.temp_path,
                job.partial_path,
                self._options(job.target_format, job.title, job.author, job.duration_seconds),
                on_progress=lambda pct: self._registry.record_progress(job_id, pct),
            )
            try:
                self._store.publish(job.partial_path, job.output_path)
            except OSError as e:
                raise ServiceError(ErrorKind.PIPELINE_IO, f"Publish failed: {e}") from e

            self._store.discard(job.temp_path)
            self._registry.transition(job_id, JobState.COMPLETED)
        except asyncio.CancelledError:
            self._abandon(job, ErrorKind.PIPELINE_IO, "Pipeline cancelled")
            raise
        except ServiceError as e:
            self._abandon(job, e.kind, e.detail)
        except Exception as e:
            logger.exception("Job %s crashed", job_id)
            self._abandon(job, ErrorKind.PIPELINE_IO, f"{type(e).__name__}: {e}")

    def _abandon(self, job: Job, kind: ErrorKind, message: str) -> None:
        """Delete every artifact of a failed run, then record the failure."""
        logger.error("Job %s failed [%s]: %s", job.job_id, kind.value, message)
        self._store.discard(job.temp_path, job.partial_path, job.output_path)
        self._registry.fail(job.job_id, kind, message)

    # ── Direct-pipe mode ──────────────────────────────────────────────

    async def stream_direct(
        self,
        content_id: str,
        target_format: TargetFormat = TargetFormat.MP3,
    ) -> DirectStream:
        """Fetch and transcode straight into the caller's response, no temp file.

        The first encoded chunk is produced before this returns, so early
        failures still surface as ordinary errors. Later failures abort the
        body iterator.
        """
        if not is_valid_content_id(content_id):
            raise ServiceError(ErrorKind.UNRESOLVABLE_ID, f"Invalid video ID: {content_id}")
        ref = ContentRef(content_id=content_id, source_url=watch_url(content_id))
        info = await self._catalog.fetch_info(ref)
        candidate = self._select(info)
        logger.info("Streaming %s with format: %s", info.title, candidate.format_id)

        options = self._options(target_format, info.title, info.author, info.duration_seconds)
        chunks = self._transcoder.transcode_stream(self._catalog.open_stream(candidate), options)
        try:
            first = await chunks.__anext__()
        except StopAsyncIteration:
            raise ServiceError(ErrorKind.TRANSCODE_ERROR, "Transcoder produced no output")
        except BaseException:
            await chunks.aclose()
            raise

        return DirectStream(
            filename=f"{sanitize_filename(info.title)}.{target_format.value}",
            media_type=MEDIA_TYPES[target_format],
            body=self._relay(content_id, first, chunks),
        )

    @staticmethod
    async def _relay(content_id: str, first: bytes, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        try:
            yield first
            async for chunk in chunks:
                yield chunk
        except ServiceError as e:
            logger.error("Stream for %s aborted [%s]: %s", content_id, e.kind.value, e.detail)
            raise
        finally:
            await chunks.aclose()

    # ── Status & artifacts ────────────────────────────────────────────

    def get_job_status(self, job_id: str) -> JobStatusView:
        """Status from the registry; the staging area is only consulted for unknown ids."""
        job = self._registry.get(job_id) or self._registry.find_by_prefix(job_id)
        if job is None:
            return self._status_from_disk(job_id)

        status = _STATUS_FOR_STATE[job.state]
        view = JobStatusView(status=status, job_id=job.job_id)
        if status == JobStatus.PROCESSING:
            view.progress_percent = job.progress_percent
        elif status == JobStatus.FAILED:
            view.error_kind = job.error_kind
        elif status == JobStatus.COMPLETED:
            artifact = self._store.stat(job.output_path)
            if artifact is None:
                # Removed behind our back; treat as expired
                try:
                    self._registry.transition(job.job_id, JobState.EXPIRED)
                except InvalidTransition:
                    # The janitor got there first
                    pass
                return JobStatusView(status=JobStatus.NOT_FOUND, job_id=job.job_id)
            view.filename = job.output_filename
            view.filesize_bytes = artifact.size_bytes
            view.completed_at = job.completed_at
        return view

    def _status_from_disk(self, partial_id: str) -> JobStatusView:
        artifact = self._store.scan(partial_id)
        if artifact is None:
            return JobStatusView(status=JobStatus.NOT_FOUND)
        if artifact.is_temp:
            return JobStatusView(status=JobStatus.PROCESSING)
        return JobStatusView(
            status=JobStatus.COMPLETED,
            filename=artifact.filename,
            filesize_bytes=artifact.size_bytes,
            completed_at=datetime.fromtimestamp(artifact.modified_at, tz=timezone.utc),
        )

    def artifact_path(self, filename: str) -> str:
        path = self._store.resolve_published(filename)
        if path is None:
            raise ServiceError(ErrorKind.NOT_FOUND, f"File not found: {filename}")
        return path

    # ── Lifecycle ─────────────────────────────────────────────────────

    @property
    def active_runs(self) -> int:
        return len(self._runs)

    async def wait_idle(self) -> None:
        """Wait for every in-flight run to finish."""
        while self._runs:
            await asyncio.gather(*list(self._runs), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight runs; each cleans up its own artifacts."""
        runs = list(self._runs)
        for task in runs:
            task.cancel()
        if runs:
            await asyncio.gather(*runs, return_exceptions=True)
        # Runs cancelled before their first step never got to clean up
        for job in self._registry.list_jobs():
            if not job.is_terminal:
                self._abandon(job, ErrorKind.PIPELINE_IO, "Service shutting down")
        await self._catalog.close()
