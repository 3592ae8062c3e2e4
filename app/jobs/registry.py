"""In-memory job registry: the single source of truth for job state."""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from app.errors import ErrorKind
from app.jobs.models import InvalidTransition, Job, JobState, can_transition
from app.media.transcoder import TargetFormat
from app.storage.artifacts import (
    ArtifactStore,
    is_temp,
    output_filename,
    partial_filename,
    temp_filename,
)

logger = logging.getLogger(__name__)


class JobIdAllocator:
    """Millisecond-timestamp ids, strictly increasing within the process.

    When two submissions land in the same millisecond the later one is bumped
    past the previous id, so ids stay unique and sortable.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            candidate = int(self._clock() * 1000)
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return str(candidate)


class JobRegistry:
    """Owns every Job for the lifetime of the process.

    Each job is written only by its own pipeline run (plus the janitor for
    expiry); status queries read from any task. Updates replace the stored
    snapshot under a lock.
    """

    def __init__(self, store: ArtifactStore, id_allocator: Optional[JobIdAllocator] = None):
        self._store = store
        self._ids = id_allocator or JobIdAllocator()
        self._jobs: Dict[str, Job] = {}
        # Artifact name -> job id, for every name a job has used
        self._artifact_names: Dict[str, str] = {}
        self._lock = threading.Lock()

    def create(
        self,
        content_id: str,
        title: str,
        author: str,
        duration_seconds: int,
        target_format: TargetFormat = TargetFormat.MP3,
        source_container: str = "webm",
        source_format_id: Optional[str] = None,
        estimated_size_bytes: Optional[int] = None,
    ) -> Job:
        job_id = self._ids.next_id()
        fmt = TargetFormat(target_format).value
        temp_name = temp_filename(job_id, content_id, source_container)
        partial_name = partial_filename(job_id, content_id, fmt)
        final_name = output_filename(title, job_id, fmt)

        job = Job(
            job_id=job_id,
            content_id=content_id,
            title=title,
            author=author,
            duration_seconds=duration_seconds,
            target_format=TargetFormat(target_format),
            state=JobState.PENDING,
            temp_path=self._store.path_for(temp_name),
            partial_path=self._store.path_for(partial_name),
            output_path=self._store.path_for(final_name),
            output_filename=final_name,
            source_format_id=source_format_id,
            estimated_size_bytes=estimated_size_bytes,
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._jobs[job_id] = job
            for name in (temp_name, partial_name, final_name):
                self._artifact_names[name] = job_id
        logger.info("Job %s created for %s (%s)", job_id, content_id, title)
        return job

    def transition(self, job_id: str, new_state: JobState, **changes) -> Job:
        """Move a job along the state machine, applying ``changes`` in the same swap."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)
            if not can_transition(job.state, new_state):
                raise InvalidTransition(job_id, job.state, new_state)
            if new_state == JobState.COMPLETED:
                changes.setdefault("completed_at", datetime.now(timezone.utc))
                changes.setdefault("progress_percent", 100.0)
            updated = job.model_copy(update={**changes, "state": new_state})
            self._jobs[job_id] = updated
        logger.info("Job %s: %s -> %s", job_id, job.state.value, new_state.value)
        return updated

    def fail(self, job_id: str, kind: ErrorKind, message: str) -> Optional[Job]:
        """Move a live job to FAILED. Returns None if it is already terminal."""
        try:
            return self.transition(job_id, JobState.FAILED, error_kind=kind, error_message=message)
        except InvalidTransition as e:
            logger.warning("%s", e)
            return None

    def record_progress(self, job_id: str, percent: float) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.is_terminal:
                return
            self._jobs[job_id] = job.model_copy(update={"progress_percent": round(percent, 1)})

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def find_by_filename(self, filename: str) -> Optional[Job]:
        with self._lock:
            job_id = self._artifact_names.get(filename)
            return self._jobs.get(job_id) if job_id else None

    def find_by_prefix(self, partial_id: str) -> Optional[Job]:
        """Resolve a (partial) download id through the artifact names jobs have used.

        Published names win over temp names, matching how the staging area
        itself distinguishes ready from in-progress files.
        """
        if not partial_id:
            return None
        with self._lock:
            matches = [
                (name, job_id) for name, job_id in self._artifact_names.items()
                if partial_id in name
            ]
            matches.sort(key=lambda m: is_temp(m[0]))
            for _, job_id in matches:
                job = self._jobs.get(job_id)
                if job is not None:
                    return job
        return None

    def prune(self, cutoff: datetime) -> int:
        """Forget EXPIRED jobs, and FAILED jobs created before ``cutoff``.

        Their ids then resolve through the staging area like any unknown id.
        """
        with self._lock:
            stale = {
                job_id for job_id, job in self._jobs.items()
                if job.state == JobState.EXPIRED
                or (job.state == JobState.FAILED and job.created_at < cutoff)
            }
            for job_id in stale:
                del self._jobs[job_id]
            self._artifact_names = {
                name: job_id for name, job_id in self._artifact_names.items()
                if job_id not in stale
            }
        if stale:
            logger.info("Pruned %d finished job(s) from the registry", len(stale))
        return len(stale)

    def list_jobs(self) -> List[Job]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: int(j.job_id))
