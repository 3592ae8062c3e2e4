"""Job record and lifecycle state machine."""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional
from pydantic import BaseModel

from app.errors import ErrorKind
from app.media.transcoder import TargetFormat


class JobState(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    TRANSCODING = "transcoding"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


# Allowed edges. Nothing re-enters PENDING.
TRANSITIONS: Dict[JobState, FrozenSet[JobState]] = {
    # PENDING -> FAILED covers a run cancelled before it starts fetching
    JobState.PENDING: frozenset({JobState.FETCHING, JobState.FAILED}),
    JobState.FETCHING: frozenset({JobState.TRANSCODING, JobState.FAILED}),
    JobState.TRANSCODING: frozenset({JobState.COMPLETED, JobState.FAILED}),
    JobState.COMPLETED: frozenset({JobState.EXPIRED}),
    JobState.FAILED: frozenset(),
    JobState.EXPIRED: frozenset(),
}

TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.EXPIRED})


class InvalidTransition(ValueError):
    def __init__(self, job_id: str, current: JobState, requested: JobState):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Job {job_id}: cannot move from {current.value} to {requested.value}")


def can_transition(current: JobState, requested: JobState) -> bool:
    return requested in TRANSITIONS[current]


class Job(BaseModel):
    """One fetch-transcode-publish request.

    The registry keeps one snapshot per job and replaces it whole on every
    update, so readers never see a half-applied change.
    """
    job_id: str
    content_id: str
    title: str
    author: str = ""
    duration_seconds: int = 0
    target_format: TargetFormat = TargetFormat.MP3
    state: JobState = JobState.PENDING
    temp_path: str
    partial_path: str
    output_path: str
    output_filename: str
    source_format_id: Optional[str] = None
    estimated_size_bytes: Optional[int] = None
    progress_percent: float = 0.0
    created_at: datetime
    completed_at: Optional[datetime] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES
