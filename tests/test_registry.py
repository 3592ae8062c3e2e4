import os
from datetime import datetime, timedelta, timezone

import pytest

from app.errors import ErrorKind
from app.jobs.models import InvalidTransition, JobState, TRANSITIONS
from app.jobs.registry import JobIdAllocator, JobRegistry


def _create(registry, title="My Song", content_id="dQw4w9WgXcQ"):
    return registry.create(
        content_id=content_id, title=title, author="Someone",
        duration_seconds=100, source_container="webm",
    )


def test_ids_increase_even_when_clock_stalls():
    allocator = JobIdAllocator(clock=lambda: 1700000000.0)
    ids = [allocator.next_id() for _ in range(5)]
    assert ids == [str(1700000000000 + i) for i in range(5)]


def test_ids_never_go_backwards():
    ticks = iter([10.0, 9.0, 9.5, 11.0])
    allocator = JobIdAllocator(clock=lambda: next(ticks))
    ids = [int(allocator.next_id()) for _ in range(4)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 4


def test_create_derives_paths_from_job_id(registry, store):
    job = _create(registry, title="Test Song: Live!")
    assert job.state == JobState.PENDING
    assert job.output_filename == f"Test_Song_Live_{job.job_id}.mp3"
    assert os.path.dirname(job.output_path) == store.base_dir
    assert os.path.basename(job.temp_path) == f"temp_{job.job_id}_dQw4w9WgXcQ.webm"
    assert os.path.basename(job.partial_path).startswith(f"temp_{job.job_id}_")


def test_paths_are_unique_across_jobs(registry):
    jobs = [_create(registry, title="Same Title") for _ in range(50)]
    paths = [p for j in jobs for p in (j.temp_path, j.partial_path, j.output_path)]
    assert len(set(paths)) == len(paths)


def test_happy_path_transitions(registry):
    job = _create(registry)
    for state in (JobState.FETCHING, JobState.TRANSCODING, JobState.COMPLETED, JobState.EXPIRED):
        job = registry.transition(job.job_id, state)
        assert registry.get(job.job_id).state == state
    assert job.completed_at is not None
    assert job.progress_percent == 100.0


def test_invalid_transitions_raise(registry):
    job = _create(registry)
    with pytest.raises(InvalidTransition):
        registry.transition(job.job_id, JobState.COMPLETED)
    registry.transition(job.job_id, JobState.FETCHING)
    with pytest.raises(InvalidTransition):
        registry.transition(job.job_id, JobState.PENDING)
    with pytest.raises(KeyError):
        registry.transition("nope", JobState.FETCHING)


def test_nothing_reenters_pending():
    assert all(JobState.PENDING not in targets for targets in TRANSITIONS.values())
    assert TRANSITIONS[JobState.FAILED] == frozenset()
    assert TRANSITIONS[JobState.COMPLETED] == frozenset({JobState.EXPIRED})


def test_fail_records_error_and_ignores_terminal_jobs(registry):
    job = _create(registry)
    registry.transition(job.job_id, JobState.FETCHING)
    failed = registry.fail(job.job_id, ErrorKind.PIPELINE_IO, "socket closed")
    assert failed.state == JobState.FAILED
    assert failed.error_kind == ErrorKind.PIPELINE_IO
    assert failed.error_message == "socket closed"
    assert registry.fail(job.job_id, ErrorKind.TRANSCODE_ERROR, "again") is None


def test_snapshots_are_not_mutated_by_later_updates(registry):
    job = _create(registry)
    before = registry.get(job.job_id)
    registry.transition(job.job_id, JobState.FETCHING)
    registry.record_progress(job.job_id, 42.0)
    assert before.state == JobState.PENDING
    assert registry.get(job.job_id).progress_percent == 42.0


def test_find_by_prefix_uses_artifact_names(registry):
    first = _create(registry, title="First")
    second = _create(registry, title="Second")
    assert registry.find_by_prefix(first.job_id).job_id == first.job_id
    assert registry.find_by_prefix(second.job_id).job_id == second.job_id
    assert registry.find_by_prefix("Second_").job_id == second.job_id
    assert registry.find_by_prefix("no-such-id") is None
    assert registry.find_by_prefix("") is None


def test_find_by_filename(registry):
    job = _create(registry)
    assert registry.find_by_filename(job.output_filename).job_id == job.job_id
    assert registry.find_by_filename("other.mp3") is None


def test_timestamps_are_utc_aware(registry):
    job = _create(registry)
    assert job.created_at.tzinfo is not None
    for state in (JobState.FETCHING, JobState.TRANSCODING, JobState.COMPLETED):
        job = registry.transition(job.job_id, state)
    assert job.completed_at.utcoffset() == timedelta(0)


def test_prune_forgets_expired_and_old_failed_jobs(registry):
    failed = _create(registry, title="Failed")
    registry.fail(failed.job_id, ErrorKind.PIPELINE_IO, "socket closed")
    expired = _create(registry, title="Expired")
    kept = _create(registry, title="Kept")
    for job in (expired, kept):
        for state in (JobState.FETCHING, JobState.TRANSCODING, JobState.COMPLETED):
            registry.transition(job.job_id, state)
    registry.transition(expired.job_id, JobState.EXPIRED)

    now = datetime.now(timezone.utc)
    assert registry.prune(now - timedelta(hours=1)) == 1
    assert registry.get(expired.job_id) is None
    assert registry.find_by_prefix(expired.job_id) is None
    assert registry.find_by_filename(expired.output_filename) is None
    assert registry.get(failed.job_id) is not None

    assert registry.prune(now + timedelta(seconds=1)) == 1
    assert [j.job_id for j in registry.list_jobs()] == [kept.job_id]
    assert registry.find_by_filename(kept.output_filename).job_id == kept.job_id
