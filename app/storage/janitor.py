"""Periodic sweep that deletes staging-area files older than the retention window."""

import asyncio
import logging
import os
import time
from datetime import datetime, timezone
from typing import Optional

from app.jobs.models import InvalidTransition, JobState
from app.jobs.registry import JobRegistry
from app.storage.artifacts import ArtifactStore

logger = logging.getLogger(__name__)


class Janitor:
    """Background cleaner for the staging directory.

    Applies to temp and published files alike, so temp files left behind by a
    crashed run are reaped too. A file that disappears between listing and
    delete was already cleaned by someone else and is skipped.
    """

    def __init__(
        self,
        store: ArtifactStore,
        registry: JobRegistry,
        retention_seconds: int = 3600,
        interval_seconds: int = 3600,
    ):
        self._store = store
        self._registry = registry
        self._retention_seconds = retention_seconds
        self._interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def sweep(self, now: Optional[float] = None) -> int:
        """Delete expired files. Returns how many were removed.

        Blocking filesystem work; the periodic loop runs it on a worker thread.
        Jobs expired by an earlier sweep are dropped from the registry first,
        so an expired job stays visible for one interval.
        """
        now = time.time() if now is None else now
        cutoff = datetime.fromtimestamp(now - self._retention_seconds, tz=timezone.utc)
        self._registry.prune(cutoff)
        removed = 0
        for artifact in self._store.list_artifacts():
            if now - artifact.modified_at <= self._retention_seconds:
                continue
            try:
                os.remove(artifact.path)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Could not remove %s: %s", artifact.filename, e)
                continue
            removed += 1
            logger.info("Cleaned up old file: %s", artifact.filename)
            self._expire_job(artifact.filename)
        return removed

    def _expire_job(self, filename: str) -> None:
        job = self._registry.find_by_filename(filename)
        if job is None or job.state != JobState.COMPLETED or job.output_filename != filename:
            return
        try:
            self._registry.transition(job.job_id, JobState.EXPIRED)
        except InvalidTransition:
            # A status lookup expired it first
            pass

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._interval_seconds)
            except asyncio.CancelledError:
                break
            try:
                removed = await asyncio.get_running_loop().run_in_executor(None, self.sweep)
            except Exception:
                logger.exception("Cleanup sweep failed")
                continue
            if removed:
                logger.info("Cleanup sweep removed %d file(s)", removed)
