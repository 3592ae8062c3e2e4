"""Staging area for partial and published audio files.

Naming convention (flat directory):
  temp_<job_id>_<content_id>.<container>      source bytes being fetched
  temp_<job_id>_<content_id>.<format>.part    transcoder output in progress
  <sanitized_title>_<job_id>.<format>         published, downloadable

The ``temp_`` prefix alone separates "still processing" from "ready".
Every name embeds the job id, so concurrent jobs never share a path.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from app.media.youtube import sanitize_filename

logger = logging.getLogger(__name__)

TEMP_PREFIX = "temp_"
PARTIAL_SUFFIX = ".part"


def temp_filename(job_id: str, content_id: str, container: str) -> str:
    return f"{TEMP_PREFIX}{job_id}_{content_id}.{container or 'bin'}"


def partial_filename(job_id: str, content_id: str, target_format: str) -> str:
    return f"{TEMP_PREFIX}{job_id}_{content_id}.{target_format}{PARTIAL_SUFFIX}"


def output_filename(title: str, job_id: str, target_format: str) -> str:
    return f"{sanitize_filename(title)}_{job_id}.{target_format}"


def is_temp(filename: str) -> bool:
    return filename.startswith(TEMP_PREFIX)


@dataclass
class ArtifactInfo:
    """One file found in the staging area."""
    filename: str
    path: str
    size_bytes: int
    modified_at: float

    @property
    def is_temp(self) -> bool:
        return is_temp(self.filename)


class ArtifactStore:
    """Owns the on-disk staging directory."""

    def __init__(self, base_dir: str):
        self._base_dir = os.path.abspath(base_dir)
        os.makedirs(self._base_dir, exist_ok=True)

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def path_for(self, filename: str) -> str:
        return os.path.join(self._base_dir, filename)

    def publish(self, partial_path: str, output_path: str) -> None:
        """Atomically move a finished partial file to its published name."""
        os.replace(partial_path, output_path)
        logger.info("File ready for download: %s", os.path.basename(output_path))

    def discard(self, *paths: Optional[str]) -> List[str]:
        """Best-effort delete. Missing files count as already deleted.

        Returns the paths actually removed. Never raises.
        """
        removed = []
        for path in paths:
            if not path:
                continue
            try:
                os.remove(path)
                removed.append(path)
                logger.debug("Deleted: %s", path)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Failed to delete %s: %s", path, e)
        return removed

    def list_artifacts(self) -> List[ArtifactInfo]:
        """Snapshot of the staging directory. Files may vanish right after."""
        found = []
        try:
            entries = list(os.scandir(self._base_dir))
        except FileNotFoundError:
            return found
        for entry in entries:
            try:
                if not entry.is_file():
                    continue
                stat = entry.stat()
            except FileNotFoundError:
                continue
            found.append(ArtifactInfo(
                filename=entry.name,
                path=entry.path,
                size_bytes=stat.st_size,
                modified_at=stat.st_mtime,
            ))
        return found

    def scan(self, partial_id: str) -> Optional[ArtifactInfo]:
        """Find an artifact whose name contains ``partial_id``; published files first."""
        if not partial_id:
            return None
        matches = [a for a in self.list_artifacts() if partial_id in a.filename]
        published = [a for a in matches if not a.is_temp]
        if published:
            return published[0]
        return matches[0] if matches else None

    def stat(self, path: str) -> Optional[ArtifactInfo]:
        try:
            st = os.stat(path)
        except FileNotFoundError:
            return None
        return ArtifactInfo(
            filename=os.path.basename(path),
            path=path,
            size_bytes=st.st_size,
            modified_at=st.st_mtime,
        )

    def resolve_published(self, filename: str) -> Optional[str]:
        """Path of a published artifact, or None if absent, partial, or not a plain name."""
        if not filename or os.path.basename(filename) != filename or filename in (".", ".."):
            return None
        if is_temp(filename):
            return None
        path = self.path_for(filename)
        if not os.path.isfile(path):
            return None
        return path
