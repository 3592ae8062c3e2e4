import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import pytest

# Ensure tests can import project packages regardless of how pytest is invoked.
ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from app.config import Settings
from app.jobs.registry import JobRegistry
from app.media.catalog import CatalogProvider, StreamCandidate, VideoInfo
from app.media.transcoder import Transcoder
from app.storage.artifacts import ArtifactStore

VIDEO_ID = "dQw4w9WgXcQ"
VIDEO_URL = f"https://www.youtube.com/watch?v={VIDEO_ID}"

AUDIO_ONLY_128 = StreamCandidate(
    has_audio=True, has_video=False, container="webm", audio_bitrate_kbps=128,
    content_length_bytes=4096, codec_id="opus", format_id="251", url="https://cdn/251",
)
MUXED_70 = StreamCandidate(
    has_audio=True, has_video=True, container="mp4", audio_bitrate_kbps=70,
    content_length_bytes=9000, codec_id="mp4a.40.2", format_id="18", url="https://cdn/18",
)


def make_info(candidates=None, title="Test Song: Live! <HD>") -> VideoInfo:
    return VideoInfo(
        title=title,
        author="Test Artist",
        duration_seconds=212,
        candidates=list(candidates if candidates is not None else [AUDIO_ONLY_128, MUXED_70]),
        thumbnails=[{"url": "https://img/thumb.jpg"}],
    )


class FakeCatalog(CatalogProvider):
    """Catalog that serves canned metadata and bytes."""

    def __init__(self, info: Optional[VideoInfo] = None, error: Optional[Exception] = None,
                 chunks: Optional[List[bytes]] = None, stream_error: Optional[Exception] = None):
        self.info = info or make_info()
        self.error = error
        self.chunks = chunks if chunks is not None else [b"audio-", b"bytes-", b"here"]
        self.stream_error = stream_error
        self.lookups = []
        self.opened = []
        self.closed = False

    async def fetch_info(self, ref):
        self.lookups.append(ref)
        if self.error is not None:
            raise self.error
        return self.info

    async def open_stream(self, candidate: StreamCandidate):
        self.opened.append(candidate)
        for chunk in self.chunks:
            await asyncio.sleep(0)
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error

    async def close(self):
        self.closed = True


class FakeTranscoder(Transcoder):
    """Prefixes an ID3 marker (file mode) or upper-cases bytes (stream mode)."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls = []

    async def transcode_file(self, input_path, output_path, options, on_progress=None):
        self.calls.append((input_path, output_path, options))
        with open(input_path, "rb") as f:
            data = f.read()
        with open(output_path, "wb") as f:
            f.write(b"ID3" + data[: len(data) // 2])
        if on_progress is not None:
            on_progress(50.0)
        if self.error is not None:
            raise self.error
        with open(output_path, "ab") as f:
            f.write(data[len(data) // 2:])

    async def transcode_stream(self, source, options):
        self.calls.append(("pipe:0", "pipe:1", options))
        async for chunk in source:
            if self.error is not None:
                raise self.error
            yield chunk.upper()


@pytest.fixture
def config(tmp_path) -> Settings:
    return Settings(downloads_dir=str(tmp_path / "downloads"), environment="production")


@pytest.fixture
def store(config) -> ArtifactStore:
    return ArtifactStore(config.downloads_dir)


@pytest.fixture
def registry(store) -> JobRegistry:
    return JobRegistry(store)
