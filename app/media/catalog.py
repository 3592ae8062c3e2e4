"""Catalog provider interface and the data types it returns."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional


@dataclass(frozen=True)
class ContentRef:
    """A validated request for one source video."""
    content_id: str
    source_url: str


@dataclass(frozen=True)
class StreamCandidate:
    """One decodable rendition offered by the source."""
    has_audio: bool
    has_video: bool
    container: str
    audio_bitrate_kbps: Optional[int] = None
    content_length_bytes: Optional[int] = None
    codec_id: str = ""
    # Transport details, not part of the candidate's identity
    format_id: str = field(default="", compare=False)
    url: str = field(default="", compare=False, repr=False)
    http_headers: Dict[str, str] = field(default_factory=dict, compare=False, repr=False)


@dataclass
class VideoInfo:
    """Metadata and stream catalog for one video."""
    title: str
    author: str
    duration_seconds: int
    candidates: List[StreamCandidate] = field(default_factory=list)
    thumbnails: List[Dict[str, Any]] = field(default_factory=list)
    description: str = ""
    upload_date: Optional[str] = None
    view_count: Optional[int] = None


class CatalogProvider(ABC):
    """Source of video metadata and audio bytes.

    Implementations raise ``ServiceError`` with PROVIDER_NOT_FOUND,
    PROVIDER_PRIVATE or PROVIDER_ERROR from ``fetch_info`` and PIPELINE_IO
    from the stream returned by ``open_stream``.
    """

    @abstractmethod
    async def fetch_info(self, ref: ContentRef) -> VideoInfo:
        """Look up title, author, duration and candidate streams."""
        ...

    @abstractmethod
    def open_stream(self, candidate: StreamCandidate) -> AsyncIterator[bytes]:
        """Return an async iterator over the candidate's bytes."""
        ...

    async def close(self) -> None:
        """Release any pooled connections."""
