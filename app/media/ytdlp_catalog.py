"""yt-dlp backed catalog: metadata lookup plus aiohttp streaming of a chosen format."""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
import yt_dlp

from app.errors import ErrorKind, ServiceError
from app.media.catalog import CatalogProvider, ContentRef, StreamCandidate, VideoInfo
from app.media.youtube import thumbnail_url

logger = logging.getLogger(__name__)

_NO_CODEC = (None, "", "none")


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return None


def candidate_from_format(fmt: Dict[str, Any]) -> StreamCandidate:
    """Map one yt-dlp ``formats`` entry to a StreamCandidate."""
    acodec = fmt.get("acodec")
    vcodec = fmt.get("vcodec")
    return StreamCandidate(
        has_audio=acodec not in _NO_CODEC,
        has_video=vcodec not in _NO_CODEC,
        container=fmt.get("ext") or "",
        audio_bitrate_kbps=_to_int(fmt.get("abr")),
        content_length_bytes=_to_int(fmt.get("filesize") or fmt.get("filesize_approx")),
        codec_id=acodec if acodec not in _NO_CODEC else "",
        format_id=str(fmt.get("format_id", "")),
        url=fmt.get("url") or "",
        http_headers=dict(fmt.get("http_headers") or {}),
    )


def video_info_from_ytdlp(info: Dict[str, Any], content_id: str) -> VideoInfo:
    """Map a yt-dlp info dict to VideoInfo."""
    thumbnails = info.get("thumbnails") or []
    if not thumbnails:
        thumbnails = [{"url": thumbnail_url(content_id)}]
    return VideoInfo(
        title=info.get("title") or "",
        author=info.get("uploader") or info.get("channel") or "",
        duration_seconds=_to_int(info.get("duration")) or 0,
        candidates=[candidate_from_format(f) for f in info.get("formats") or []],
        thumbnails=[{"url": t.get("url"), "width": t.get("width"), "height": t.get("height")}
                    for t in thumbnails if t.get("url")],
        description=info.get("description") or "",
        upload_date=info.get("upload_date"),
        view_count=_to_int(info.get("view_count")),
    )


def classify_provider_error(message: str) -> ServiceError:
    """Turn a yt-dlp failure message into a ServiceError kind."""
    lower = message.lower()
    if "private" in lower:
        return ServiceError(ErrorKind.PROVIDER_PRIVATE, message)
    if (
        "video unavailable" in lower
        or "not available" in lower
        or "does not exist" in lower
        or "removed" in lower
    ):
        return ServiceError(ErrorKind.PROVIDER_NOT_FOUND, message)
    return ServiceError(ErrorKind.PROVIDER_ERROR, message)


class YtDlpCatalog(CatalogProvider):
    """Catalog provider using yt-dlp for extraction and aiohttp for bytes."""

    def __init__(
        self,
        user_agent: str,
        chunk_size: int = 64 * 1024,
        timeout_seconds: int = 30,
    ):
        self._user_agent = user_agent
        self._chunk_size = chunk_size
        self._timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    # ── Metadata ──────────────────────────────────────────────────────

    def _extract(self, url: str) -> Dict[str, Any]:
        ydl_opts = {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "skip_download": True,
            "http_headers": {"User-Agent": self._user_agent},
        }
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            return ydl.extract_info(url, download=False)

    async def fetch_info(self, ref: ContentRef) -> VideoInfo:
        # extract_info blocks on network I/O; keep it off the event loop
        loop = asyncio.get_running_loop()
        try:
            info = await loop.run_in_executor(None, self._extract, ref.source_url)
        except yt_dlp.utils.DownloadError as e:
            raise classify_provider_error(str(e)) from e
        if not info:
            raise ServiceError(ErrorKind.PROVIDER_NOT_FOUND, f"No metadata for {ref.content_id}")
        return video_info_from_ytdlp(info, ref.content_id)

    # ── Bytes ─────────────────────────────────────────────────────────

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                total=None,
                sock_connect=self._timeout_seconds,
                sock_read=self._timeout_seconds,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def open_stream(self, candidate: StreamCandidate) -> AsyncIterator[bytes]:
        if not candidate.url:
            raise ServiceError(ErrorKind.PIPELINE_IO, f"Format {candidate.format_id} has no URL")

        headers = dict(candidate.http_headers)
        headers.setdefault("User-Agent", self._user_agent)

        received = 0
        next_report = 10
        try:
            async with self._get_session().get(candidate.url, headers=headers) as response:
                response.raise_for_status()
                total = response.content_length or 0
                logger.info("Source stream opened, total size: %d bytes", total)

                async for chunk in response.content.iter_chunked(self._chunk_size):
                    received += len(chunk)
                    if total and received * 100 // total >= next_report:
                        logger.debug("Download progress: %d%%", received * 100 // total)
                        next_report += 10
                    yield chunk

                if total and received < total:
                    raise ServiceError(
                        ErrorKind.PIPELINE_IO,
                        f"Source closed after {received} of {total} bytes",
                    )
        except aiohttp.ClientError as e:
            raise ServiceError(ErrorKind.PIPELINE_IO, f"Source stream failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise ServiceError(ErrorKind.PIPELINE_IO, "Source stream timed out") from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
