"""Audio transcoding through an ffmpeg subprocess.

Two entry points:
  transcode_file   - file in, file out (two-phase downloads)
  transcode_stream - bytes in through stdin, bytes out through stdout (direct streaming)

Either way the subprocess is killed and reaped on every exit path.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable, Deque, Dict, List, Optional

from app.errors import ErrorKind, ServiceError
from app.pipeline.stages import drain_to_writer, make_channel, pump, run_stages

logger = logging.getLogger(__name__)


class TargetFormat(str, Enum):
    MP3 = "mp3"


CODECS = {TargetFormat.MP3: "libmp3lame"}
MEDIA_TYPES = {TargetFormat.MP3: "audio/mpeg"}

# Tag-writing options per output container
CONTAINER_ARGS = {
    TargetFormat.MP3: ["-id3v2_version", "3", "-write_id3v1", "1"],
}

_TIME_RE = re.compile(r"time=(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_LINE_SPLIT = re.compile(rb"[\r\n]+")
STDERR_TAIL_LINES = 20

# Type alias for progress callbacks: fn(percent)
ProgressCallback = Callable[[float], None]


@dataclass
class TranscodeOptions:
    """Encoder settings for one run."""
    target_format: TargetFormat = TargetFormat.MP3
    bitrate_kbps: int = 192
    channels: int = 2
    sample_rate: int = 44100
    metadata: Dict[str, str] = field(default_factory=dict)
    duration_seconds: Optional[int] = None

    @property
    def codec(self) -> str:
        return CODECS[self.target_format]


def build_ffmpeg_args(binary: str, source: str, target: str, options: TranscodeOptions) -> List[str]:
    """Command line for one conversion. ``pipe:0``/``pipe:1`` select stdin/stdout."""
    args = [
        binary,
        "-hide_banner",
        "-y",
        "-i", source,
        "-vn",
        "-acodec", options.codec,
        "-b:a", f"{options.bitrate_kbps}k",
        "-ac", str(options.channels),
        "-ar", str(options.sample_rate),
        "-f", options.target_format.value,
    ]
    for key, value in options.metadata.items():
        if value:
            args.extend(["-metadata", f"{key}={value}"])
    args.extend(CONTAINER_ARGS.get(options.target_format, []))
    args.append(target)
    return args


def parse_progress(line: str, duration_seconds: Optional[int]) -> Optional[float]:
    """Percent complete from an ffmpeg status line, if it carries a timestamp."""
    if not duration_seconds:
        return None
    m = _TIME_RE.search(line)
    if not m:
        return None
    elapsed = int(m.group(1)) * 3600 + int(m.group(2)) * 60 + float(m.group(3))
    return min(100.0, elapsed * 100.0 / duration_seconds)


class Transcoder(ABC):
    """External codec engine contract."""

    @abstractmethod
    async def transcode_file(
        self,
        input_path: str,
        output_path: str,
        options: TranscodeOptions,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Convert ``input_path`` into ``output_path``. Raises ServiceError(TRANSCODE_ERROR)."""
        ...

    @abstractmethod
    def transcode_stream(
        self,
        source: AsyncIterator[bytes],
        options: TranscodeOptions,
    ) -> AsyncIterator[bytes]:
        """Convert a byte stream on the fly, yielding encoded chunks."""
        ...


async def _reap(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


class FfmpegTranscoder(Transcoder):
    """Transcoder backed by the ffmpeg binary."""

    def __init__(self, binary: str = "ffmpeg", chunk_size: int = 64 * 1024, buffer_chunks: int = 16):
        self._binary = binary
        self._chunk_size = chunk_size
        self._buffer_chunks = buffer_chunks

    async def _spawn(self, args: List[str], **pipes) -> asyncio.subprocess.Process:
        logger.info("FFmpeg started with command: %s", " ".join(args))
        try:
            return await asyncio.create_subprocess_exec(*args, **pipes)
        except OSError as e:
            raise ServiceError(ErrorKind.TRANSCODE_ERROR, f"Could not start ffmpeg: {e}") from e

    async def _watch_stderr(
        self,
        stream: asyncio.StreamReader,
        tail: Deque[str],
        duration_seconds: Optional[int],
        on_progress: Optional[ProgressCallback],
    ) -> None:
        """Keep the last stderr lines and report progress until ffmpeg closes stderr."""
        pending = b""
        while True:
            data = await stream.read(4096)
            if not data:
                break
            parts = _LINE_SPLIT.split(pending + data)
            pending = parts.pop()
            for raw in parts:
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                tail.append(line)
                percent = parse_progress(line, duration_seconds)
                if percent is not None:
                    logger.debug("Conversion progress: %d%%", percent)
                    if on_progress is not None:
                        on_progress(percent)
        if pending:
            tail.append(pending.decode("utf-8", errors="replace").strip())

    @staticmethod
    def _failure(returncode: int, tail: Deque[str]) -> ServiceError:
        return ServiceError(
            ErrorKind.TRANSCODE_ERROR,
            f"ffmpeg exited with code {returncode}: " + " | ".join(tail),
        )

    async def transcode_file(self, input_path, output_path, options, on_progress=None):
        args = build_ffmpeg_args(self._binary, input_path, output_path, options)
        proc = await self._spawn(
            args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        try:
            await self._watch_stderr(proc.stderr, tail, options.duration_seconds, on_progress)
            returncode = await proc.wait()
        finally:
            await _reap(proc)

        if returncode != 0:
            raise self._failure(returncode, tail)
        logger.info("Conversion completed successfully: %s", output_path)

    async def transcode_stream(self, source, options):
        args = build_ffmpeg_args(self._binary, "pipe:0", "pipe:1", options)
        proc = await self._spawn(
            args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        channel = make_channel(self._buffer_chunks)
        feeder = asyncio.ensure_future(
            run_stages(pump(source, channel), drain_to_writer(channel, proc.stdin))
        )
        watcher = asyncio.ensure_future(
            self._watch_stderr(proc.stderr, tail, options.duration_seconds, None)
        )
        try:
            while True:
                chunk = await proc.stdout.read(self._chunk_size)
                if not chunk:
                    break
                yield chunk

            returncode = await proc.wait()
            await watcher

            # A failed source closes ffmpeg's stdin early; report the source error
            if feeder.done() and not feeder.cancelled():
                error = feeder.exception()
                if isinstance(error, ServiceError):
                    raise error
            if returncode != 0:
                raise self._failure(returncode, tail)
            try:
                await feeder
            except (BrokenPipeError, ConnectionResetError) as e:
                raise ServiceError(ErrorKind.TRANSCODE_ERROR, f"ffmpeg closed its input: {e}") from e
            logger.info("Streaming conversion completed")
        finally:
            for task in (feeder, watcher):
                task.cancel()
            await asyncio.gather(feeder, watcher, return_exceptions=True)
            await _reap(proc)
