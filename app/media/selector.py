"""Audio stream selection policy (highest bitrate, audio-only first)."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from app.media.catalog import StreamCandidate

logger = logging.getLogger(__name__)

# Storyboard "formats" carry no decodable audio
EXCLUDED_CONTAINERS = {"mhtml"}
LISTED_CONTAINERS = {"mp4", "m4a", "webm"}


def is_audio_only(candidate: StreamCandidate) -> bool:
    return (
        candidate.has_audio
        and not candidate.has_video
        and candidate.container not in EXCLUDED_CONTAINERS
    )


def _bitrate(candidate: StreamCandidate) -> int:
    return candidate.audio_bitrate_kbps or 0


def select_audio_stream(candidates: Sequence[StreamCandidate]) -> Optional[StreamCandidate]:
    """
    Pick the best source stream for audio extraction.

    Policy:
    1. Audio-only streams (no video, not mhtml) if any exist
    2. Otherwise any stream that carries audio
    3. Highest audio bitrate wins; unknown bitrate counts as 0
    4. Ties keep input order

    Returns None when nothing carries audio.
    """
    audio_only = [c for c in candidates if is_audio_only(c)]
    pool = audio_only or [c for c in candidates if c.has_audio]
    if not pool:
        return None

    # sorted() is stable, so equal bitrates keep catalog order
    selected = sorted(pool, key=_bitrate, reverse=True)[0]
    logger.info(
        "Selected format %s (%s, %s kbps, audio_only=%s)",
        selected.format_id or "?", selected.container,
        selected.audio_bitrate_kbps or "unknown", bool(audio_only),
    )
    return selected


def list_audio_formats(candidates: Sequence[StreamCandidate]) -> List[Dict[str, Any]]:
    """Audio-only mp4/webm formats, best first, shaped for the info endpoint."""
    listed = [
        c for c in candidates
        if c.has_audio and not c.has_video and c.container in LISTED_CONTAINERS
    ]
    listed = sorted(listed, key=_bitrate, reverse=True)
    return [
        {
            "itag": c.format_id,
            "container": c.container,
            "quality": f"{c.audio_bitrate_kbps}kbps" if c.audio_bitrate_kbps else "unknown",
            "filesize": c.content_length_bytes,
            "codec": c.codec_id,
        }
        for c in listed
    ]
