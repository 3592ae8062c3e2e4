"""YouTube URL validation, ID extraction and display formatting.

Pure functions only: no state, no I/O.
"""

import math
import re
from typing import Optional

VALID_URL_PATTERN = re.compile(r"^(https?://)?(www\.)?(youtube\.com|youtu\.be)/.+")

# Tried in order; the first capture wins. Captures stop at &, ?, # or newline.
CONTENT_ID_PATTERNS = [
    re.compile(r"youtube\.com/watch\?v=([^&\n?#]+)"),
    re.compile(r"youtube\.com/watch\?.*&v=([^&\n?#]+)"),
    re.compile(r"youtu\.be/([^&\n?#]+)"),
    re.compile(r"youtube\.com/embed/([^&\n?#]+)"),
    re.compile(r"youtube\.com/v/([^&\n?#]+)"),
    re.compile(r"youtube\.com/shorts/([^&\n?#]+)"),
]

CONTENT_ID_FORMAT = re.compile(r"^[A-Za-z0-9_-]{11}$")

_ILLEGAL_FS_CHARS = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE = re.compile(r"\s+")
_NOT_SAFE = re.compile(r"[^A-Za-z0-9_.\-]")

MAX_FILENAME_LEN = 100
UNTITLED = "untitled"

SIZE_UNITS = ["B", "KB", "MB", "GB"]

THUMBNAIL_QUALITIES = {
    "default": "default",
    "medium": "mqdefault",
    "high": "hqdefault",
    "standard": "sddefault",
    "maxres": "maxresdefault",
}


def validate_url(url) -> bool:
    """True if ``url`` points at youtube.com or youtu.be (scheme and www optional)."""
    if not url or not isinstance(url, str):
        return False
    return VALID_URL_PATTERN.match(url) is not None


def extract_content_id(url) -> Optional[str]:
    """Return the video ID embedded in ``url``, or None."""
    if not url or not isinstance(url, str):
        return None
    for pattern in CONTENT_ID_PATTERNS:
        m = pattern.search(url)
        if m and m.group(1):
            return m.group(1)
    return None


def is_valid_content_id(content_id: str) -> bool:
    return bool(content_id) and CONTENT_ID_FORMAT.match(content_id) is not None


def watch_url(content_id: str) -> str:
    return f"https://www.youtube.com/watch?v={content_id}"


def thumbnail_url(content_id: str, quality: str = "medium") -> str:
    if not content_id:
        return ""
    name = THUMBNAIL_QUALITIES.get(quality, "mqdefault")
    return f"https://img.youtube.com/vi/{content_id}/{name}.jpg"


def sanitize_filename(name) -> str:
    """Make ``name`` safe to embed in a staging-area filename.

    Idempotent, at most 100 characters, only ``[A-Za-z0-9_.-]``.
    """
    if not name or not isinstance(name, str):
        return UNTITLED
    safe = _ILLEGAL_FS_CHARS.sub("", name)
    safe = _WHITESPACE.sub("_", safe)
    safe = _NOT_SAFE.sub("", safe)
    safe = safe[:MAX_FILENAME_LEN].strip()
    return safe or UNTITLED


def format_duration(seconds) -> str:
    """3:45 or 1:23:45."""
    if not seconds or not isinstance(seconds, (int, float)) or math.isnan(seconds):
        return "0:00"
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_file_size(num_bytes) -> str:
    """1.5 MB style sizes at 1024 thresholds."""
    if not num_bytes or not isinstance(num_bytes, (int, float)) or math.isnan(num_bytes):
        return "0 B"
    if num_bytes < 0:
        return "0 B"
    size = float(num_bytes)
    i = 0
    while size >= 1024 and i < len(SIZE_UNITS) - 1:
        size /= 1024
        i += 1
    return f"{size:.1f} {SIZE_UNITS[i]}"
