import pytest

from app.media.youtube import (
    extract_content_id,
    format_duration,
    format_file_size,
    is_valid_content_id,
    sanitize_filename,
    thumbnail_url,
    validate_url,
    watch_url,
)


@pytest.mark.parametrize("url", [
    "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    "http://youtube.com/watch?v=dQw4w9WgXcQ",
    "www.youtube.com/watch?v=dQw4w9WgXcQ",
    "youtube.com/shorts/dQw4w9WgXcQ",
    "https://youtu.be/dQw4w9WgXcQ",
])
def test_validate_url_accepts_youtube_hosts(url):
    assert validate_url(url)


@pytest.mark.parametrize("url", [
    "", None, 42, "https://www.google.com", "https://vimeo.com/123", "youtube.com",
])
def test_validate_url_rejects_others(url):
    assert not validate_url(url)


@pytest.mark.parametrize("url,expected", [
    ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=120", "dQw4w9WgXcQ"),
    ("https://www.youtube.com/watch?feature=share&v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("https://youtu.be/dQw4w9WgXcQ?si=abc", "dQw4w9WgXcQ"),
    ("https://www.youtube.com/embed/dQw4w9WgXcQ#t=3", "dQw4w9WgXcQ"),
    ("https://www.youtube.com/v/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("https://www.youtube.com/shorts/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("https://m.youtube.com/watch?v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
])
def test_extract_content_id(url, expected):
    assert extract_content_id(url) == expected


def test_extract_content_id_none_when_no_rule_matches():
    assert extract_content_id("https://www.youtube.com/channel/UC123") is None
    assert extract_content_id("") is None
    assert extract_content_id(None) is None


def test_content_id_helpers():
    assert is_valid_content_id("dQw4w9WgXcQ")
    assert not is_valid_content_id("short")
    assert not is_valid_content_id("../../etc/pa")
    assert watch_url("dQw4w9WgXcQ") == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    assert thumbnail_url("dQw4w9WgXcQ", "high").endswith("/dQw4w9WgXcQ/hqdefault.jpg")
    assert thumbnail_url("") == ""


TITLES = [
    "Hello World",
    'Video: "Test" <script>alert(1)</script>',
    "../../../etc/passwd",
    "  spaced\t\tout  title  ",
    "Ünïcödé — dashes & ampersands",
    "A" * 300,
    "!!!",
    "a/b\\c|d?e*f",
    "dots...and.more.",
]


@pytest.mark.parametrize("title", TITLES)
def test_sanitize_filename_is_idempotent_and_bounded(title):
    once = sanitize_filename(title)
    assert sanitize_filename(once) == once
    assert 0 < len(once) <= 100
    for ch in '<>:"/\\|?* \t':
        assert ch not in once


def test_sanitize_filename_examples():
    assert sanitize_filename("Hello World") == "Hello_World"
    assert sanitize_filename("Test Song: Live! <HD>") == "Test_Song_Live_HD"


@pytest.mark.parametrize("value", ["", None, 123, "!!!"])
def test_sanitize_filename_placeholder(value):
    assert sanitize_filename(value) == "untitled"


def test_format_duration():
    assert format_duration(0) == "0:00"
    assert format_duration(None) == "0:00"
    assert format_duration(225) == "3:45"
    assert format_duration(5025) == "1:23:45"


def test_format_file_size():
    assert format_file_size(0) == "0 B"
    assert format_file_size(512) == "512.0 B"
    assert format_file_size(1024) == "1.0 KB"
    assert format_file_size(1536 * 1024) == "1.5 MB"
    assert format_file_size(3 * 1024 ** 3) == "3.0 GB"
    assert format_file_size(2048 * 1024 ** 3) == "2048.0 GB"


def test_format_file_size_unit_grows_with_size():
    units = ["B", "KB", "MB", "GB"]
    previous = 0
    for n in [1, 1023, 1024, 10 ** 6, 1024 ** 2, 10 ** 9, 1024 ** 3, 1024 ** 4]:
        unit = units.index(format_file_size(n).split()[1])
        assert unit >= previous
        previous = unit
