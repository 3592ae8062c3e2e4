import random

from app.media.catalog import StreamCandidate
from app.media.selector import is_audio_only, list_audio_formats, select_audio_stream


def _c(fid, audio=True, video=False, container="webm", abr=None):
    return StreamCandidate(
        has_audio=audio, has_video=video, container=container,
        audio_bitrate_kbps=abr, codec_id="opus", format_id=fid,
    )


def test_prefers_audio_only_over_higher_bitrate_muxed():
    candidates = [_c("18", video=True, container="mp4", abr=256), _c("140", abr=128)]
    assert select_audio_stream(candidates).format_id == "140"


def test_highest_bitrate_within_audio_only():
    candidates = [_c("249", abr=50), _c("251", abr=160), _c("250", abr=70)]
    assert select_audio_stream(candidates).format_id == "251"


def test_falls_back_to_muxed_when_no_audio_only():
    candidates = [
        _c("sb0", audio=False, video=True, container="mhtml"),
        _c("18", video=True, container="mp4", abr=96),
        _c("22", video=True, container="mp4", abr=192),
    ]
    assert select_audio_stream(candidates).format_id == "22"


def test_mhtml_is_never_audio_only():
    storyboard = _c("sb", container="mhtml", abr=999)
    assert not is_audio_only(storyboard)
    # Still audio-capable, so it is the fallback when nothing else exists
    assert select_audio_stream([storyboard]).format_id == "sb"
    assert select_audio_stream([storyboard, _c("140", abr=48)]).format_id == "140"


def test_unknown_bitrate_counts_as_zero_and_ties_keep_order():
    candidates = [_c("a"), _c("b", abr=0), _c("c")]
    assert select_audio_stream(candidates).format_id == "a"
    candidates = [_c("x", abr=128), _c("y", abr=128)]
    assert select_audio_stream(candidates).format_id == "x"
    assert select_audio_stream([_c("u"), _c("k", abr=1)]).format_id == "k"


def test_no_audio_returns_none():
    assert select_audio_stream([]) is None
    assert select_audio_stream([_c("137", audio=False, video=True, container="mp4")]) is None


def test_never_returns_video_when_audio_only_exists():
    rng = random.Random(1234)
    for _ in range(200):
        candidates = [
            _c(str(i), audio=rng.random() < 0.8, video=rng.random() < 0.5,
               container=rng.choice(["webm", "mp4", "m4a", "mhtml"]),
               abr=rng.choice([None, 48, 70, 128, 160, 256]))
            for i in range(rng.randint(1, 8))
        ]
        chosen = select_audio_stream(candidates)
        if any(is_audio_only(c) for c in candidates):
            assert chosen is not None
            assert not chosen.has_video
        if not any(c.has_audio for c in candidates):
            assert chosen is None


def test_list_audio_formats_shape_and_order():
    candidates = [
        _c("249", abr=50),
        _c("18", video=True, container="mp4", abr=96),
        _c("140", container="m4a", abr=129),
        _c("sb", container="mhtml"),
        _c("251", abr=160),
    ]
    formats = list_audio_formats(candidates)
    assert [f["itag"] for f in formats] == ["251", "140", "249"]
    assert formats[0]["quality"] == "160kbps"
    assert formats[0]["codec"] == "opus"
