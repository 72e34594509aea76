from __future__ import annotations

import pytest

from clipseeker.services.youtube_urls import (
    ParsedUrl,
    embed_url,
    format_duration,
    format_timestamp,
    is_video_id,
    parse_timestamp,
    parse_youtube_url,
    thumbnail_url,
    watch_url,
)


@pytest.mark.parametrize(
    "url",
    [
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "https://youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ&list=PL1234567890",
        "https://youtu.be/dQw4w9WgXcQ?t=42",
        "https://www.youtube.com/embed/dQw4w9WgXcQ",
        "https://www.youtube.com/v/dQw4w9WgXcQ",
        "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        "https://www.youtube.com/live/dQw4w9WgXcQ",
    ],
)
def test_parse_video_urls(url: str) -> None:
    assert parse_youtube_url(url) == ParsedUrl(kind="video", video_id="dQw4w9WgXcQ")


@pytest.mark.parametrize(
    ("url", "identifier", "is_handle"),
    [
        (
            "https://www.youtube.com/channel/UCuAXFkgsw1L7xaCfnd5JJOw",
            "UCuAXFkgsw1L7xaCfnd5JJOw",
            False,
        ),
        ("https://www.youtube.com/@veritasium/videos", "veritasium", True),
        ("https://www.youtube.com/c/LinusTechTips", "LinusTechTips", False),
        ("https://www.youtube.com/user/pewdiepie", "pewdiepie", False),
        ("https://www.youtube.com/Computerphile", "Computerphile", True),
    ],
)
def test_parse_channel_urls(url: str, identifier: str, is_handle: bool) -> None:
    assert parse_youtube_url(url) == ParsedUrl(
        kind="channel",
        channel_identifier=identifier,
        is_handle=is_handle,
    )


def test_parse_playlist_url() -> None:
    assert parse_youtube_url("https://www.youtube.com/playlist?list=PLabc_123") == ParsedUrl(
        kind="playlist",
        playlist_id="PLabc_123",
    )


@pytest.mark.parametrize(
    "url",
    [
        None,
        "",
        "https://example.com/watch?v=dQw4w9WgXcQ-nope",
        "https://www.youtube.com/feed/subscriptions",
        "https://www.youtube.com/results?search_query=python",
        "just some words",
    ],
)
def test_parse_rejects_non_youtube_or_reserved(url: str | None) -> None:
    assert parse_youtube_url(url) is None


def test_is_video_id() -> None:
    assert is_video_id("dQw4w9WgXcQ") is True
    assert is_video_id("short") is False
    assert is_video_id("dQw4w9WgXcQ!") is False


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(None, "0:00"), (0, "0:00"), (-5, "0:00"), (59, "0:59"), (61, "1:01"), (3725, "1:02:05")],
)
def test_format_duration(seconds: float | None, expected: str) -> None:
    assert format_duration(seconds) == expected


def test_timestamps_round_trip_to_whole_seconds() -> None:
    assert format_timestamp(125.9) == "02:05"
    assert format_timestamp(None) == "00:00"
    assert parse_timestamp("[02:05]") == 125
    assert parse_timestamp("no timestamp") == 0


def test_url_builders() -> None:
    assert thumbnail_url("dQw4w9WgXcQ", "hqdefault") == (
        "https://img.youtube.com/vi/dQw4w9WgXcQ/hqdefault.jpg"
    )
    assert embed_url("dQw4w9WgXcQ", 42.7) == (
        "https://www.youtube.com/embed/dQw4w9WgXcQ?start=42&enablejsapi=1"
    )
    assert watch_url("dQw4w9WgXcQ") == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    assert watch_url("dQw4w9WgXcQ", 90.2) == "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=90s"
