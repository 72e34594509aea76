from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Literal

VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")

_VIDEO_URL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/v/)"
        r"([A-Za-z0-9_-]{11})"
    ),
    re.compile(r"youtube\.com/watch\?(?:.*&)?v=([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/shorts/([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/live/([A-Za-z0-9_-]{11})"),
)
_PLAYLIST_URL_PATTERN = re.compile(r"youtube\.com/playlist\?list=([A-Za-z0-9_-]+)")
_CHANNEL_URL_PATTERNS: tuple[tuple[re.Pattern[str], bool], ...] = (
    (re.compile(r"youtube\.com/channel/([A-Za-z0-9_-]+)"), False),
    (re.compile(r"youtube\.com/@([A-Za-z0-9_.-]+)"), True),
    (re.compile(r"youtube\.com/c/([A-Za-z0-9_.-]+)"), False),
    (re.compile(r"youtube\.com/user/([A-Za-z0-9_.-]+)"), False),
)
_BARE_CHANNEL_URL_PATTERN = re.compile(
    r"(?:www\.)?youtube\.com/([A-Za-z][A-Za-z0-9_.-]{2,})(?:/.*)?$"
)
RESERVED_PATHS: frozenset[str] = frozenset(
    {
        "watch",
        "playlist",
        "channel",
        "c",
        "user",
        "feed",
        "results",
        "gaming",
        "music",
        "movies",
        "premium",
        "shorts",
        "live",
        "account",
        "reporthistory",
        "upload",
        "embed",
        "tv",
        "kids",
    }
)
_TIMESTAMP_PATTERN = re.compile(r"\[?(\d+):(\d+)\]?")


@dataclass(frozen=True)
class ParsedUrl:
    kind: Literal["video", "playlist", "channel"]
    video_id: str | None = None
    playlist_id: str | None = None
    channel_identifier: str | None = None
    is_handle: bool = False


def parse_youtube_url(raw_url: str | None) -> ParsedUrl | None:
    if not raw_url:
        return None
    url = raw_url.strip()

    # Video shapes first: watch URLs can also carry a list= parameter.
    for pattern in _VIDEO_URL_PATTERNS:
        match = pattern.search(url)
        if match:
            return ParsedUrl(kind="video", video_id=match.group(1))

    playlist_match = _PLAYLIST_URL_PATTERN.search(url)
    if playlist_match:
        return ParsedUrl(kind="playlist", playlist_id=playlist_match.group(1))

    for pattern, is_handle in _CHANNEL_URL_PATTERNS:
        match = pattern.search(url)
        if match:
            return ParsedUrl(
                kind="channel",
                channel_identifier=match.group(1),
                is_handle=is_handle,
            )

    bare_match = _BARE_CHANNEL_URL_PATTERN.search(url)
    if bare_match:
        identifier = bare_match.group(1)
        if identifier.lower() not in RESERVED_PATHS:
            return ParsedUrl(kind="channel", channel_identifier=identifier, is_handle=True)

    return None


def is_video_id(value: str) -> bool:
    return bool(VIDEO_ID_PATTERN.match(value))


def format_duration(seconds: float | None) -> str:
    if not seconds or seconds <= 0:
        return "0:00"
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_timestamp(seconds: float | None) -> str:
    if seconds is None or math.isnan(seconds):
        return "00:00"
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    return f"{minutes:02d}:{secs:02d}"


def parse_timestamp(timestamp: str) -> int:
    match = _TIMESTAMP_PATTERN.search(timestamp)
    if match is None:
        return 0
    return int(match.group(1)) * 60 + int(match.group(2))


def thumbnail_url(video_id: str, quality: str = "mqdefault") -> str:
    return f"https://img.youtube.com/vi/{video_id}/{quality}.jpg"


def embed_url(video_id: str, start_time: float = 0) -> str:
    return f"https://www.youtube.com/embed/{video_id}?start={math.floor(start_time)}&enablejsapi=1"


def watch_url(video_id: str, start_time: float | None = None) -> str:
    if start_time is None:
        return f"https://www.youtube.com/watch?v={video_id}"
    return f"https://www.youtube.com/watch?v={video_id}&t={math.floor(start_time)}s"
