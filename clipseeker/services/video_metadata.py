from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, cast
from urllib.parse import urlencode

from clipseeker.errors import ClipSeekerError
from clipseeker.services.relay_fetcher import RelayFetcher
from clipseeker.services.youtube_urls import thumbnail_url, watch_url

LOGGER = logging.getLogger("clipseeker.metadata")

OEMBED_URL = "https://www.youtube.com/oembed"


@dataclass(frozen=True)
class VideoInfo:
    video_id: str
    title: str
    author: str
    thumbnail: str
    author_url: str | None = None
    from_fallback: bool = False


class VideoMetadataService:
    def __init__(self, fetcher: RelayFetcher) -> None:
        self._fetcher = fetcher

    async def fetch(self, video_id: str) -> VideoInfo:
        url = f"{OEMBED_URL}?{urlencode({'url': watch_url(video_id), 'format': 'json'})}"
        try:
            raw = await self._fetcher.fetch_text(url)
            payload = _parse_json_dict(raw)
        except ClipSeekerError as exc:
            LOGGER.warning("oembed lookup failed video_id=%s reason=%s", video_id, exc)
            return placeholder_info(video_id)

        title = _coerce_nonempty_string(payload.get("title"))
        if title is None:
            LOGGER.warning("oembed lookup returned no title video_id=%s", video_id)
            return placeholder_info(video_id)

        return VideoInfo(
            video_id=video_id,
            title=title,
            author=_coerce_nonempty_string(payload.get("author_name")) or "Unknown",
            thumbnail=thumbnail_url(video_id, "hqdefault"),
            author_url=_coerce_nonempty_string(payload.get("author_url")),
        )


def placeholder_info(video_id: str) -> VideoInfo:
    return VideoInfo(
        video_id=video_id,
        title=f"Video {video_id}",
        author="Unknown",
        thumbnail=thumbnail_url(video_id, "hqdefault"),
        from_fallback=True,
    )


def _parse_json_dict(raw_body: str) -> dict[str, Any]:
    if not raw_body.strip():
        return {}
    try:
        parsed = json.loads(raw_body)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, dict):
        return cast(dict[str, Any], parsed)
    return {}


def _coerce_nonempty_string(raw_value: object) -> str | None:
    if not isinstance(raw_value, str):
        return None
    stripped = raw_value.strip()
    return stripped or None
