from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, cast

from clipseeker.errors import ChannelNotFound, ClipSeekerError
from clipseeker.models.records import (
    BatchProgress,
    ChannelRecord,
    ChannelScanResult,
    PartialReason,
)
from clipseeker.services.relay_fetcher import RelayFetcher

LOGGER = logging.getLogger("clipseeker.channels")

YOUTUBE_ORIGIN = "https://www.youtube.com"
BROWSE_API_URL = f"{YOUTUBE_ORIGIN}/youtubei/v1/browse"
DEFAULT_CLIENT_VERSION = "2.20231219.04.00"
DEFAULT_MAX_BATCHES = 20
DEFAULT_BATCH_DELAY_SECONDS = 1.0
PAGE_MIN_BODY_LENGTH = 1000
FALLBACK_SCAN_MAX_DEPTH = 8

INITIAL_DATA_MARKERS: tuple[str, ...] = (
    "ytInitialData = ",
    "ytInitialData=",
    'window["ytInitialData"] = ',
)
CHANNEL_NAME_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'<meta property="og:title" content="([^"]+)"'),
    re.compile(r"<title>([^<]+)</title>"),
)
CHANNEL_ID_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'"channelId":"(UC[A-Za-z0-9_-]+)"'),
    re.compile(r'"externalId":"(UC[A-Za-z0-9_-]+)"'),
    re.compile(r"channel/(UC[A-Za-z0-9_-]+)"),
)
SUBSCRIBER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'"subscriberCountText":\s*\{\s*"simpleText":\s*"([^"]+)"'),
    re.compile(
        r'"subscriberCountText":\s*\{\s*"accessibility":.*?"simpleText":\s*"([^"]+)"',
        re.DOTALL,
    ),
)
AVATAR_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'"avatar":\s*\{\s*"thumbnails":\s*\[\s*\{\s*"url":\s*"([^"]+)"'),
)
CONTINUATION_TOKEN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'"continuationCommand":\s*\{\s*"token":\s*"([^"]+)"'),
    re.compile(r'"continuation":\s*"([^"]+)"'),
    re.compile(r'continuationEndpoint.*?token.*?"([^"]{50,})"'),
)
VIDEO_ID_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'"videoId":"([A-Za-z0-9_-]{11})"'),
    re.compile(r"/watch\?v=([A-Za-z0-9_-]{11})"),
)
_VIDEO_ID_VALUE = re.compile(r"^[A-Za-z0-9_-]{11}$")

Sleep = Callable[[float], Awaitable[None]]
BatchCallback = Callable[[BatchProgress], None]


@dataclass(frozen=True)
class ListingPage:
    video_ids: list[str]
    continuation_token: str | None


class ChannelVideoCollector:
    def __init__(
        self,
        page_fetcher: RelayFetcher,
        api_fetcher: RelayFetcher,
        *,
        max_batches: int = DEFAULT_MAX_BATCHES,
        batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS,
        client_version: str = DEFAULT_CLIENT_VERSION,
        page_min_length: int = PAGE_MIN_BODY_LENGTH,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._page_fetcher = page_fetcher
        self._api_fetcher = api_fetcher
        self._max_batches = max(1, max_batches)
        self._batch_delay_seconds = max(0.0, batch_delay_seconds)
        self._client_version = client_version
        self._page_min_length = page_min_length
        self._sleep = sleep

    async def collect(
        self,
        identifier: str,
        is_handle: bool = False,
        on_batch: BatchCallback | None = None,
    ) -> ChannelScanResult:
        html = await self._fetch_first_page(identifier, is_handle)
        channel = extract_channel_info(html, identifier)

        # Insertion-ordered set: ids repeated across overlapping pages are kept once.
        video_ids: dict[str, None] = {}
        first_page = decode_channel_page(html)
        _merge(video_ids, first_page.video_ids)
        token = first_page.continuation_token
        batch = 1
        _report(on_batch, BatchProgress(batch=batch, videos_found=len(video_ids)))

        partial_reason: PartialReason | None = None
        while token is not None:
            if batch >= self._max_batches:
                partial_reason = "batch_cap"
                LOGGER.info(
                    "channel scan hit batch cap channel_id=%s batches=%s videos=%s",
                    channel.id,
                    batch,
                    len(video_ids),
                )
                break

            await self._sleep(self._batch_delay_seconds)
            next_batch = batch + 1
            try:
                page = await self._fetch_continuation(token)
            except Exception as exc:
                partial_reason = "continuation_failed"
                LOGGER.warning(
                    "channel continuation failed channel_id=%s batch=%s videos=%s reason=%s",
                    channel.id,
                    next_batch,
                    len(video_ids),
                    exc,
                )
                break

            if not page.video_ids:
                LOGGER.info(
                    "channel continuation empty channel_id=%s batch=%s", channel.id, next_batch
                )
                break

            batch = next_batch
            before = len(video_ids)
            _merge(video_ids, page.video_ids)
            token = page.continuation_token
            LOGGER.info(
                "channel batch fetched channel_id=%s batch=%s new=%s total=%s",
                channel.id,
                batch,
                len(video_ids) - before,
                len(video_ids),
            )
            _report(on_batch, BatchProgress(batch=batch, videos_found=len(video_ids)))

        return ChannelScanResult(
            channel=channel,
            video_ids=tuple(video_ids),
            batches=batch,
            partial_reason=partial_reason,
        )

    async def _fetch_first_page(self, identifier: str, is_handle: bool) -> str:
        urls = candidate_channel_urls(identifier, is_handle)
        for url in urls:
            try:
                html = await self._page_fetcher.fetch_text(url, min_length=self._page_min_length)
            except ClipSeekerError as exc:
                LOGGER.warning("channel url failed url=%s reason=%s", url, exc)
                continue
            LOGGER.info("channel page resolved url=%s", url)
            return html
        raise ChannelNotFound(identifier, tuple(urls))

    async def _fetch_continuation(self, token: str) -> ListingPage:
        body = {
            "context": {
                "client": {
                    "clientName": "WEB",
                    "clientVersion": self._client_version,
                    "hl": "en",
                    "gl": "US",
                }
            },
            "continuation": token,
        }
        raw = await self._api_fetcher.fetch_text(
            BROWSE_API_URL,
            method="POST",
            json_body=body,
            accept=is_json_object,
        )
        return decode_continuation_response(cast(dict[str, Any], json.loads(raw)))


def is_json_object(body: str) -> bool:
    try:
        return isinstance(json.loads(body), dict)
    except ValueError:
        return False


def candidate_channel_urls(identifier: str, is_handle: bool) -> list[str]:
    urls: list[str] = []
    if is_handle:
        urls.append(f"{YOUTUBE_ORIGIN}/@{identifier}/videos")
        urls.append(f"{YOUTUBE_ORIGIN}/{identifier}/videos")
    if identifier.startswith("UC"):
        urls.append(f"{YOUTUBE_ORIGIN}/channel/{identifier}/videos")
    urls.append(f"{YOUTUBE_ORIGIN}/c/{identifier}/videos")
    bare = f"{YOUTUBE_ORIGIN}/{identifier}/videos"
    if bare not in urls:
        urls.append(bare)
    return urls


def extract_channel_info(html: str, identifier: str) -> ChannelRecord:
    name = _first_match(CHANNEL_NAME_PATTERNS, html)
    if name is not None:
        name = name.removesuffix(" - YouTube").strip()
    avatar = _first_match(AVATAR_PATTERNS, html)
    return ChannelRecord(
        id=_first_match(CHANNEL_ID_PATTERNS, html) or identifier,
        name=name or identifier,
        identifier=identifier,
        subscriber_count=_first_match(SUBSCRIBER_PATTERNS, html),
        thumbnail=avatar.replace("\\u0026", "&") if avatar else None,
    )


def decode_channel_page(html: str) -> ListingPage:
    initial_data = extract_initial_data(html)
    if initial_data is not None:
        page = _decode_listing_items(_initial_listing_items(initial_data))
        if page.video_ids:
            return page

    video_ids: dict[str, None] = {}
    for pattern in VIDEO_ID_PATTERNS:
        _merge(video_ids, (match.group(1) for match in pattern.finditer(html)))
    return ListingPage(
        video_ids=list(video_ids),
        continuation_token=_first_match(CONTINUATION_TOKEN_PATTERNS, html),
    )


def decode_continuation_response(payload: dict[str, Any]) -> ListingPage:
    items = _continuation_items(payload)
    page = _decode_listing_items(items)
    if page.video_ids:
        return page

    video_ids: dict[str, None] = {}
    tokens: list[str] = []
    _scan_listing(items, video_ids, tokens, depth=0)
    return ListingPage(video_ids=list(video_ids), continuation_token=tokens[-1] if tokens else None)


def extract_initial_data(html: str) -> dict[str, Any] | None:
    decoder = json.JSONDecoder()
    for marker in INITIAL_DATA_MARKERS:
        index = html.find(marker)
        if index < 0:
            continue
        brace = html.find("{", index + len(marker))
        if brace < 0:
            continue
        try:
            parsed, _ = decoder.raw_decode(html, brace)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return cast(dict[str, Any], parsed)
    return None


def _initial_listing_items(initial_data: dict[str, Any]) -> list[Any]:
    contents = _as_dict(initial_data.get("contents"))
    results = _as_dict(contents.get("twoColumnBrowseResultsRenderer"))
    for raw_tab in _as_list(results.get("tabs")):
        tab = _as_dict(_as_dict(raw_tab).get("tabRenderer"))
        content = _as_dict(tab.get("content"))
        grid = _as_dict(content.get("richGridRenderer"))
        items = _as_list(grid.get("contents"))
        if items:
            return items
    return []


def _continuation_items(payload: dict[str, Any]) -> list[Any]:
    items: list[Any] = []
    for raw_action in _as_list(payload.get("onResponseReceivedActions")):
        action = _as_dict(raw_action)
        for key in ("appendContinuationItemsAction", "reloadContinuationItemsCommand"):
            container = _as_dict(action.get(key))
            items.extend(_as_list(container.get("continuationItems")))
    return items


def _decode_listing_items(items: Iterable[Any]) -> ListingPage:
    video_ids: dict[str, None] = {}
    token: str | None = None
    for raw_item in items:
        item = _as_dict(raw_item)
        rich_item = _as_dict(item.get("richItemRenderer"))
        if rich_item:
            content = _as_dict(rich_item.get("content"))
            video_id = _video_id_from_content(content)
            if video_id is not None:
                video_ids.setdefault(video_id, None)
            continue

        continuation = _as_dict(item.get("continuationItemRenderer"))
        if continuation:
            endpoint = _as_dict(continuation.get("continuationEndpoint"))
            command = _as_dict(endpoint.get("continuationCommand"))
            raw_token = command.get("token")
            if isinstance(raw_token, str) and raw_token:
                token = raw_token
    return ListingPage(video_ids=list(video_ids), continuation_token=token)


def _video_id_from_content(content: dict[str, Any]) -> str | None:
    for renderer_key in ("videoRenderer", "reelItemRenderer"):
        renderer = _as_dict(content.get(renderer_key))
        video_id = renderer.get("videoId")
        if isinstance(video_id, str) and _VIDEO_ID_VALUE.match(video_id):
            return video_id
    return None


def _scan_listing(
    node: Any,
    video_ids: dict[str, None],
    tokens: list[str],
    *,
    depth: int,
) -> None:
    # Bounded walk over continuation items only, for renderer shapes the decoder misses.
    if depth > FALLBACK_SCAN_MAX_DEPTH:
        return
    if isinstance(node, list):
        for child in cast(list[Any], node):
            _scan_listing(child, video_ids, tokens, depth=depth + 1)
        return
    if not isinstance(node, dict):
        return

    mapping = cast(dict[str, Any], node)
    video_id = mapping.get("videoId")
    if isinstance(video_id, str) and _VIDEO_ID_VALUE.match(video_id):
        video_ids.setdefault(video_id, None)
    command = _as_dict(mapping.get("continuationCommand"))
    token = command.get("token")
    if isinstance(token, str) and token:
        tokens.append(token)
    for child in mapping.values():
        if isinstance(child, (dict, list)):
            _scan_listing(child, video_ids, tokens, depth=depth + 1)


def _merge(video_ids: dict[str, None], new_ids: Iterable[str]) -> None:
    for video_id in new_ids:
        video_ids.setdefault(video_id, None)


def _report(on_batch: BatchCallback | None, progress: BatchProgress) -> None:
    if on_batch is not None:
        on_batch(progress)


def _first_match(patterns: Iterable[re.Pattern[str]], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            value = match.group(1).strip()
            if value:
                return value
    return None


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return cast(dict[str, Any], value)
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return cast(list[Any], value)
    return []
