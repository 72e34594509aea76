from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, cast
from urllib.parse import urlencode

from clipseeker.errors import ClipSeekerError, NoTranscriptAvailable, StrategyAttempt
from clipseeker.models.records import ExtractedTranscript, TranscriptSegment
from clipseeker.services.caption_parser import CaptionParser, looks_like_captions
from clipseeker.services.relay_fetcher import RelayFetcher

LOGGER = logging.getLogger("clipseeker.transcripts")

YOUTUBE_ORIGIN = "https://www.youtube.com"
TIMEDTEXT_URL = f"{YOUTUBE_ORIGIN}/api/timedtext"
PAGE_MIN_BODY_LENGTH = 1000
AUTO_GENERATED_KIND = "asr"

CAPTION_URL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'"captionTracks":\s*\[\s*\{[^}]*"baseUrl"\s*:\s*"([^"]+)"'),
    re.compile(r'"baseUrl"\s*:\s*"(https://www\.youtube\.com/api/timedtext[^"]+)"'),
    re.compile(r'"baseUrl":"(https:\\/\\/www\.youtube\.com\\/api\\/timedtext[^"]+)"'),
)
PLAYER_RESPONSE_MARKERS: tuple[str, ...] = (
    "ytInitialPlayerResponse = ",
    "ytInitialPlayerResponse=",
)
_LANGUAGE_PARAM_PATTERN = re.compile(r"[?&]lang=([^&]+)")
_KIND_ASR_PATTERN = re.compile(r"[?&]kind=asr(?:&|$)")


@dataclass(frozen=True)
class LanguageCandidate:
    language: str
    auto_generated: bool = False

    @property
    def label(self) -> str:
        if self.auto_generated:
            return f"{self.language} (auto-generated)"
        return self.language


@dataclass(frozen=True)
class StrategyResult:
    segments: list[TranscriptSegment]
    language: str
    is_auto_generated: bool


class StrategyFailed(ClipSeekerError):
    pass


class WatchPageLoader:
    """Fetches a video's watch page at most once per extraction."""

    def __init__(
        self,
        fetcher: RelayFetcher,
        video_id: str,
        *,
        min_length: int = PAGE_MIN_BODY_LENGTH,
    ) -> None:
        self._fetcher = fetcher
        self._video_id = video_id
        self._min_length = min_length
        self._html: str | None = None
        self._error: ClipSeekerError | None = None

    @property
    def url(self) -> str:
        return f"{YOUTUBE_ORIGIN}/watch?v={self._video_id}"

    async def load(self) -> str:
        if self._error is not None:
            raise self._error
        if self._html is None:
            try:
                self._html = await self._fetcher.fetch_text(
                    self.url,
                    min_length=self._min_length,
                )
            except ClipSeekerError as exc:
                self._error = exc
                raise
        return self._html


class ExtractionStrategy(Protocol):
    name: str

    async def run(self, video_id: str, page: WatchPageLoader) -> StrategyResult:
        ...


class TimedTextStrategy:
    name = "timedtext"

    def __init__(
        self,
        fetcher: RelayFetcher,
        parser: CaptionParser,
        candidates: Sequence[LanguageCandidate],
    ) -> None:
        self._fetcher = fetcher
        self._parser = parser
        self._candidates = tuple(candidates)

    async def run(self, video_id: str, page: WatchPageLoader) -> StrategyResult:
        _ = page
        for candidate in self._candidates:
            params = {"v": video_id, "lang": candidate.language}
            if candidate.auto_generated:
                params["kind"] = AUTO_GENERATED_KIND
            url = f"{TIMEDTEXT_URL}?{urlencode(params)}"
            try:
                body = await self._fetcher.fetch_text(url)
            except ClipSeekerError as exc:
                LOGGER.info(
                    "timedtext candidate failed video_id=%s language=%s reason=%s",
                    video_id,
                    candidate.label,
                    exc,
                )
                continue
            if not looks_like_captions(body):
                continue
            segments = self._parser.parse(body)
            if segments:
                return StrategyResult(
                    segments=segments,
                    language=candidate.language,
                    is_auto_generated=candidate.auto_generated,
                )
        raise StrategyFailed(
            f"no captions for languages {', '.join(c.label for c in self._candidates)}"
        )


class WatchPageCaptionUrlStrategy:
    name = "watch_page_caption_url"

    def __init__(self, fetcher: RelayFetcher, parser: CaptionParser, *, language: str) -> None:
        self._fetcher = fetcher
        self._parser = parser
        self._language = language

    async def run(self, video_id: str, page: WatchPageLoader) -> StrategyResult:
        html = await page.load()
        caption_url = extract_caption_url(html)
        if caption_url is None:
            if '"playabilityStatus"' in html and "captionTracks" not in html:
                raise StrategyFailed("video page lists no caption tracks")
            raise StrategyFailed("could not find caption track url")

        body = await self._fetcher.fetch_text(caption_url)
        segments = self._parser.parse(body)
        if not segments:
            raise StrategyFailed("caption track was empty")
        return StrategyResult(
            segments=segments,
            language=_language_from_url(caption_url) or self._language,
            is_auto_generated=bool(_KIND_ASR_PATTERN.search(caption_url)),
        )


class PlayerResponseStrategy:
    name = "player_response"

    def __init__(self, fetcher: RelayFetcher, parser: CaptionParser, *, language: str) -> None:
        self._fetcher = fetcher
        self._parser = parser
        self._language = language

    async def run(self, video_id: str, page: WatchPageLoader) -> StrategyResult:
        html = await page.load()
        player_response = extract_player_response(html)
        if player_response is None:
            raise StrategyFailed("no embedded player response")

        tracks = caption_tracks(player_response)
        track = select_caption_track(tracks, self._language)
        if track is None:
            raise StrategyFailed("player response has no caption tracks")

        raw_url = track.get("baseUrl")
        if not isinstance(raw_url, str) or not raw_url:
            raise StrategyFailed("selected caption track has no url")

        body = await self._fetcher.fetch_text(normalize_caption_url(raw_url))
        segments = self._parser.parse(body)
        if not segments:
            raise StrategyFailed("caption track was empty")
        language = track.get("languageCode")
        return StrategyResult(
            segments=segments,
            language=language if isinstance(language, str) and language else self._language,
            is_auto_generated=track.get("kind") == AUTO_GENERATED_KIND,
        )


class TranscriptExtractor:
    def __init__(
        self,
        fetcher: RelayFetcher,
        strategies: Sequence[ExtractionStrategy],
        *,
        page_min_length: int = PAGE_MIN_BODY_LENGTH,
    ) -> None:
        if not strategies:
            raise ValueError("TranscriptExtractor needs at least one strategy.")
        self._fetcher = fetcher
        self._page_min_length = page_min_length
        self._strategies = tuple(strategies)

    @property
    def strategies(self) -> tuple[ExtractionStrategy, ...]:
        return self._strategies

    async def extract(self, video_id: str) -> ExtractedTranscript:
        page = WatchPageLoader(self._fetcher, video_id, min_length=self._page_min_length)
        attempts: list[StrategyAttempt] = []

        for strategy in self._strategies:
            try:
                result = await strategy.run(video_id, page)
            except Exception as exc:
                reason = str(exc) or type(exc).__name__
                attempts.append(StrategyAttempt(strategy=strategy.name, reason=reason))
                LOGGER.warning(
                    "transcript strategy failed video_id=%s strategy=%s reason=%s",
                    video_id,
                    strategy.name,
                    exc,
                )
                continue

            if not result.segments:
                attempts.append(StrategyAttempt(strategy=strategy.name, reason="empty transcript"))
                continue

            LOGGER.info(
                "transcript extracted video_id=%s strategy=%s segments=%s language=%s",
                video_id,
                strategy.name,
                len(result.segments),
                result.language,
            )
            return ExtractedTranscript(
                video_id=video_id,
                segments=tuple(result.segments),
                strategy=strategy.name,
                language=result.language,
                is_auto_generated=result.is_auto_generated,
            )

        raise NoTranscriptAvailable(video_id, tuple(attempts))


def build_language_candidates(languages: Sequence[str]) -> list[LanguageCandidate]:
    candidates = [LanguageCandidate(language=language) for language in languages]
    if languages:
        candidates.append(LanguageCandidate(language=languages[0], auto_generated=True))
    return candidates


def build_default_strategies(
    fetcher: RelayFetcher,
    parser: CaptionParser,
    *,
    languages: Sequence[str],
) -> list[ExtractionStrategy]:
    primary_language = languages[0] if languages else "en"
    return [
        TimedTextStrategy(fetcher, parser, build_language_candidates(languages)),
        WatchPageCaptionUrlStrategy(fetcher, parser, language=primary_language),
        PlayerResponseStrategy(fetcher, parser, language=primary_language),
    ]


def extract_caption_url(html: str) -> str | None:
    for pattern in CAPTION_URL_PATTERNS:
        match = pattern.search(html)
        if match:
            return normalize_caption_url(match.group(1))
    return None


def normalize_caption_url(raw_url: str) -> str:
    url = raw_url.replace("\\u0026", "&").replace("\\/", "/").replace('\\"', '"')
    if url.startswith("//"):
        return f"https:{url}"
    if url.startswith("/"):
        return f"{YOUTUBE_ORIGIN}{url}"
    return url


def extract_player_response(html: str) -> dict[str, Any] | None:
    decoder = json.JSONDecoder()
    for marker in PLAYER_RESPONSE_MARKERS:
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


def caption_tracks(player_response: dict[str, Any]) -> list[dict[str, Any]]:
    captions = _as_dict(player_response.get("captions"))
    renderer = _as_dict(captions.get("playerCaptionsTracklistRenderer"))
    raw_tracks = renderer.get("captionTracks")
    if not isinstance(raw_tracks, list):
        return []
    return [
        cast(dict[str, Any], track)
        for track in cast(list[Any], raw_tracks)
        if isinstance(track, dict)
    ]


def select_caption_track(
    tracks: Sequence[dict[str, Any]],
    language: str,
) -> dict[str, Any] | None:
    if not tracks:
        return None
    normalized = language.lower()
    for track in tracks:
        if str(track.get("languageCode", "")).lower() == normalized:
            return track
    prefix = normalized.split("-")[0]
    for track in tracks:
        if str(track.get("languageCode", "")).lower().startswith(prefix):
            return track
    return tracks[0]


def _language_from_url(url: str) -> str | None:
    match = _LANGUAGE_PARAM_PATTERN.search(url)
    if match is None:
        return None
    return match.group(1)


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return cast(dict[str, Any], value)
    return {}
