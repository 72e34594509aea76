from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from clipseeker.errors import NoTranscriptAvailable
from clipseeker.models.records import TranscriptSegment
from clipseeker.services.caption_parser import CaptionParser
from clipseeker.services.relay_fetcher import DirectRelay, RelayFetcher
from clipseeker.services.transcript_extractor import (
    StrategyFailed,
    StrategyResult,
    TranscriptExtractor,
    WatchPageLoader,
    build_default_strategies,
    build_language_candidates,
    extract_caption_url,
    extract_player_response,
    normalize_caption_url,
    select_caption_track,
)

VIDEO_ID = "dQw4w9WgXcQ"
CAPTION_MARKUP = (
    '<transcript><text start="0" dur="2">first line</text>'
    '<text start="2" dur="3">second line</text></transcript>'
)

Handler = Callable[[httpx.Request], httpx.Response]


def _direct_fetcher(handler: Handler) -> RelayFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RelayFetcher(client, [DirectRelay()])


def _extractor(handler: Handler) -> TranscriptExtractor:
    fetcher = _direct_fetcher(handler)
    strategies = build_default_strategies(
        fetcher,
        CaptionParser(),
        languages=("en", "en-US", "en-GB"),
    )
    return TranscriptExtractor(fetcher, strategies, page_min_length=1)


def _unused_fetcher() -> RelayFetcher:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request {request.url}")

    return _direct_fetcher(handler)


class _FakeStrategy:
    def __init__(self, name: str, outcome: StrategyResult | Exception) -> None:
        self.name = name
        self._outcome = outcome
        self.calls = 0

    async def run(self, video_id: str, page: WatchPageLoader) -> StrategyResult:
        _ = (video_id, page)
        self.calls += 1
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome


def _result(*texts: str) -> StrategyResult:
    return StrategyResult(
        segments=[
            TranscriptSegment(start=float(index), duration=1.0, text=text)
            for index, text in enumerate(texts)
        ],
        language="en",
        is_auto_generated=False,
    )


@pytest.mark.asyncio
async def test_first_non_empty_strategy_wins() -> None:
    failing = _FakeStrategy("first", RuntimeError("boom"))
    empty = _FakeStrategy("second", _result())
    working = _FakeStrategy("third", _result("hello"))
    never_called = _FakeStrategy("fourth", _result("unused"))
    extractor = TranscriptExtractor(
        _unused_fetcher(),
        [failing, empty, working, never_called],
    )

    transcript = await extractor.extract(VIDEO_ID)

    assert transcript.strategy == "third"
    assert [segment.text for segment in transcript.segments] == ["hello"]
    assert (failing.calls, empty.calls, working.calls, never_called.calls) == (1, 1, 1, 0)


@pytest.mark.asyncio
async def test_all_strategies_failing_raises_with_attempt_details() -> None:
    extractor = TranscriptExtractor(
        _unused_fetcher(),
        [
            _FakeStrategy("timedtext", StrategyFailed("no captions")),
            _FakeStrategy("watch_page_caption_url", _result()),
            _FakeStrategy("player_response", ValueError()),
        ],
    )

    with pytest.raises(NoTranscriptAvailable) as exc_info:
        await extractor.extract(VIDEO_ID)

    error = exc_info.value
    assert error.video_id == VIDEO_ID
    assert error.attempted_strategies == (
        "timedtext",
        "watch_page_caption_url",
        "player_response",
    )
    assert [attempt.reason for attempt in error.attempts] == [
        "no captions",
        "empty transcript",
        "ValueError",
    ]


def test_extractor_requires_strategies() -> None:
    with pytest.raises(ValueError):
        TranscriptExtractor(_unused_fetcher(), [])


@pytest.mark.asyncio
async def test_timedtext_tries_language_candidates_in_order() -> None:
    requested: list[tuple[str | None, str | None]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/timedtext"
        language = request.url.params.get("lang")
        requested.append((language, request.url.params.get("kind")))
        if language == "en-US":
            return httpx.Response(200, text=CAPTION_MARKUP)
        return httpx.Response(200, text="")

    transcript = await _extractor(handler).extract(VIDEO_ID)

    assert transcript.strategy == "timedtext"
    assert transcript.language == "en-US"
    assert transcript.is_auto_generated is False
    assert [segment.text for segment in transcript.segments] == ["first line", "second line"]
    assert requested == [("en", None), ("en-US", None)]


@pytest.mark.asyncio
async def test_timedtext_falls_back_to_auto_generated_track() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("kind") == "asr":
            return httpx.Response(200, text=CAPTION_MARKUP)
        return httpx.Response(404)

    transcript = await _extractor(handler).extract(VIDEO_ID)

    assert transcript.strategy == "timedtext"
    assert transcript.language == "en"
    assert transcript.is_auto_generated is True


@pytest.mark.asyncio
async def test_watch_page_caption_url_is_unescaped_and_fetched() -> None:
    watch_html = (
        "<html><script>var data = {"
        r'"captionTracks":[{"baseUrl":"https:\/\/www.youtube.com\/api\/timedtext?v='
        + VIDEO_ID
        + r'\u0026lang=en\u0026kind=asr\u0026signature=abc","languageCode":"en"}]'
        "};</script></html>"
    )
    caption_requests: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/watch":
            return httpx.Response(200, text=watch_html)
        if "signature" in request.url.params:
            caption_requests.append(str(request.url))
            return httpx.Response(200, text=CAPTION_MARKUP)
        return httpx.Response(404)

    transcript = await _extractor(handler).extract(VIDEO_ID)

    assert transcript.strategy == "watch_page_caption_url"
    assert transcript.language == "en"
    assert transcript.is_auto_generated is True
    assert caption_requests == [
        f"https://www.youtube.com/api/timedtext?v={VIDEO_ID}&lang=en&kind=asr&signature=abc"
    ]


@pytest.mark.asyncio
async def test_player_response_selects_track_by_language() -> None:
    player_response = {
        "playabilityStatus": {"status": "OK", "reason": "curly } braces { inside"},
        "captions": {
            "playerCaptionsTracklistRenderer": {
                "captionTracks": [
                    {
                        "baseUrl": (
                            f"https://www.youtube.com/api/timedtext?v={VIDEO_ID}"
                            "&lang=de&signature=de"
                        ),
                        "languageCode": "de",
                    },
                    {
                        "baseUrl": (
                            f"https://www.youtube.com/api/timedtext?v={VIDEO_ID}"
                            "&lang=en&signature=en"
                        ),
                        "languageCode": "en",
                    },
                ]
            }
        },
    }
    watch_html = (
        "<html><script>var ytInitialPlayerResponse = "
        + json.dumps(player_response)
        + ";var other = {};</script></html>"
    )
    page_requests = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal page_requests
        if request.url.path == "/watch":
            page_requests += 1
            return httpx.Response(200, text=watch_html)
        if request.url.params.get("signature") == "en":
            return httpx.Response(200, text=CAPTION_MARKUP)
        return httpx.Response(404)

    transcript = await _extractor(handler).extract(VIDEO_ID)

    assert transcript.strategy == "player_response"
    assert transcript.language == "en"
    assert transcript.is_auto_generated is False
    assert page_requests == 1


@pytest.mark.asyncio
async def test_every_strategy_failing_fetches_watch_page_once() -> None:
    page_requests = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal page_requests
        if request.url.path == "/watch":
            page_requests += 1
        return httpx.Response(404)

    with pytest.raises(NoTranscriptAvailable) as exc_info:
        await _extractor(handler).extract(VIDEO_ID)

    assert exc_info.value.attempted_strategies == (
        "timedtext",
        "watch_page_caption_url",
        "player_response",
    )
    assert page_requests == 1


def test_build_language_candidates_appends_auto_generated_primary() -> None:
    candidates = build_language_candidates(["en", "en-US"])

    assert [(c.language, c.auto_generated) for c in candidates] == [
        ("en", False),
        ("en-US", False),
        ("en", True),
    ]
    assert candidates[-1].label == "en (auto-generated)"


@pytest.mark.parametrize(
    ("raw_url", "expected"),
    [
        (
            r"https:\/\/www.youtube.com\/api\/timedtext?v=x&lang=en",
            "https://www.youtube.com/api/timedtext?v=x&lang=en",
        ),
        ("//www.youtube.com/api/timedtext?v=x", "https://www.youtube.com/api/timedtext?v=x"),
        ("/api/timedtext?v=x", "https://www.youtube.com/api/timedtext?v=x"),
    ],
)
def test_normalize_caption_url(raw_url: str, expected: str) -> None:
    assert normalize_caption_url(raw_url) == expected


def test_extract_caption_url_returns_none_without_tracks() -> None:
    assert extract_caption_url('<html>"playabilityStatus":{}</html>') is None


def test_extract_player_response_handles_nested_braces_in_strings() -> None:
    html = 'ytInitialPlayerResponse={"a": {"b": "}{"}, "c": [1, 2]};</script>'

    assert extract_player_response(html) == {"a": {"b": "}{"}, "c": [1, 2]}
    assert extract_player_response("<html>nothing here</html>") is None


def test_select_caption_track_prefers_exact_then_prefix_then_first() -> None:
    tracks = [
        {"languageCode": "de"},
        {"languageCode": "en-GB"},
        {"languageCode": "en"},
    ]

    assert select_caption_track(tracks, "en") == {"languageCode": "en"}
    assert select_caption_track(tracks, "en-US") == {"languageCode": "en-GB"}
    assert select_caption_track(tracks, "fr") == {"languageCode": "de"}
    assert select_caption_track([], "en") is None
