from __future__ import annotations

import re

import pytest
from conftest import VideoFactory

from clipseeker.models.records import TranscriptSegment
from clipseeker.services.search_matcher import (
    SearchMatcher,
    build_snippet,
    compile_query,
    match_segment,
)


def test_single_matching_segment_scenario(make_video: VideoFactory) -> None:
    video = make_video(texts=("say hello world", "goodbye"))

    groups = SearchMatcher().search([video], "hello")

    assert len(groups) == 1
    group = groups[0]
    assert group.video is video
    assert group.total_matches == 1
    assert [match.start for match in group.matches] == [0.0]
    assert group.matches[0].snippet == "say hello world"
    assert group.matches[0].highlights == ((4, 9),)


def test_matching_is_case_insensitive(make_video: VideoFactory) -> None:
    video = make_video(texts=("Hello there", "nothing", "SAY HELLO"))

    groups = SearchMatcher().search([video], "hElLo")

    assert [match.text for match in groups[0].matches] == ["Hello there", "SAY HELLO"]


def test_videos_without_matches_are_excluded_and_order_is_kept(
    make_video: VideoFactory,
) -> None:
    first = make_video("aaaaaaaaaaa", texts=("the cat sat",))
    skipped = make_video("bbbbbbbbbbb", texts=("no felines here",))
    last = make_video("ccccccccccc", texts=("dog", "another cat", "cat again"))

    groups = SearchMatcher().search([first, skipped, last], "cat")

    assert [group.video.id for group in groups] == ["aaaaaaaaaaa", "ccccccccccc"]
    assert [match.start for match in groups[1].matches] == [10.0, 20.0]
    assert SearchMatcher.count_matches(groups) == 3


def test_matches_are_counted_per_segment(make_video: VideoFactory) -> None:
    video = make_video(texts=("ha ha ha",))

    groups = SearchMatcher().search([video], "ha")

    assert groups[0].total_matches == 1
    assert groups[0].matches[0].highlights == ((0, 2), (3, 5), (6, 8))


@pytest.mark.parametrize(
    ("query", "text", "expected_hits"),
    [
        ("c++", "I write C++ and c++ daily", 2),
        ("a.b", "axb a.b A.B", 2),
        ("(x)", "call (x) now", 1),
        ("[", "a [bracket", 1),
        ("$5", "costs $5", 1),
    ],
)
def test_metacharacter_queries_highlight_exactly_the_matches(
    query: str,
    text: str,
    expected_hits: int,
) -> None:
    segment = TranscriptSegment(start=0.0, duration=1.0, text=text)

    match = match_segment(segment, compile_query(query), context_chars=100)

    assert match is not None
    highlighted = [match.snippet[start:end] for start, end in match.highlights]
    assert len(highlighted) == expected_hits
    assert all(part.lower() == query.lower() for part in highlighted)
    assert len(highlighted) == match.snippet.lower().count(query.lower())


def test_metacharacter_query_does_not_match_as_pattern(make_video: VideoFactory) -> None:
    video = make_video(texts=("axb", "aab"))

    assert SearchMatcher().search([video], "a.b") == []


def test_snippet_is_windowed_with_ellipses() -> None:
    text = "a" * 10 + " target " + "b" * 10

    snippet, highlights = build_snippet(
        text,
        compile_query("target"),
        first_start=11,
        first_end=17,
        context_chars=5,
    )

    assert snippet == "...aaaa target bbbb..."
    assert highlights == ((8, 14),)


def test_ellipsis_markers_are_never_highlighted() -> None:
    segment = TranscriptSegment(start=0.0, duration=1.0, text="x" * 50 + "." + "y" * 50)

    match = match_segment(segment, compile_query("."), context_chars=5)

    assert match is not None
    assert match.snippet == "...xxxxx.yyyyy..."
    assert match.highlights == ((8, 9),)


def test_render_wraps_highlights_in_markers(make_video: VideoFactory) -> None:
    video = make_video(texts=("Python and python",))

    match = SearchMatcher().search([video], "python")[0].matches[0]

    assert match.render() == "<mark>Python</mark> and <mark>python</mark>"
    assert match.render("[", "]") == "[Python] and [python]"


def test_per_call_context_overrides_default(make_video: VideoFactory) -> None:
    video = make_video(texts=("one two three four five",))
    matcher = SearchMatcher(context_chars=0)

    narrow = matcher.search([video], "three")[0].matches[0]
    wide = matcher.search([video], "three", context_chars=4)[0].matches[0]

    assert narrow.snippet == "...three..."
    assert wide.snippet == "...two three fou..."


def test_search_is_idempotent(make_video: VideoFactory) -> None:
    videos = [
        make_video("aaaaaaaaaaa", texts=("alpha beta", "beta gamma")),
        make_video("bbbbbbbbbbb", texts=("gamma beta",)),
    ]
    matcher = SearchMatcher()

    assert matcher.search(videos, "beta") == matcher.search(videos, "beta")


def test_compile_query_escapes_literal_text() -> None:
    pattern = compile_query("a+b")

    assert pattern.flags & re.IGNORECASE
    assert pattern.search("A+B") is not None
    assert pattern.search("aab") is None
