"""Presence-based transcript search with context snippets and highlight spans.

Matching and highlighting share one escaped, case-insensitive pattern, so every
segment reported as a match has its occurrences highlighted and nothing else is.
A match is counted per segment: a segment that mentions the query twice is one
match with two highlight spans. Query gating (minimum length, emptiness) belongs
to the caller.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from clipseeker.models.records import (
    SearchMatch,
    SearchResultGroup,
    TranscriptSegment,
    VideoRecord,
)

ELLIPSIS = "..."
DEFAULT_CONTEXT_CHARS = 40


def compile_query(query: str) -> re.Pattern[str]:
    return re.compile(re.escape(query), re.IGNORECASE)


class SearchMatcher:
    def __init__(self, *, context_chars: int = DEFAULT_CONTEXT_CHARS) -> None:
        self._context_chars = max(0, context_chars)

    def search(
        self,
        videos: Iterable[VideoRecord],
        query: str,
        *,
        context_chars: int | None = None,
    ) -> list[SearchResultGroup]:
        pattern = compile_query(query)
        width = self._context_chars if context_chars is None else max(0, context_chars)

        groups: list[SearchResultGroup] = []
        for video in videos:
            matches = [
                match
                for match in (
                    match_segment(segment, pattern, context_chars=width)
                    for segment in video.transcript
                )
                if match is not None
            ]
            if matches:
                groups.append(SearchResultGroup(video=video, matches=tuple(matches)))
        return groups

    @staticmethod
    def count_matches(groups: Sequence[SearchResultGroup]) -> int:
        return sum(group.total_matches for group in groups)


def match_segment(
    segment: TranscriptSegment,
    pattern: re.Pattern[str],
    *,
    context_chars: int,
) -> SearchMatch | None:
    first = pattern.search(segment.text)
    if first is None:
        return None
    snippet, highlights = build_snippet(
        segment.text,
        pattern,
        first_start=first.start(),
        first_end=first.end(),
        context_chars=context_chars,
    )
    return SearchMatch(segment=segment, snippet=snippet, highlights=highlights)


def build_snippet(
    text: str,
    pattern: re.Pattern[str],
    *,
    first_start: int,
    first_end: int,
    context_chars: int,
) -> tuple[str, tuple[tuple[int, int], ...]]:
    window_start = max(0, first_start - context_chars)
    window_end = min(len(text), first_end + context_chars)
    window = text[window_start:window_end]

    prefix = ELLIPSIS if window_start > 0 else ""
    suffix = ELLIPSIS if window_end < len(text) else ""
    offset = len(prefix)
    # Spans are found on the window alone so ellipsis markers are never highlighted.
    highlights = tuple(
        (match.start() + offset, match.end() + offset)
        for match in pattern.finditer(window)
        if match.end() > match.start()
    )
    return f"{prefix}{window}{suffix}", highlights
