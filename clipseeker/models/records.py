"""Records shared by the acquisition pipeline, the local index and search."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Literal

from clipseeker.services.youtube_urls import format_duration

ScanPhase = Literal["fetching", "processing", "done"]
PartialReason = Literal["batch_cap", "continuation_failed"]


@dataclass(frozen=True)
class TranscriptSegment:
    start: float
    duration: float
    text: str

    @property
    def end(self) -> float:
        return self.start + self.duration

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start,
            "duration": self.duration,
            "end": self.end,
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> TranscriptSegment:
        return cls(
            start=float(payload["start"]),
            duration=float(payload["duration"]),
            text=str(payload["text"]),
        )


@dataclass(frozen=True)
class VideoRecord:
    """An indexed video. Replaced as a whole, never edited in place."""

    id: str
    title: str
    channel_name: str
    thumbnail: str
    thumbnail_high: str
    duration: int
    transcript: tuple[TranscriptSegment, ...]
    language: str
    is_auto_generated: bool
    processed_at: str
    channel_id: str | None = None

    @property
    def duration_formatted(self) -> str:
        return format_duration(self.duration)


@dataclass(frozen=True)
class ChannelRecord:
    id: str
    name: str
    identifier: str
    subscriber_count: str | None = None
    thumbnail: str | None = None

    @property
    def url(self) -> str:
        return f"https://www.youtube.com/channel/{self.id}"


@dataclass(frozen=True)
class FailedVideoRecord:
    id: str
    error: str
    added_at: str
    channel_id: str | None = None
    title: str | None = None


@dataclass(frozen=True)
class ExtractedTranscript:
    video_id: str
    segments: tuple[TranscriptSegment, ...]
    strategy: str
    language: str
    is_auto_generated: bool


@dataclass(frozen=True)
class BatchProgress:
    batch: int
    videos_found: int
    phase: ScanPhase = "fetching"


@dataclass(frozen=True)
class ChannelScanResult:
    channel: ChannelRecord
    video_ids: tuple[str, ...]
    batches: int
    partial_reason: PartialReason | None = None

    @property
    def total_found(self) -> int:
        return len(self.video_ids)

    @property
    def is_partial(self) -> bool:
        return self.partial_reason is not None

    @property
    def estimated_batches(self) -> int:
        return math.ceil(self.total_found / 30)


@dataclass(frozen=True)
class SearchMatch:
    segment: TranscriptSegment
    snippet: str
    highlights: tuple[tuple[int, int], ...]

    @property
    def start(self) -> float:
        return self.segment.start

    @property
    def text(self) -> str:
        return self.segment.text

    def render(self, open_marker: str = "<mark>", close_marker: str = "</mark>") -> str:
        parts: list[str] = []
        cursor = 0
        for span_start, span_end in self.highlights:
            parts.append(self.snippet[cursor:span_start])
            parts.append(open_marker + self.snippet[span_start:span_end] + close_marker)
            cursor = span_end
        parts.append(self.snippet[cursor:])
        return "".join(parts)


@dataclass(frozen=True)
class SearchResultGroup:
    video: VideoRecord
    matches: tuple[SearchMatch, ...] = field(default_factory=tuple)

    @property
    def total_matches(self) -> int:
        return len(self.matches)
