"""Conversion of raw timed-text payloads into canonical transcript segments.

Two payload shapes are recognised:

* markup: ``<text start="1.5" dur="2.0">Hi &amp; bye</text>`` entries
* event JSON: ``{"events": [{"tStartMs": 1500, "dDurationMs": 2000, "segs": [...]}]}``

Segments keep source order. Entries whose text normalizes to nothing are
dropped without error.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Literal, cast

from clipseeker.models.records import TranscriptSegment

CaptionFormat = Literal["markup", "json_events"]

DEFAULT_FALLBACK_DURATION_SECONDS = 5.0

_TEXT_ENTRY_PATTERN = re.compile(r"<text\b([^>]*?)(?:/>|>([\s\S]*?)</text>)", re.IGNORECASE)
_ATTRIBUTE_PATTERN = re.compile(r"([A-Za-z_:][\w:.-]*)\s*=\s*(\"([^\"]*)\"|'([^']*)')")
_TAG_PATTERN = re.compile(r"<[^>]+>")
_WHITESPACE_PATTERN = re.compile(r"\s+")
_DECIMAL_ENTITY_PATTERN = re.compile(r"&#(\d+);")
_HEX_ENTITY_PATTERN = re.compile(r"&#x([0-9a-fA-F]+);")
NAMED_ENTITIES: tuple[tuple[str, str], ...] = (
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&apos;", "'"),
    ("&nbsp;", " "),
)


class CaptionParser:
    def __init__(self, *, fallback_duration_seconds: float = DEFAULT_FALLBACK_DURATION_SECONDS):
        if fallback_duration_seconds <= 0:
            raise ValueError("fallback_duration_seconds must be positive.")
        self._fallback_duration = float(fallback_duration_seconds)

    @property
    def fallback_duration_seconds(self) -> float:
        return self._fallback_duration

    def parse(self, raw: str) -> list[TranscriptSegment]:
        caption_format = detect_format(raw)
        if caption_format == "json_events":
            return self._parse_json_events(raw)
        if caption_format == "markup":
            return self._parse_markup(raw)
        return []

    def _parse_markup(self, raw: str) -> list[TranscriptSegment]:
        segments: list[TranscriptSegment] = []
        for match in _TEXT_ENTRY_PATTERN.finditer(raw):
            attributes = _parse_attributes(match.group(1))
            start = _coerce_seconds(attributes.get("start"))
            if start is None:
                continue
            duration = self._duration_or_fallback(_coerce_seconds(attributes.get("dur")))
            text = normalize_caption_text(match.group(2) or "")
            if not text:
                continue
            segments.append(TranscriptSegment(start=start, duration=duration, text=text))
        return segments

    def _parse_json_events(self, raw: str) -> list[TranscriptSegment]:
        payload = _load_json_object(raw)
        raw_events = payload.get("events")
        if not isinstance(raw_events, list):
            return []

        segments: list[TranscriptSegment] = []
        for raw_event in cast(list[Any], raw_events):
            if not isinstance(raw_event, dict):
                continue
            event = cast(dict[str, Any], raw_event)
            raw_segs = event.get("segs")
            if not isinstance(raw_segs, list):
                continue
            start_ms = _coerce_seconds(event.get("tStartMs"))
            if start_ms is None:
                continue
            duration_ms = _coerce_seconds(event.get("dDurationMs"))
            fragments = [
                str(seg.get("utf8", ""))
                for seg in cast(list[Any], raw_segs)
                if isinstance(seg, dict)
            ]
            text = normalize_caption_text("".join(fragments))
            if not text:
                continue
            duration = self._duration_or_fallback(
                duration_ms / 1000.0 if duration_ms is not None else None
            )
            segments.append(
                TranscriptSegment(start=start_ms / 1000.0, duration=duration, text=text)
            )
        return segments

    def _duration_or_fallback(self, duration: float | None) -> float:
        if duration is None or duration <= 0:
            return self._fallback_duration
        return duration


def detect_format(raw: str) -> CaptionFormat | None:
    stripped = raw.lstrip()
    if stripped.startswith("{"):
        payload = _load_json_object(stripped)
        if isinstance(payload.get("events"), list):
            return "json_events"
        return None
    if _TEXT_ENTRY_PATTERN.search(raw):
        return "markup"
    return None


def looks_like_captions(raw: str) -> bool:
    return detect_format(raw) is not None


def decode_entities(text: str) -> str:
    result = text
    for entity, replacement in NAMED_ENTITIES:
        result = result.replace(entity, replacement)
    result = _DECIMAL_ENTITY_PATTERN.sub(lambda match: _code_point(match, base=10), result)
    return _HEX_ENTITY_PATTERN.sub(lambda match: _code_point(match, base=16), result)


def normalize_caption_text(raw_text: str) -> str:
    decoded = decode_entities(raw_text)
    without_tags = _TAG_PATTERN.sub("", decoded)
    return _WHITESPACE_PATTERN.sub(" ", without_tags).strip()


def _code_point(match: re.Match[str], *, base: int) -> str:
    try:
        return chr(int(match.group(1), base))
    except (ValueError, OverflowError):
        return match.group(0)


def _parse_attributes(raw_attributes: str) -> dict[str, str]:
    attributes: dict[str, str] = {}
    for match in _ATTRIBUTE_PATTERN.finditer(raw_attributes):
        value = match.group(3) if match.group(3) is not None else match.group(4)
        attributes[match.group(1).lower()] = value or ""
    return attributes


def _coerce_seconds(raw_value: object) -> float | None:
    numeric: float | None = None
    if isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, (int, float)):
        numeric = float(raw_value)
    elif isinstance(raw_value, str):
        try:
            numeric = float(raw_value.strip())
        except ValueError:
            numeric = None
    if numeric is None or not math.isfinite(numeric):
        return None
    return max(0.0, numeric)


def _load_json_object(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, dict):
        return cast(dict[str, Any], parsed)
    return {}
