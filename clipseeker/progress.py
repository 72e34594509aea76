from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, Protocol

import structlog

from clipseeker.models.records import ScanPhase

_MAX_TITLE_LENGTH = 160


@dataclass(frozen=True)
class ImportProgress:
    phase: ScanPhase
    batch: int = 0
    videos_found: int = 0
    current_title: str | None = None
    current_id: str | None = None
    success_count: int = 0
    fail_count: int = 0
    skipped_count: int = 0

    def advance(self, **changes: Any) -> ImportProgress:
        return replace(self, **changes)


class ProgressSink(Protocol):
    def emit(self, progress: ImportProgress) -> None:
        ...


class NoOpProgressSink:
    def emit(self, progress: ImportProgress) -> None:
        _ = progress
        return


class CallbackProgressSink:
    def __init__(self, callback: Callable[[ImportProgress], None]) -> None:
        self._callback = callback

    def emit(self, progress: ImportProgress) -> None:
        self._callback(progress)


class StructuredLogProgressSink:
    def __init__(self) -> None:
        self._logger = structlog.get_logger("clipseeker.progress")

    def emit(self, progress: ImportProgress) -> None:
        self._logger.info(
            "import progress",
            phase=progress.phase,
            batch=progress.batch,
            videos_found=progress.videos_found,
            current_title=_truncate(progress.current_title),
            current_id=progress.current_id,
            success_count=progress.success_count,
            fail_count=progress.fail_count,
            skipped_count=progress.skipped_count,
        )


def _truncate(value: str | None) -> str | None:
    if value is None:
        return None
    compact = " ".join(value.split())
    if len(compact) <= _MAX_TITLE_LENGTH:
        return compact
    return f"{compact[:_MAX_TITLE_LENGTH]}..."
