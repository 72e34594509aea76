from __future__ import annotations

import os
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path

import pytest

from clipseeker.dependencies import reset_cached_dependencies
from clipseeker.models.records import TranscriptSegment, VideoRecord
from clipseeker.repositories.database import Database
from clipseeker.repositories.video_repository import VideoRepository

VideoFactory = Callable[..., VideoRecord]


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def _isolated_environment(  # pyright: ignore[reportUnusedFunction]
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> Iterator[None]:
    for key in list(os.environ):
        if key.startswith("CLIPSEEKER_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    reset_cached_dependencies()
    yield
    reset_cached_dependencies()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "library.db")
    db.initialize()
    return db


@pytest.fixture
def video_repository(database: Database) -> VideoRepository:
    return VideoRepository(database)


@pytest.fixture
def make_video() -> VideoFactory:
    def _make(
        video_id: str = "dQw4w9WgXcQ",
        *,
        title: str = "Test Video",
        texts: Sequence[str] = ("say hello world", "goodbye"),
        processed_at: str = "2026-01-01T00:00:00+00:00",
        channel_id: str | None = None,
    ) -> VideoRecord:
        segments = tuple(
            TranscriptSegment(start=float(index * 10), duration=4.0, text=text)
            for index, text in enumerate(texts)
        )
        return VideoRecord(
            id=video_id,
            title=title,
            channel_name="Test Channel",
            thumbnail=f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg",
            thumbnail_high=f"https://img.youtube.com/vi/{video_id}/maxresdefault.jpg",
            duration=len(segments) * 10,
            transcript=segments,
            language="en",
            is_auto_generated=False,
            processed_at=processed_at,
            channel_id=channel_id,
        )

    return _make
