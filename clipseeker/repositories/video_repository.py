from __future__ import annotations

import json
import sqlite3
from typing import Any, Protocol, cast

from clipseeker.errors import VideoAlreadyIndexed
from clipseeker.models.records import (
    ChannelRecord,
    FailedVideoRecord,
    TranscriptSegment,
    VideoRecord,
)
from clipseeker.repositories.common import utc_now_iso
from clipseeker.repositories.database import Database


class VideoStore(Protocol):
    def add_video(self, video: VideoRecord) -> None:
        ...

    def get_video(self, video_id: str) -> VideoRecord | None:
        ...

    def delete_video(self, video_id: str) -> bool:
        ...

    def replace_video(self, video: VideoRecord) -> None:
        ...

    def list_videos(self) -> list[VideoRecord]:
        ...

    def add_failed_video(self, failed: FailedVideoRecord) -> None:
        ...

    def clear_failed_video(self, video_id: str) -> bool:
        ...

    def list_failed_videos(self) -> list[FailedVideoRecord]:
        ...

    def upsert_channel(self, channel: ChannelRecord) -> None:
        ...

    def get_channel(self, channel_id: str) -> ChannelRecord | None:
        ...

    def list_channels(self) -> list[ChannelRecord]:
        ...


_VIDEO_COLUMNS = """
    id,
    title,
    channel_name,
    channel_id,
    thumbnail,
    thumbnail_high,
    duration,
    transcript_json,
    language,
    is_auto_generated,
    processed_at
"""


class VideoRepository:
    """SQLite-backed local index of videos, failed imports and channels."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def add_video(self, video: VideoRecord) -> None:
        with self._db.connection() as conn:
            try:
                _insert_video(conn, video)
            except sqlite3.IntegrityError as exc:
                raise VideoAlreadyIndexed(video.id) from exc
            conn.execute("DELETE FROM failed_videos WHERE id = ?", (video.id,))

    def get_video(self, video_id: str) -> VideoRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT {_VIDEO_COLUMNS} FROM videos WHERE id = ?",
                (video_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_video(row)

    def delete_video(self, video_id: str) -> bool:
        with self._db.connection() as conn:
            cursor = conn.execute("DELETE FROM videos WHERE id = ?", (video_id,))
        return cursor.rowcount > 0

    def replace_video(self, video: VideoRecord) -> None:
        with self._db.connection() as conn:
            conn.execute("DELETE FROM videos WHERE id = ?", (video.id,))
            _insert_video(conn, video)
            conn.execute("DELETE FROM failed_videos WHERE id = ?", (video.id,))

    def list_videos(self) -> list[VideoRecord]:
        with self._db.connection() as conn:
            rows = conn.execute(
                f"SELECT {_VIDEO_COLUMNS} FROM videos ORDER BY processed_at DESC, id ASC"
            ).fetchall()
        return [_row_to_video(row) for row in rows]

    def add_failed_video(self, failed: FailedVideoRecord) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO failed_videos (id, error, channel_id, title, added_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    error = excluded.error,
                    channel_id = COALESCE(excluded.channel_id, failed_videos.channel_id),
                    title = COALESCE(excluded.title, failed_videos.title),
                    added_at = excluded.added_at
                """,
                (failed.id, failed.error, failed.channel_id, failed.title, failed.added_at),
            )

    def clear_failed_video(self, video_id: str) -> bool:
        with self._db.connection() as conn:
            cursor = conn.execute("DELETE FROM failed_videos WHERE id = ?", (video_id,))
        return cursor.rowcount > 0

    def list_failed_videos(self) -> list[FailedVideoRecord]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, error, channel_id, title, added_at
                FROM failed_videos
                ORDER BY added_at DESC, id ASC
                """
            ).fetchall()
        return [
            FailedVideoRecord(
                id=str(row["id"]),
                error=str(row["error"]),
                added_at=str(row["added_at"]),
                channel_id=_to_optional_str(row["channel_id"]),
                title=_to_optional_str(row["title"]),
            )
            for row in rows
        ]

    def upsert_channel(self, channel: ChannelRecord) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO channels
                (id, name, identifier, subscriber_count, thumbnail, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    identifier = excluded.identifier,
                    subscriber_count = excluded.subscriber_count,
                    thumbnail = excluded.thumbnail,
                    updated_at = excluded.updated_at
                """,
                (
                    channel.id,
                    channel.name,
                    channel.identifier,
                    channel.subscriber_count,
                    channel.thumbnail,
                    utc_now_iso(),
                ),
            )

    def get_channel(self, channel_id: str) -> ChannelRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT id, name, identifier, subscriber_count, thumbnail
                FROM channels
                WHERE id = ?
                """,
                (channel_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_channel(row)

    def list_channels(self) -> list[ChannelRecord]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, name, identifier, subscriber_count, thumbnail
                FROM channels
                ORDER BY name COLLATE NOCASE ASC
                """
            ).fetchall()
        return [_row_to_channel(row) for row in rows]


def _insert_video(conn: sqlite3.Connection, video: VideoRecord) -> None:
    conn.execute(
        f"""
        INSERT INTO videos ({_VIDEO_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            video.id,
            video.title,
            video.channel_name,
            video.channel_id,
            video.thumbnail,
            video.thumbnail_high,
            video.duration,
            json.dumps([segment.to_dict() for segment in video.transcript]),
            video.language,
            int(video.is_auto_generated),
            video.processed_at,
        ),
    )


def _row_to_video(row: sqlite3.Row) -> VideoRecord:
    return VideoRecord(
        id=str(row["id"]),
        title=str(row["title"]),
        channel_name=str(row["channel_name"]),
        thumbnail=str(row["thumbnail"]),
        thumbnail_high=str(row["thumbnail_high"]),
        duration=int(row["duration"]),
        transcript=_decode_transcript(row["transcript_json"]),
        language=str(row["language"]),
        is_auto_generated=bool(row["is_auto_generated"]),
        processed_at=str(row["processed_at"]),
        channel_id=_to_optional_str(row["channel_id"]),
    )


def _row_to_channel(row: sqlite3.Row) -> ChannelRecord:
    return ChannelRecord(
        id=str(row["id"]),
        name=str(row["name"]),
        identifier=str(row["identifier"]),
        subscriber_count=_to_optional_str(row["subscriber_count"]),
        thumbnail=_to_optional_str(row["thumbnail"]),
    )


def _decode_transcript(raw_value: object) -> tuple[TranscriptSegment, ...]:
    if not isinstance(raw_value, str):
        return ()
    try:
        parsed = json.loads(raw_value)
    except json.JSONDecodeError:
        return ()
    if not isinstance(parsed, list):
        return ()

    segments: list[TranscriptSegment] = []
    for item in cast(list[object], parsed):
        if isinstance(item, dict):
            segments.append(TranscriptSegment.from_dict(cast(dict[str, Any], item)))
    return tuple(segments)


def _to_optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None
