from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS channels (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    identifier TEXT NOT NULL,
    subscriber_count TEXT NULL,
    thumbnail TEXT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS videos (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    channel_name TEXT NOT NULL,
    channel_id TEXT NULL,
    thumbnail TEXT NOT NULL,
    thumbnail_high TEXT NOT NULL,
    duration INTEGER NOT NULL,
    transcript_json TEXT NOT NULL,
    language TEXT NOT NULL,
    is_auto_generated INTEGER NOT NULL,
    processed_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_videos_processed_at
ON videos(processed_at DESC);

CREATE INDEX IF NOT EXISTS idx_videos_channel_id
ON videos(channel_id);

CREATE TABLE IF NOT EXISTS failed_videos (
    id TEXT PRIMARY KEY,
    error TEXT NOT NULL,
    channel_id TEXT NULL,
    title TEXT NULL,
    added_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_failed_videos_added_at
ON failed_videos(added_at DESC);
"""


class Database:
    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.executescript(SCHEMA_SQL)


def table_columns(conn: sqlite3.Connection, table_name: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table_name})").fetchall()
    return {str(row["name"]) for row in rows}
