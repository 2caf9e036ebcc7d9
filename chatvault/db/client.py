"""Shared SQLite connection for the conversation index and metrics stores.

One ``DatabaseClient`` holds a single aiosqlite connection for the process.
Writes are serialized by an asyncio lock and committed one statement at a
time; timestamps are stored as UTC ISO-8601 text.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from chatvault.errors import AlreadyInitializedError, StorageError

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    model TEXT NOT NULL,
    scraped_at TEXT NOT NULL,
    source_html_bytes INTEGER NOT NULL CHECK (source_html_bytes >= 0),
    views INTEGER NOT NULL DEFAULT 0,
    content_key TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_conversations_created_at
    ON conversations (created_at DESC);

CREATE TABLE IF NOT EXISTS conversation_metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    conversation_id TEXT REFERENCES conversations (id),
    scrape_started_at TEXT NOT NULL,
    scrape_ended_at TEXT,
    duration_ms INTEGER NOT NULL DEFAULT 0 CHECK (duration_ms >= 0),
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'success', 'failed')),
    error_message TEXT
);

CREATE INDEX IF NOT EXISTS idx_metrics_conversation_id
    ON conversation_metrics (conversation_id);
"""


def to_db_timestamp(value: datetime | None) -> str | None:
    """Serialize a datetime as a UTC ISO-8601 string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_db_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp back into an aware datetime."""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class DatabaseClient:
    """Process-wide aiosqlite connection wrapper.

    ``initialize`` may only succeed once; a second call raises
    ``AlreadyInitializedError`` so callers racing to set up the client can
    tell "someone else did it" apart from a real failure.
    """

    def __init__(self) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._initializing = False
        self._write_lock = asyncio.Lock()
        self.path: Path | None = None

    @property
    def is_initialized(self) -> bool:
        return self._conn is not None

    async def initialize(self, path: str | Path) -> None:
        """Open the connection and create the schema."""
        if self._conn is not None or self._initializing:
            raise AlreadyInitializedError("Database client already initialized")
        self._initializing = True
        try:
            db_path = Path(path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(db_path, timeout=30)
            try:
                conn.row_factory = aiosqlite.Row
                await conn.execute("PRAGMA journal_mode=WAL")
                await conn.execute("PRAGMA foreign_keys=ON")
                await conn.executescript(SCHEMA)
                await conn.commit()
            except Exception:
                await conn.close()
                raise
            self._conn = conn
            self.path = db_path
            logger.info("Database initialized at %s", db_path)
        finally:
            self._initializing = False

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("Database client is not initialized")
        return self._conn

    async def execute_write(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement and commit. Returns lastrowid."""
        conn = self._connection()
        async with self._write_lock:
            try:
                cursor = await conn.execute(sql, params)
                await conn.commit()
            except aiosqlite.Error as e:
                await conn.rollback()
                raise StorageError(f"Database write failed: {e}") from e
            return cursor.lastrowid

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> aiosqlite.Row | None:
        conn = self._connection()
        try:
            async with conn.execute(sql, params) as cursor:
                return await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(f"Database read failed: {e}") from e

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[aiosqlite.Row]:
        conn = self._connection()
        try:
            async with conn.execute(sql, params) as cursor:
                return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise StorageError(f"Database read failed: {e}") from e
