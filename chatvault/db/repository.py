from __future__ import annotations
"""Repository for conversation index rows.

Each row describes one ingested conversation and points at its content in
the blob store through ``content_key``. Rows are append-only apart from the
``views`` counter.

Design:
- Abstract interface so the orchestrator does not depend on SQLite
- SQLite implementation on the shared DatabaseClient
"""

from abc import ABC, abstractmethod

import aiosqlite

from chatvault.db.client import DatabaseClient, to_db_timestamp, from_db_timestamp
from chatvault.errors import StorageError
from chatvault.models import ConversationRecord


class ConversationRepository(ABC):
    """Abstract repository interface for conversation index rows."""

    @abstractmethod
    async def insert(self, record: ConversationRecord) -> ConversationRecord:
        """Insert a record and return it with store-assigned fields."""
        pass

    @abstractmethod
    async def list(self, limit: int = 50, offset: int = 0) -> list[ConversationRecord]:
        """List records, newest first."""
        pass

    @abstractmethod
    async def get(self, conversation_id: str) -> ConversationRecord | None:
        """Get a record by ID."""
        pass

    @abstractmethod
    async def increment_views(self, conversation_id: str) -> ConversationRecord | None:
        """Bump the views counter and return the updated record."""
        pass

    @abstractmethod
    async def content_keys(self) -> set[str]:
        """Every content key referenced by an index row."""
        pass


def _row_to_record(row: aiosqlite.Row) -> ConversationRecord:
    """Convert a database row to ConversationRecord."""
    return ConversationRecord(
        id=row["id"],
        model=row["model"],
        scraped_at=from_db_timestamp(row["scraped_at"]),
        source_html_bytes=row["source_html_bytes"],
        views=row["views"],
        content_key=row["content_key"],
        created_at=from_db_timestamp(row["created_at"]),
    )


class SQLiteConversationRepository(ConversationRepository):
    """Conversation index backed by the ``conversations`` table."""

    def __init__(self, db: DatabaseClient):
        self.db = db

    async def insert(self, record: ConversationRecord) -> ConversationRecord:
        await self.db.execute_write(
            """
            INSERT INTO conversations
                (id, model, scraped_at, source_html_bytes, views, content_key)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.model,
                to_db_timestamp(record.scraped_at),
                record.source_html_bytes,
                record.views,
                record.content_key,
            ),
        )
        persisted = await self.get(record.id)
        if persisted is None:
            raise StorageError(f"Conversation {record.id} missing after insert")
        return persisted

    async def list(self, limit: int = 50, offset: int = 0) -> list[ConversationRecord]:
        rows = await self.db.fetch_all(
            """
            SELECT * FROM conversations
            ORDER BY created_at DESC, rowid DESC
            LIMIT ? OFFSET ?
            """,
            (limit, offset),
        )
        return [_row_to_record(row) for row in rows]

    async def get(self, conversation_id: str) -> ConversationRecord | None:
        row = await self.db.fetch_one(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        )
        return _row_to_record(row) if row else None

    async def increment_views(self, conversation_id: str) -> ConversationRecord | None:
        await self.db.execute_write(
            "UPDATE conversations SET views = views + 1 WHERE id = ?", (conversation_id,)
        )
        return await self.get(conversation_id)

    async def content_keys(self) -> set[str]:
        rows = await self.db.fetch_all("SELECT content_key FROM conversations")
        return {row["content_key"] for row in rows}
