"""Async SQLite access for conversation documents."""

from datetime import UTC, datetime

import aiosqlite

from forkpoint.db.schema import SCHEMA_SQL


class Database:
    """Async wrapper around one aiosqlite connection.

    Besides raw `execute`, it exposes the handful of document operations the
    conversation store needs. Each write commits immediately; a document is
    always replaced by a single upsert statement.
    """

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._conn = connection

    @classmethod
    async def connect(cls, path: str = "forkpoint.db") -> "Database":
        conn = await aiosqlite.connect(path)
        conn.row_factory = aiosqlite.Row
        if path != ":memory:":
            await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA busy_timeout=5000")
        await conn.executescript(SCHEMA_SQL)
        await conn.commit()
        return cls(conn)

    async def execute(self, sql: str, params: tuple | None = None) -> aiosqlite.Cursor:
        cursor = await self._conn.execute(sql, params or ())
        await self._conn.commit()
        return cursor

    # -- Conversation documents --

    async def get_document(self, conversation_id: str) -> str | None:
        """Raw JSON text stored for a conversation, or None."""
        cursor = await self._conn.execute(
            "SELECT document FROM conversations WHERE conversation_id = ?",
            (conversation_id,),
        )
        row = await cursor.fetchone()
        return None if row is None else row["document"]

    async def put_document(self, conversation_id: str, document: str) -> None:
        await self.execute(
            """INSERT INTO conversations (conversation_id, document, updated_at)
               VALUES (?, ?, ?)
               ON CONFLICT(conversation_id) DO UPDATE SET
                   document = excluded.document,
                   updated_at = excluded.updated_at""",
            (conversation_id, document, datetime.now(UTC).isoformat()),
        )

    async def delete_document(self, conversation_id: str) -> bool:
        cursor = await self.execute(
            "DELETE FROM conversations WHERE conversation_id = ?",
            (conversation_id,),
        )
        return cursor.rowcount > 0

    async def document_ids(self) -> list[str]:
        """Conversation ids, most recently written first."""
        cursor = await self._conn.execute(
            "SELECT conversation_id FROM conversations ORDER BY updated_at DESC"
        )
        return [row["conversation_id"] for row in await cursor.fetchall()]

    async def close(self) -> None:
        await self._conn.close()
