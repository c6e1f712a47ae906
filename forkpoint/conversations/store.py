"""Durable conversation store: one JSON document per conversation.

Documents are read whole on first access and cached, and rewritten whole on
every mutation with a single upsert, so a crash never leaves a half-written
document behind. Mutations go through `transaction()`, which holds a
per-conversation lock across the read-modify-write.
"""

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from pydantic import ValidationError

from forkpoint.db.connection import Database
from forkpoint.models import ConversationDocument, ConversationSession, PermissionMode
from forkpoint.utils.json import parse_json_field

logger = logging.getLogger(__name__)


class ConversationStore:
    def __init__(self, db: Database, default_working_dir: str | None = None) -> None:
        self._db = db
        self._default_working_dir = default_working_dir
        self._cache: dict[str, ConversationDocument] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, conversation_id: str) -> asyncio.Lock:
        """The lock serializing writes to one conversation."""
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    def new_document(
        self,
        conversation_id: str,
        working_dir: str | None = None,
        permission_mode: PermissionMode = "default",
    ) -> ConversationDocument:
        """A document with no agent session yet.

        Without a working directory it uses the configured default, else the
        process working directory.
        """
        now = datetime.now(UTC)
        return ConversationDocument(
            conversation_id=conversation_id,
            session=ConversationSession(
                working_dir=working_dir or self._default_working_dir or os.getcwd(),
                permission_mode=permission_mode,
                created_at=now,
                last_active_at=now,
            ),
        )

    async def load(self, conversation_id: str) -> ConversationDocument | None:
        """Current document, or None when absent or unreadable."""
        cached = self._cache.get(conversation_id)
        if cached is not None:
            return cached

        raw = await self._db.get_document(conversation_id)
        if raw is None:
            return None

        data = parse_json_field(raw)
        if data is None:
            logger.warning("Conversation %s has an unparseable document", conversation_id)
            return None
        try:
            document = ConversationDocument.model_validate(data)
        except ValidationError as e:
            logger.warning("Conversation %s has an invalid document: %s", conversation_id, e)
            return None

        self._cache[conversation_id] = document
        return document

    async def save(self, document: ConversationDocument) -> None:
        await self._db.put_document(document.conversation_id, document.model_dump_json())
        self._cache[document.conversation_id] = document

    async def delete(self, conversation_id: str) -> bool:
        """Remove the document. Returns False when there was nothing to remove."""
        lock = self.lock(conversation_id)
        async with lock:
            removed = await self._db.delete_document(conversation_id)
            self._cache.pop(conversation_id, None)
        if not lock.locked():
            self._locks.pop(conversation_id, None)
        return removed

    async def list_ids(self) -> list[str]:
        return await self._db.document_ids()

    @asynccontextmanager
    async def transaction(
        self,
        conversation_id: str,
        create: Callable[[], ConversationDocument] | None = None,
    ) -> AsyncIterator[ConversationDocument]:
        """Read-modify-write one document under its lock.

        Yields a copy of the current document (or of `create()` when there is
        none) and saves it when the block exits cleanly. If the block raises,
        nothing is written and the cached document is untouched.
        """
        async with self.lock(conversation_id):
            document = await self.load(conversation_id)
            if document is None:
                if create is None:
                    raise ConversationNotFoundError(conversation_id)
                working = create()
            else:
                working = document.model_copy(deep=True)
            yield working
            await self.save(working)

    def forget(self, conversation_id: str) -> None:
        """Drop the cached copy so the next load reads from the database."""
        self._cache.pop(conversation_id, None)


class ConversationNotFoundError(Exception):
    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")
