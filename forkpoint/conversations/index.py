"""Message index: external message references mapped to internal message ids.

External references are platform timestamps such as "1712345678.000200".
Entries are kept ordered by that timestamp, compared numerically, so
"before" means earlier on the platform's clock rather than earlier in
insertion order. References that are not numbers sort after all numeric
ones, in string order.
"""

import bisect
import logging
from decimal import Decimal, InvalidOperation

from forkpoint.conversations.store import ConversationStore
from forkpoint.models import MessageIndexEntry

logger = logging.getLogger(__name__)


def ref_order_key(ref: str) -> tuple[int, Decimal, str]:
    try:
        value = Decimal(ref)
    except InvalidOperation:
        return (1, Decimal(0), ref)
    if not value.is_finite():
        return (1, Decimal(0), ref)
    return (0, value, "")


def _entry_key(entry: MessageIndexEntry) -> tuple[int, Decimal, str]:
    return ref_order_key(entry.external_ref)


def lookup_entry(entries: list[MessageIndexEntry], external_ref: str) -> MessageIndexEntry | None:
    for entry in entries:
        if entry.external_ref == external_ref:
            return entry
    return None


def insert_entry(entries: list[MessageIndexEntry], entry: MessageIndexEntry) -> bool:
    """Insert in timestamp order. False (and no change) if the ref is already indexed."""
    if lookup_entry(entries, entry.external_ref) is not None:
        return False
    bisect.insort(entries, entry, key=_entry_key)
    return True


def last_assistant_before(
    entries: list[MessageIndexEntry], external_ref: str
) -> MessageIndexEntry | None:
    """Most recent assistant entry strictly earlier than `external_ref`."""
    bound = ref_order_key(external_ref)
    for entry in reversed(entries):
        if _entry_key(entry) >= bound:
            continue
        if entry.kind == "assistant":
            return entry
    return None


class MessageIndex:
    """Per-conversation message index persisted inside the conversation document."""

    def __init__(self, store: ConversationStore) -> None:
        self._store = store

    async def record(
        self, conversation_id: str, external_ref: str, entry: MessageIndexEntry
    ) -> MessageIndexEntry:
        """Append an entry. Entries are immutable: recording a ref twice keeps the first.

        The first entry for an unknown conversation creates its document.
        """
        if entry.external_ref != external_ref:
            entry = entry.model_copy(update={"external_ref": external_ref})

        async with self._store.transaction(
            conversation_id, create=lambda: self._store.new_document(conversation_id)
        ) as document:
            existing = lookup_entry(document.message_index, external_ref)
            if existing is not None:
                if existing.internal_message_id != entry.internal_message_id:
                    logger.warning(
                        "Ignoring remap of %s in %s: already indexed as %s, not %s",
                        external_ref, conversation_id,
                        existing.internal_message_id, entry.internal_message_id,
                    )
                return existing
            insert_entry(document.message_index, entry)
        return entry

    async def lookup(self, conversation_id: str, external_ref: str) -> MessageIndexEntry | None:
        entries = await self.entries(conversation_id)
        return lookup_entry(entries, external_ref)

    async def find_last_assistant_before(
        self, conversation_id: str, external_ref: str
    ) -> MessageIndexEntry | None:
        entries = await self.entries(conversation_id)
        return last_assistant_before(entries, external_ref)

    async def entries(self, conversation_id: str) -> list[MessageIndexEntry]:
        """All entries in timestamp order; empty for unknown conversations."""
        document = await self._store.load(conversation_id)
        if document is None:
            return []
        return list(document.message_index)

    async def posted_message_ids(self, conversation_id: str) -> set[str]:
        """Internal ids that already have an external message."""
        return {e.internal_message_id for e in await self.entries(conversation_id)}
