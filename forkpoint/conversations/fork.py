"""Fork point resolution: which internal message a fork from an external ref resumes at.

Policy:
1. A ref indexed as an assistant message forks from that message.
2. A ref indexed as a user message forks from the nearest assistant message
   strictly before it, never from a later reply.
3. An unindexed ref, or a user ref with no earlier assistant message, has no
   fork point. Callers start a fresh thread with nothing to resume.

Resolution only reads the persisted index.
"""

from forkpoint.conversations.index import MessageIndex, last_assistant_before, lookup_entry
from forkpoint.models import ForkPoint, MessageIndexEntry


def resolve_from_entries(
    entries: list[MessageIndexEntry], external_ref: str
) -> ForkPoint | None:
    entry = lookup_entry(entries, external_ref)
    if entry is None:
        return None
    if entry.kind != "assistant":
        entry = last_assistant_before(entries, external_ref)
        if entry is None:
            return None
    return ForkPoint(message_id=entry.internal_message_id, session_id=entry.session_id)


class ForkPointResolver:
    def __init__(self, index: MessageIndex) -> None:
        self._index = index

    async def resolve_fork_point(self, conversation_id: str, external_ref: str) -> str | None:
        """Internal message id to resume at, or None for a fresh thread."""
        fork_point = await self.resolve_with_session(conversation_id, external_ref)
        return fork_point.message_id if fork_point else None

    async def resolve_with_session(
        self, conversation_id: str, external_ref: str
    ) -> ForkPoint | None:
        """Like resolve_fork_point, also naming the session that wrote the message.

        The session matters after a clear: the message lives in the old session.
        """
        entries = await self._index.entries(conversation_id)
        return resolve_from_entries(entries, external_ref)
