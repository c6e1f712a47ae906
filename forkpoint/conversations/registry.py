"""Session/thread registry: durable agent-session state per conversation and thread.

Thread lifecycle:

    uninitialized --mark_active--> active
    forked        --mark_active--> active
    any           --archive------> archived (terminal)

A thread created with a fork point starts `forked`, one without starts
`uninitialized`. Archived threads leave the live thread map; if the same
thread key shows up again a brand-new record is created for it.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from forkpoint.conversations.store import ConversationStore
from forkpoint.models import (
    ActivityEntry,
    ConversationDocument,
    ConversationSession,
    ForkPoint,
    PermissionMode,
    ThreadSession,
)
from forkpoint.transcripts.activity import ConversationContext, conversation_key

logger = logging.getLogger(__name__)


@dataclass
class ThreadResult:
    thread: ThreadSession
    is_new: bool


@dataclass
class ConversationResult:
    session: ConversationSession
    is_new: bool


class ThreadRegistry:
    def __init__(self, store: ConversationStore) -> None:
        self._store = store

    async def get_conversation(self, conversation_id: str) -> ConversationDocument | None:
        return await self._store.load(conversation_id)

    async def get_or_create_conversation(
        self,
        conversation_id: str,
        working_dir: str,
        permission_mode: PermissionMode = "default",
    ) -> ConversationResult:
        """The main session record, created (and persisted) on first sight."""
        existing = await self._store.load(conversation_id)
        if existing is not None:
            return ConversationResult(session=existing.session, is_new=False)

        created = False

        def create() -> ConversationDocument:
            nonlocal created
            created = True
            return self._store.new_document(conversation_id, working_dir, permission_mode)

        async with self._store.transaction(conversation_id, create=create) as document:
            session = document.session
        if created:
            logger.info("Created conversation %s in %s", conversation_id, working_dir)
        return ConversationResult(session=session, is_new=created)

    async def get_thread(self, conversation_id: str, thread_key: str) -> ThreadSession | None:
        document = await self._store.load(conversation_id)
        if document is None:
            return None
        return document.threads.get(thread_key)

    async def get_or_create_thread(
        self,
        conversation_id: str,
        thread_key: str,
        fork_point: ForkPoint | None = None,
        forked_from_thread_key: str | None = None,
    ) -> ThreadResult:
        """Existing live thread for the key, or a new one inheriting the main session's setup.

        With a fork point the new thread resumes at that message, in the
        session that wrote it. Without one it has nothing to resume. An
        existing thread is returned unchanged even if a fork point is given.

        A conversation seen for the first time gets a minimal main session
        (no agent session, default working directory and mode).
        """
        async with self._store.transaction(
            conversation_id, create=lambda: self._new_conversation(conversation_id)
        ) as document:
            existing = document.threads.get(thread_key)
            if existing is not None:
                return ThreadResult(thread=existing, is_new=False)

            main = document.session
            now = datetime.now(UTC)
            forked_from = main.session_id
            if fork_point is not None and fork_point.session_id:
                forked_from = fork_point.session_id

            thread = ThreadSession(
                thread_key=thread_key,
                state="forked" if fork_point is not None else "uninitialized",
                forked_from=forked_from,
                forked_from_thread_key=forked_from_thread_key,
                resume_at_message_id=fork_point.message_id if fork_point else None,
                working_dir=main.working_dir,
                permission_mode=main.permission_mode,
                created_at=now,
                last_active_at=now,
                configured_path=main.configured_path,
                configured_by=main.configured_by,
                configured_at=main.configured_at,
            )
            document.threads[thread_key] = thread

        logger.info(
            "Created %s thread %s in %s (forked from %s at %s)",
            thread.state, thread_key, conversation_id,
            thread.forked_from, thread.resume_at_message_id,
        )
        return ThreadResult(thread=thread, is_new=True)

    async def mark_active(
        self, conversation_id: str, session_id: str, thread_key: str | None = None
    ) -> ThreadSession | ConversationSession:
        """Record the agent's real session id after a successful turn."""
        async with self._store.transaction(conversation_id) as document:
            now = datetime.now(UTC)
            if thread_key is None:
                document.session.session_id = session_id
                document.session.last_active_at = now
                return document.session

            thread = document.threads.get(thread_key)
            if thread is None:
                raise ThreadNotFoundError(conversation_id, thread_key)
            thread.session_id = session_id
            thread.state = "active"
            thread.last_active_at = now
            return thread

    async def save_session(
        self,
        conversation_id: str,
        *,
        session_id: str | None = None,
        working_dir: str | None = None,
        permission_mode: PermissionMode | None = None,
    ) -> ConversationSession:
        """Update main-session fields. Only the arguments given are changed."""
        async with self._store.transaction(conversation_id) as document:
            session = document.session
            if session_id is not None:
                session.session_id = session_id
            if working_dir is not None:
                session.working_dir = working_dir
            if permission_mode is not None:
                session.permission_mode = permission_mode
            session.last_active_at = datetime.now(UTC)
            return session

    async def configure_path(
        self,
        conversation_id: str,
        path: str,
        configured_by: str | None = None,
        thread_key: str | None = None,
    ) -> ThreadSession | ConversationSession:
        """Lock the working directory. Allowed once per session record."""
        async with self._store.transaction(conversation_id) as document:
            if thread_key is None:
                target = document.session
            else:
                target = document.threads.get(thread_key)
                if target is None:
                    raise ThreadNotFoundError(conversation_id, thread_key)

            if target.configured_path is not None:
                raise PathAlreadyConfiguredError(conversation_id, target.configured_path)

            target.working_dir = path
            target.configured_path = path
            target.configured_by = configured_by
            target.configured_at = datetime.now(UTC)
            return target

    async def clear_session(self, conversation_id: str) -> ConversationSession:
        """Start over: the next turn gets a new agent session.

        The old session id is kept in previous_session_ids so forks from
        messages written before the clear can still resume it.
        """
        async with self._store.transaction(conversation_id) as document:
            session = document.session
            if session.session_id and session.session_id not in session.previous_session_ids:
                session.previous_session_ids.append(session.session_id)
            session.session_id = None
            session.last_active_at = datetime.now(UTC)
            return session

    async def archive_thread(self, conversation_id: str, thread_key: str) -> ThreadSession:
        async with self._store.transaction(conversation_id) as document:
            thread = document.threads.pop(thread_key, None)
            if thread is None:
                raise ThreadNotFoundError(conversation_id, thread_key)
            thread.state = "archived"
            thread.archived_at = datetime.now(UTC)
            document.archived_threads.append(thread)
            document.activity_logs.pop(conversation_key(conversation_id, thread_key), None)

        logger.info("Archived thread %s in %s", thread_key, conversation_id)
        return thread

    async def delete_conversation(self, conversation_id: str) -> bool:
        deleted = await self._store.delete(conversation_id)
        if deleted:
            logger.info("Deleted conversation %s", conversation_id)
        return deleted

    async def retain_activity_log(self, context: ConversationContext) -> list[ActivityEntry]:
        """Keep the context's activity log for later retrieval, replacing any earlier one."""
        entries = list(context.activity)
        async with self._store.transaction(context.conversation_id) as document:
            document.activity_logs[context.conversation_key] = entries
        return entries

    async def get_activity_log(
        self, conversation_id: str, key: str
    ) -> list[ActivityEntry] | None:
        document = await self._store.load(conversation_id)
        if document is None:
            return None
        return document.activity_logs.get(key)

    def _new_conversation(self, conversation_id: str) -> ConversationDocument:
        logger.info("Creating conversation %s for a thread", conversation_id)
        return self._store.new_document(conversation_id)


class ThreadNotFoundError(Exception):
    def __init__(self, conversation_id: str, thread_key: str) -> None:
        self.conversation_id = conversation_id
        self.thread_key = thread_key
        super().__init__(f"Thread not found: {thread_key} in {conversation_id}")


class PathAlreadyConfiguredError(Exception):
    def __init__(self, conversation_id: str, configured_path: str) -> None:
        self.conversation_id = conversation_id
        self.configured_path = configured_path
        super().__init__(
            f"Working directory already configured for {conversation_id}: {configured_path}"
        )
