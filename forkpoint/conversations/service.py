"""Conversation service: coordinates the store, message index, fork resolver and registry."""

import logging

from forkpoint.conversations.fork import ForkPointResolver
from forkpoint.conversations.index import MessageIndex
from forkpoint.conversations.registry import ThreadRegistry
from forkpoint.conversations.schemas import (
    ConfigurePathRequest,
    ConversationResponse,
    CreateConversationRequest,
    CreateThreadRequest,
    ForkPointResponse,
    PatchSessionRequest,
    RecordMessageRequest,
    RetainActivityRequest,
    ThreadResponse,
)
from forkpoint.conversations.store import ConversationNotFoundError, ConversationStore
from forkpoint.db.connection import Database
from forkpoint.models import (
    ActivityEntry,
    ConversationDocument,
    ConversationSession,
    MessageIndexEntry,
    ThreadSession,
)
from forkpoint.transcripts.activity import ConversationContext

logger = logging.getLogger(__name__)


class ConversationService:
    """Everything the transport layer needs to track conversations and fork them."""

    def __init__(self, db: Database, default_working_dir: str | None = None) -> None:
        self._store = ConversationStore(db, default_working_dir)
        self.index = MessageIndex(self._store)
        self.resolver = ForkPointResolver(self.index)
        self.registry = ThreadRegistry(self._store)

    async def create_conversation(
        self, request: CreateConversationRequest
    ) -> ConversationResponse:
        """Get-or-create: an existing conversation is returned as it is."""
        await self.registry.get_or_create_conversation(
            request.conversation_id,
            working_dir=request.working_dir,
            permission_mode=request.permission_mode,
        )
        document = await self._require(request.conversation_id)
        return self._conversation_response(document)

    async def get_conversation(self, conversation_id: str) -> ConversationResponse | None:
        document = await self.registry.get_conversation(conversation_id)
        if document is None:
            return None
        return self._conversation_response(document)

    async def update_session(
        self, conversation_id: str, request: PatchSessionRequest
    ) -> ConversationSession:
        return await self.registry.save_session(
            conversation_id,
            session_id=request.session_id,
            working_dir=request.working_dir,
            permission_mode=request.permission_mode,
        )

    async def configure_path(
        self, conversation_id: str, request: ConfigurePathRequest
    ) -> ConversationSession | ThreadSession:
        return await self.registry.configure_path(
            conversation_id,
            request.path,
            configured_by=request.configured_by,
            thread_key=request.thread_key,
        )

    async def clear_session(self, conversation_id: str) -> ConversationSession:
        return await self.registry.clear_session(conversation_id)

    async def delete_conversation(self, conversation_id: str) -> bool:
        return await self.registry.delete_conversation(conversation_id)

    # -- Message index --

    async def record_message(
        self, conversation_id: str, request: RecordMessageRequest
    ) -> MessageIndexEntry:
        entry = MessageIndexEntry(
            external_ref=request.external_ref,
            internal_message_id=request.internal_message_id,
            kind=request.kind,
            session_id=request.session_id,
            parent_reference=request.parent_reference,
            is_continuation=request.is_continuation,
        )
        return await self.index.record(conversation_id, request.external_ref, entry)

    async def get_message(
        self, conversation_id: str, external_ref: str
    ) -> MessageIndexEntry | None:
        return await self.index.lookup(conversation_id, external_ref)

    async def list_messages(self, conversation_id: str) -> list[MessageIndexEntry]:
        await self._require(conversation_id)
        return await self.index.entries(conversation_id)

    async def resolve_fork_point(
        self, conversation_id: str, external_ref: str
    ) -> ForkPointResponse:
        fork_point = await self.resolver.resolve_with_session(conversation_id, external_ref)
        return ForkPointResponse(external_ref=external_ref, fork_point=fork_point)

    # -- Threads --

    async def open_thread(
        self, conversation_id: str, request: CreateThreadRequest
    ) -> ThreadResponse:
        """Get or create a thread, forking from `fork_from_ref` when given.

        A ref that resolves to nothing still opens a thread, just one with no
        message to resume at.
        """
        fork_point = None
        if request.fork_from_ref is not None:
            fork_point = await self.resolver.resolve_with_session(
                conversation_id, request.fork_from_ref
            )
            if fork_point is None:
                logger.info(
                    "No fork point for %s in %s, opening a fresh thread",
                    request.fork_from_ref, conversation_id,
                )

        result = await self.registry.get_or_create_thread(
            conversation_id,
            request.thread_key,
            fork_point=fork_point,
            forked_from_thread_key=request.forked_from_thread_key,
        )
        return ThreadResponse(thread=result.thread, is_new=result.is_new, fork_point=fork_point)

    async def activate_thread(
        self, conversation_id: str, thread_key: str, session_id: str
    ) -> ThreadSession:
        return await self.registry.mark_active(conversation_id, session_id, thread_key)

    async def archive_thread(self, conversation_id: str, thread_key: str) -> ThreadSession:
        return await self.registry.archive_thread(conversation_id, thread_key)

    # -- Activity --

    async def retain_activity(
        self, conversation_id: str, request: RetainActivityRequest
    ) -> list[ActivityEntry]:
        context = ConversationContext(
            conversation_id=conversation_id,
            thread_key=request.thread_key,
            activity=list(request.entries),
        )
        return await self.registry.retain_activity_log(context)

    async def get_activity(self, conversation_id: str, key: str) -> list[ActivityEntry] | None:
        return await self.registry.get_activity_log(conversation_id, key)

    async def finish_turn(
        self, context: ConversationContext, *, retain: bool = False
    ) -> list[ActivityEntry]:
        """End a turn's processing. The context's log is retained or discarded, then cleared."""
        if retain:
            await self.registry.retain_activity_log(context)
        return context.discard()

    # -- Helpers --

    async def _require(self, conversation_id: str) -> ConversationDocument:
        document = await self.registry.get_conversation(conversation_id)
        if document is None:
            raise ConversationNotFoundError(conversation_id)
        return document

    @staticmethod
    def _conversation_response(document: ConversationDocument) -> ConversationResponse:
        return ConversationResponse(
            conversation_id=document.conversation_id,
            session=document.session,
            threads=list(document.threads.values()),
            archived_threads=document.archived_threads,
            message_count=len(document.message_index),
            activity_log_keys=sorted(document.activity_logs),
        )
