"""FastAPI routes for conversation state, the message index, forks and threads."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from forkpoint.conversations.registry import PathAlreadyConfiguredError, ThreadNotFoundError
from forkpoint.conversations.schemas import (
    ActivateThreadRequest,
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
from forkpoint.conversations.service import ConversationService
from forkpoint.conversations.store import ConversationNotFoundError
from forkpoint.models import ActivityEntry, ConversationSession, MessageIndexEntry, ThreadSession

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


def get_conversation_service() -> ConversationService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("ConversationService not initialized")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_conversation(
    request: CreateConversationRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    return await service.create_conversation(request)


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    conversation = await service.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
    return conversation


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: str,
    service: ConversationService = Depends(get_conversation_service),
) -> None:
    if not await service.delete_conversation(conversation_id):
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")


@router.patch("/{conversation_id}/session")
async def update_session(
    conversation_id: str,
    request: PatchSessionRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationSession:
    try:
        return await service.update_session(conversation_id, request)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")


@router.post("/{conversation_id}/path", response_model=None)
async def configure_path(
    conversation_id: str,
    request: ConfigurePathRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationSession | ThreadSession:
    try:
        return await service.configure_path(conversation_id, request)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PathAlreadyConfiguredError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{conversation_id}/clear")
async def clear_session(
    conversation_id: str,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationSession:
    try:
        return await service.clear_session(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")


# -- Message index --


@router.post("/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def record_message(
    conversation_id: str,
    request: RecordMessageRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> MessageIndexEntry:
    return await service.record_message(conversation_id, request)


@router.get("/{conversation_id}/messages")
async def list_messages(
    conversation_id: str,
    service: ConversationService = Depends(get_conversation_service),
) -> list[MessageIndexEntry]:
    try:
        return await service.list_messages(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")


@router.get("/{conversation_id}/messages/{external_ref}")
async def get_message(
    conversation_id: str,
    external_ref: str,
    service: ConversationService = Depends(get_conversation_service),
) -> MessageIndexEntry:
    entry = await service.get_message(conversation_id, external_ref)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Message not indexed: {external_ref}")
    return entry


@router.get("/{conversation_id}/fork-point")
async def get_fork_point(
    conversation_id: str,
    ref: str = Query(..., min_length=1),
    service: ConversationService = Depends(get_conversation_service),
) -> ForkPointResponse:
    """Where a fork from `ref` would resume. A null fork_point means a fresh thread."""
    return await service.resolve_fork_point(conversation_id, ref)


# -- Threads --


@router.post("/{conversation_id}/threads")
async def open_thread(
    conversation_id: str,
    request: CreateThreadRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ThreadResponse:
    return await service.open_thread(conversation_id, request)


@router.post("/{conversation_id}/threads/{thread_key}/activate")
async def activate_thread(
    conversation_id: str,
    thread_key: str,
    request: ActivateThreadRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ThreadSession:
    try:
        return await service.activate_thread(conversation_id, thread_key, request.session_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
    except ThreadNotFoundError:
        raise HTTPException(status_code=404, detail=f"Thread not found: {thread_key}")


@router.delete("/{conversation_id}/threads/{thread_key}")
async def archive_thread(
    conversation_id: str,
    thread_key: str,
    service: ConversationService = Depends(get_conversation_service),
) -> ThreadSession:
    try:
        return await service.archive_thread(conversation_id, thread_key)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
    except ThreadNotFoundError:
        raise HTTPException(status_code=404, detail=f"Thread not found: {thread_key}")


# -- Activity --


@router.post("/{conversation_id}/activity", status_code=status.HTTP_201_CREATED)
async def retain_activity(
    conversation_id: str,
    request: RetainActivityRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> list[ActivityEntry]:
    try:
        return await service.retain_activity(conversation_id, request)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")


@router.get("/{conversation_id}/activity/{key}")
async def get_activity(
    conversation_id: str,
    key: str,
    service: ConversationService = Depends(get_conversation_service),
) -> list[ActivityEntry]:
    entries = await service.get_activity(conversation_id, key)
    if entries is None:
        raise HTTPException(status_code=404, detail=f"No activity log retained for: {key}")
    return entries
