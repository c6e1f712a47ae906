"""Request and response schemas for conversation endpoints."""

from typing import Literal

from pydantic import BaseModel, Field

from forkpoint.models import (
    ActivityEntry,
    ConversationSession,
    ForkPoint,
    PermissionMode,
    ThreadSession,
)

# -- Requests --


class CreateConversationRequest(BaseModel):
    conversation_id: str = Field(min_length=1)
    working_dir: str = Field(min_length=1)
    permission_mode: PermissionMode = "default"


class PatchSessionRequest(BaseModel):
    """Fields to update on the main session. Only fields present are changed."""

    session_id: str | None = None
    working_dir: str | None = None
    permission_mode: PermissionMode | None = None


class ConfigurePathRequest(BaseModel):
    path: str = Field(min_length=1)
    configured_by: str | None = None
    thread_key: str | None = None


class RecordMessageRequest(BaseModel):
    """Request body for POST /api/conversations/{conversation_id}/messages."""

    external_ref: str = Field(min_length=1)
    internal_message_id: str = Field(min_length=1)
    kind: Literal["user", "assistant"]
    session_id: str | None = None
    parent_reference: str | None = None
    is_continuation: bool = False


class CreateThreadRequest(BaseModel):
    """Open a thread. With fork_from_ref the thread resumes at that message's fork point."""

    thread_key: str = Field(min_length=1)
    fork_from_ref: str | None = None
    forked_from_thread_key: str | None = None


class ActivateThreadRequest(BaseModel):
    session_id: str = Field(min_length=1)


class RetainActivityRequest(BaseModel):
    thread_key: str | None = None
    entries: list[ActivityEntry]


# -- Responses --


class ConversationResponse(BaseModel):
    conversation_id: str
    session: ConversationSession
    threads: list[ThreadSession] = Field(default_factory=list)
    archived_threads: list[ThreadSession] = Field(default_factory=list)
    message_count: int = 0
    activity_log_keys: list[str] = Field(default_factory=list)


class ThreadResponse(BaseModel):
    thread: ThreadSession
    is_new: bool
    fork_point: ForkPoint | None = None


class ForkPointResponse(BaseModel):
    external_ref: str
    fork_point: ForkPoint | None = None
