"""Canonical data structures for forkpoint.

Defined once here, referenced everywhere else. The transcript side models
what the agent process writes (records and their content blocks) and what we
derive from it (session events, activity entries, turns). The conversation
side models what we persist ourselves (message index, session records).
"""

import logging
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

PermissionMode = Literal["plan", "default", "bypassPermissions", "acceptEdits"]

PERMISSION_MODES: tuple[str, ...] = ("plan", "default", "bypassPermissions", "acceptEdits")

RECORD_TYPES = frozenset({"system", "user", "assistant"})

TERMINAL_STOP_REASONS = frozenset({"end_turn", "stop_sequence"})

# ---------------------------------------------------------------------------
# Content blocks: a closed set of variants, discriminated by `type`
# ---------------------------------------------------------------------------


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""


class ThinkingBlock(BaseModel):
    type: Literal["thinking"] = "thinking"
    thinking: str = ""
    signature: str | None = None
    truncated: bool = False  # set by the agent when its own limits clipped the block


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str | None = None
    name: str = "unknown"
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str | None = None
    content: str | list[dict[str, Any]] | None = None
    is_error: bool = False

    @property
    def text(self) -> str:
        """Flatten list-shaped results into their text parts."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(
            item.get("text", "")
            for item in self.content
            if isinstance(item, dict) and item.get("type") == "text"
        )


class ImageBlock(BaseModel):
    type: Literal["image"] = "image"
    source: dict[str, Any] = Field(default_factory=dict)


ContentBlock = Annotated[
    TextBlock | ThinkingBlock | ToolUseBlock | ToolResultBlock | ImageBlock,
    Field(discriminator="type"),
]

BLOCK_TYPES = frozenset({"text", "thinking", "tool_use", "tool_result", "image"})


# ---------------------------------------------------------------------------
# Raw transcript records
# ---------------------------------------------------------------------------


class RecordMessage(BaseModel):
    """The `message` envelope inside a user/assistant record."""

    id: str | None = None  # vendor-assigned message id, shared by split records
    role: str | None = None
    model: str | None = None
    stop_reason: str | None = None
    content: str | list[ContentBlock] = ""

    @field_validator("content", mode="before")
    @classmethod
    def _drop_unknown_blocks(cls, value: Any) -> Any:
        if value is None:
            return ""
        if not isinstance(value, list):
            return value
        kept = []
        for block in value:
            if isinstance(block, dict) and block.get("type") in BLOCK_TYPES:
                kept.append(block)
            else:
                logger.debug("Dropping unsupported content block: %r", block)
        return kept


class RawRecord(BaseModel):
    """One line of the transcript file. Immutable once written."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: str
    subtype: str | None = None
    uuid: str | None = None
    parent_uuid: str | None = Field(
        default=None, validation_alias=AliasChoices("parentUuid", "parent_uuid")
    )
    session_id: str | None = Field(
        default=None, validation_alias=AliasChoices("sessionId", "session_id")
    )
    timestamp: datetime | None = None
    model: str | None = None  # present on system/init records
    cwd: str | None = None
    is_sidechain: bool = Field(
        default=False, validation_alias=AliasChoices("isSidechain", "is_sidechain")
    )
    is_meta: bool = Field(default=False, validation_alias=AliasChoices("isMeta", "is_meta"))
    is_synthetic: bool = Field(
        default=False, validation_alias=AliasChoices("isSynthetic", "is_synthetic")
    )
    is_continuation: bool = Field(
        default=False, validation_alias=AliasChoices("isContinuation", "is_continuation")
    )
    message: RecordMessage | None = None

    # Byte offset of the line in the transcript; assigned by the reader.
    offset: int | None = None

    @property
    def key(self) -> str | None:
        """Stable identity: the record uuid, else its position in the file.

        None for a record with neither, e.g. one built in memory without a uuid.
        """
        if self.uuid:
            return self.uuid
        if self.offset is not None:
            return f"@{self.offset}"
        return None

    @property
    def blocks(self) -> list[TextBlock | ThinkingBlock | ToolUseBlock | ToolResultBlock | ImageBlock]:
        """Content as a block list; plain string content becomes one text block."""
        if self.message is None:
            return []
        content = self.message.content
        if isinstance(content, str):
            return [TextBlock(text=content)] if content else []
        return list(content)

    @property
    def text(self) -> str:
        """Joined text of all non-empty text blocks."""
        return "\n".join(b.text for b in self.blocks if isinstance(b, TextBlock) and b.text)

    @property
    def has_text(self) -> bool:
        return any(isinstance(b, TextBlock) and b.text.strip() for b in self.blocks)

    @property
    def has_activity(self) -> bool:
        """True when the record carries tool or reasoning blocks."""
        return any(
            isinstance(b, ThinkingBlock | ToolUseBlock | ToolResultBlock) for b in self.blocks
        )

    @property
    def is_user_input(self) -> bool:
        """A real user turn: user-authored text/image, not a tool result or synthetic prompt."""
        if self.type != "user" or self.message is None:
            return False
        if self.is_meta or self.is_synthetic or self.is_continuation or self.is_sidechain:
            return False
        content = self.message.content
        if isinstance(content, str):
            return bool(content.strip())
        if not content:
            return False
        if any(isinstance(b, ToolResultBlock) for b in content):
            return False
        return isinstance(content[0], TextBlock | ImageBlock)

    @property
    def is_terminal(self) -> bool:
        if self.type == "system":
            return self.subtype == "result"
        return (
            self.type == "assistant"
            and self.message is not None
            and self.message.stop_reason in TERMINAL_STOP_REASONS
        )


# ---------------------------------------------------------------------------
# Normalized events
# ---------------------------------------------------------------------------

SessionEventType = Literal[
    "init",
    "text",
    "generating",
    "thinking_start",
    "thinking_complete",
    "tool_start",
    "tool_complete",
    "turn_end",
]


class SessionEvent(BaseModel):
    """Typed event derived from one or more raw records."""

    type: SessionEventType
    timestamp: datetime
    record_uuid: str | None = None

    # init
    session_id: str | None = None
    model: str | None = None

    # text / generating
    text: str | None = None
    char_count: int | None = None

    # thinking_complete
    thinking_content: str | None = None
    truncated: bool = False

    # tool_start / tool_complete
    tool_name: str | None = None
    tool_id: str | None = None
    tool_input: dict[str, Any] | None = None
    started_at: datetime | None = None  # tool_complete only
    duration_ms: int | None = None  # tool_complete only
    is_error: bool = False

    # turn_end
    turn_duration_ms: int | None = None


ActivityType = Literal["thinking", "tool_start", "tool_complete", "generating"]


class ActivityEntry(BaseModel):
    """Progress item retained for live display of an in-flight turn."""

    timestamp: datetime
    type: ActivityType
    tool: str | None = None
    tool_id: str | None = None
    tool_input: dict[str, Any] | None = None
    duration_ms: int | None = None
    is_error: bool = False
    thinking_content: str | None = None
    thinking_preview: str | None = None
    thinking_truncated: bool = False
    generating_chars: int | None = None
    generating_content: str | None = None
    generating_preview: str | None = None


# ---------------------------------------------------------------------------
# Turns and segments
# ---------------------------------------------------------------------------


class Segment(BaseModel):
    """Activity records followed by exactly one rendered text output."""

    activity_messages: list[RawRecord] = Field(default_factory=list)
    text_output: RawRecord
    continuations: list[RawRecord] = Field(default_factory=list)

    @property
    def text(self) -> str:
        parts = [self.text_output.text, *(r.text for r in self.continuations)]
        return "\n".join(p for p in parts if p)


class Turn(BaseModel):
    """One user input through the agent's reply to it."""

    user_input: RawRecord
    segments: list[Segment] = Field(default_factory=list)
    trailing_activity: list[RawRecord] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return bool(self.segments) and not self.trailing_activity

    @property
    def all_message_uuids(self) -> list[str]:
        records = [self.user_input]
        for segment in self.segments:
            records.extend(segment.activity_messages)
            records.append(segment.text_output)
            records.extend(segment.continuations)
        records.extend(self.trailing_activity)
        return [r.key for r in records if r.key is not None]


# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------


class MessageIndexEntry(BaseModel):
    """Maps one externally visible message to the agent's internal message id."""

    model_config = ConfigDict(frozen=True)

    external_ref: str
    internal_message_id: str
    kind: Literal["user", "assistant"]
    session_id: str | None = None
    parent_reference: str | None = None
    is_continuation: bool = False


class ForkPoint(BaseModel):
    message_id: str
    session_id: str | None = None


ThreadState = Literal["uninitialized", "active", "forked", "archived"]


class ConversationSession(BaseModel):
    """The main (non-thread) session of a conversation."""

    session_id: str | None = None
    working_dir: str
    permission_mode: PermissionMode = "default"
    created_at: datetime
    last_active_at: datetime
    configured_path: str | None = None
    configured_by: str | None = None
    configured_at: datetime | None = None
    previous_session_ids: list[str] = Field(default_factory=list)


class ThreadSession(BaseModel):
    """A sub-conversation (reply thread or fork) with its own agent session."""

    thread_key: str
    state: ThreadState = "uninitialized"
    session_id: str | None = None
    forked_from: str | None = None
    forked_from_thread_key: str | None = None
    resume_at_message_id: str | None = None
    working_dir: str
    permission_mode: PermissionMode = "default"
    created_at: datetime
    last_active_at: datetime
    configured_path: str | None = None
    configured_by: str | None = None
    configured_at: datetime | None = None
    archived_at: datetime | None = None


class ConversationDocument(BaseModel):
    """Everything persisted for one conversation, stored and rewritten whole."""

    conversation_id: str
    session: ConversationSession
    threads: dict[str, ThreadSession] = Field(default_factory=dict)
    archived_threads: list[ThreadSession] = Field(default_factory=list)
    message_index: list[MessageIndexEntry] = Field(default_factory=list)
    activity_logs: dict[str, list[ActivityEntry]] = Field(default_factory=dict)
