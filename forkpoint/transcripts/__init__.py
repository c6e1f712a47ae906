"""Transcript event stream: reading, normalizing, and grouping agent records."""

from forkpoint.transcripts.activity import (
    ConversationContext,
    activity_for_records,
    build_activity_log,
    match_thinking_entry,
    read_activity_log,
    to_activity_entry,
)
from forkpoint.transcripts.grouping import group_by_turn, is_turn_complete
from forkpoint.transcripts.normalizer import EventNormalizer, normalize
from forkpoint.transcripts.paths import (
    extract_text_content,
    find_session_file,
    last_user_message_uuid,
    session_file_path,
)
from forkpoint.transcripts.reader import (
    TranscriptCursor,
    read_all,
    read_incremental,
    watch,
)

__all__ = [
    "ConversationContext",
    "EventNormalizer",
    "TranscriptCursor",
    "activity_for_records",
    "build_activity_log",
    "extract_text_content",
    "find_session_file",
    "group_by_turn",
    "is_turn_complete",
    "last_user_message_uuid",
    "match_thinking_entry",
    "normalize",
    "read_activity_log",
    "read_all",
    "read_incremental",
    "session_file_path",
    "to_activity_entry",
    "watch",
]
