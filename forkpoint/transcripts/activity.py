"""Activity log: the progress subset of SessionEvents kept for live display."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

from forkpoint.models import ActivityEntry, RawRecord, SessionEvent
from forkpoint.transcripts.normalizer import EventNormalizer, normalize
from forkpoint.transcripts.reader import read_all

PREVIEW_CHARS = 500

THINKING_MATCH_TOLERANCE = timedelta(seconds=1)


def preview(content: str, limit: int = PREVIEW_CHARS) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + "..."


def to_activity_entry(
    event: SessionEvent, *, preview_chars: int = PREVIEW_CHARS
) -> ActivityEntry | None:
    """Convert one event; kinds that are not progress (init, text, turn_end) give None."""
    if event.type == "thinking_complete":
        content = event.thinking_content or ""
        return ActivityEntry(
            timestamp=event.timestamp,
            type="thinking",
            thinking_content=content,
            thinking_preview=preview(content, preview_chars),
            thinking_truncated=event.truncated,
        )
    if event.type == "tool_start":
        return ActivityEntry(
            timestamp=event.timestamp,
            type="tool_start",
            tool=event.tool_name,
            tool_id=event.tool_id,
            tool_input=event.tool_input,
        )
    if event.type == "tool_complete":
        return ActivityEntry(
            timestamp=event.timestamp,
            type="tool_complete",
            tool=event.tool_name,
            tool_id=event.tool_id,
            duration_ms=event.duration_ms,
            is_error=event.is_error,
        )
    if event.type == "generating":
        content = event.text or ""
        return ActivityEntry(
            timestamp=event.timestamp,
            type="generating",
            generating_chars=event.char_count if event.char_count is not None else len(content),
            generating_content=content or None,
            generating_preview=preview(content, preview_chars) if content else None,
        )
    return None


def build_activity_log(
    events: list[SessionEvent], *, preview_chars: int = PREVIEW_CHARS
) -> list[ActivityEntry]:
    entries = []
    for event in events:
        entry = to_activity_entry(event, preview_chars=preview_chars)
        if entry is not None:
            entries.append(entry)
    return entries


def read_activity_log(
    path: str | Path,
    *,
    preview_chars: int = PREVIEW_CHARS,
    max_thinking_chars: int | None = None,
) -> list[ActivityEntry]:
    """Activity for a whole transcript. Missing file gives an empty log."""
    events = normalize(read_all(path), max_thinking_chars=max_thinking_chars)
    return build_activity_log(events, preview_chars=preview_chars)


def activity_for_records(
    records: list[RawRecord], *, preview_chars: int = PREVIEW_CHARS
) -> list[ActivityEntry]:
    """Activity carried by a record span, e.g. a segment's activity_messages.

    Tool results in the span pair with tool calls in the same span only.
    """
    normalizer = EventNormalizer(emit_init=False)
    events: list[SessionEvent] = []
    for record in records:
        events.extend(normalizer.feed(record))
    return build_activity_log(events, preview_chars=preview_chars)


def match_thinking_entry(
    entries: list[ActivityEntry],
    timestamp: datetime,
    content_length: int,
    tolerance: timedelta = THINKING_MATCH_TOLERANCE,
) -> int | None:
    """Index of the thinking entry that most likely holds a given reasoning text.

    Heuristic, not a join: candidates are thinking entries within `tolerance`
    of `timestamp`. An entry whose content length equals `content_length`
    wins; otherwise the candidate closest in time. None when no entry is in
    the window.
    """
    best: int | None = None
    best_key: tuple[int, timedelta, int] | None = None
    for i, entry in enumerate(entries):
        if entry.type != "thinking":
            continue
        delta = abs(entry.timestamp - timestamp)
        if delta > tolerance:
            continue
        length = len(entry.thinking_content or "")
        key = (0 if length == content_length else 1, delta, abs(length - content_length))
        if best_key is None or key < best_key:
            best, best_key = i, key
    return best


def conversation_key(conversation_id: str, thread_key: str | None = None) -> str:
    """Key for per-conversation logs: the id, or id_threadkey for a thread."""
    return f"{conversation_id}_{thread_key}" if thread_key else conversation_id


@dataclass
class ConversationContext:
    """Per-turn state owned by whoever processes the turn.

    Passed by reference into the service instead of living in module-level
    maps, so two conversations (or two tests) never see each other's state.
    """

    conversation_id: str
    thread_key: str | None = None
    activity: list[ActivityEntry] = field(default_factory=list)
    aborted: bool = False

    @property
    def conversation_key(self) -> str:
        return conversation_key(self.conversation_id, self.thread_key)

    def record_events(
        self, events: list[SessionEvent], *, preview_chars: int = PREVIEW_CHARS
    ) -> list[ActivityEntry]:
        """Append the progress entries for `events`; returns the new entries."""
        added = build_activity_log(events, preview_chars=preview_chars)
        self.activity.extend(added)
        return added

    def abort(self) -> None:
        self.aborted = True

    def discard(self) -> list[ActivityEntry]:
        """End of turn without retention: hand back the log and clear it."""
        log, self.activity = self.activity, []
        return log
