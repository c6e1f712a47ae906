"""Turn raw transcript records into a flat stream of typed SessionEvents.

Tool calls are paired with their results through a FIFO queue: a result
carrying a tool_use_id completes the start with that id; a result without
one completes the oldest open start. The agent runs tools one at a time in
the common case, so positional pairing holds there. With truly parallel
tool execution and no ids in the log, pairing is an approximation.
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime

from forkpoint.models import (
    RawRecord,
    SessionEvent,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)

_EPOCH = datetime.fromtimestamp(0, UTC)


@dataclass
class PendingTool:
    name: str
    tool_id: str | None
    started_at: datetime
    record_uuid: str | None = None


class EventNormalizer:
    """Stateful walk over records in file order. One instance per read or watch."""

    def __init__(self, *, emit_init: bool = True, max_thinking_chars: int | None = None) -> None:
        self._initialized = not emit_init
        self._max_thinking_chars = max_thinking_chars
        self._pending: deque[PendingTool] = deque()
        self._turn_started_at: datetime | None = None
        self._last_assistant_at: datetime | None = None
        self._last_timestamp: datetime | None = None
        self.session_id: str | None = None
        self.dropped_results = 0

    @property
    def open_tools(self) -> list[PendingTool]:
        """Tool starts still waiting for a result, oldest first."""
        return list(self._pending)

    def feed(self, record: RawRecord) -> list[SessionEvent]:
        """Events produced by one record, in block order."""
        timestamp = self._timestamp_for(record)
        events: list[SessionEvent] = []

        if not self._initialized:
            self._initialized = True
            self.session_id = record.session_id
            events.append(SessionEvent(
                type="init",
                timestamp=timestamp,
                record_uuid=record.uuid,
                session_id=record.session_id,
                model=record.model or (record.message.model if record.message else None),
            ))
        elif self.session_id is None and record.session_id:
            self.session_id = record.session_id

        if record.type == "user":
            if record.is_user_input:
                events.extend(self._close_turn())
                self._turn_started_at = timestamp
            else:
                for block in record.blocks:
                    if isinstance(block, ToolResultBlock):
                        event = self._complete_tool(block, timestamp, record)
                        if event is not None:
                            events.append(event)
        elif record.type == "assistant":
            self._last_assistant_at = timestamp
            for block in record.blocks:
                events.extend(self._assistant_block(block, timestamp, record))

        return events

    def finish(self) -> list[SessionEvent]:
        """Flush end-of-read state: the final turn_end, if a reply was seen."""
        if self._pending:
            logger.debug(
                "%d tool call(s) still open at end of read: %s",
                len(self._pending),
                ", ".join(p.name for p in self._pending),
            )
        return self._close_turn()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _timestamp_for(self, record: RawRecord) -> datetime:
        ts = record.timestamp
        if ts is None:
            ts = self._last_timestamp or _EPOCH
        elif ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
        self._last_timestamp = ts
        return ts

    def _assistant_block(self, block, timestamp: datetime, record: RawRecord) -> list[SessionEvent]:
        if isinstance(block, TextBlock):
            if not block.text:
                return []
            return [
                SessionEvent(
                    type="generating",
                    timestamp=timestamp,
                    record_uuid=record.uuid,
                    text=block.text,
                    char_count=len(block.text),
                ),
                SessionEvent(
                    type="text",
                    timestamp=timestamp,
                    record_uuid=record.uuid,
                    text=block.text,
                    char_count=len(block.text),
                ),
            ]

        if isinstance(block, ThinkingBlock):
            content = block.thinking
            truncated = block.truncated
            if self._max_thinking_chars is not None and len(content) > self._max_thinking_chars:
                content = content[: self._max_thinking_chars]
                truncated = True
            # The whole block is on disk already, so start and complete coincide
            return [
                SessionEvent(type="thinking_start", timestamp=timestamp, record_uuid=record.uuid),
                SessionEvent(
                    type="thinking_complete",
                    timestamp=timestamp,
                    record_uuid=record.uuid,
                    thinking_content=content,
                    truncated=truncated,
                ),
            ]

        if isinstance(block, ToolUseBlock):
            self._pending.append(PendingTool(
                name=block.name,
                tool_id=block.id,
                started_at=timestamp,
                record_uuid=record.uuid,
            ))
            return [SessionEvent(
                type="tool_start",
                timestamp=timestamp,
                record_uuid=record.uuid,
                tool_name=block.name,
                tool_id=block.id,
                tool_input=block.input,
            )]

        # Images, and tool results echoed inside assistant records, carry no activity
        return []

    def _complete_tool(
        self, block: ToolResultBlock, timestamp: datetime, record: RawRecord
    ) -> SessionEvent | None:
        tool = self._pop_pending(block.tool_use_id)
        if tool is None:
            self.dropped_results += 1
            logger.warning(
                "Dropping tool_result %s at %s: no open tool call to pair with",
                block.tool_use_id or "(no id)", timestamp.isoformat(),
            )
            return None

        completed_at = max(timestamp, tool.started_at)
        duration_ms = int((completed_at - tool.started_at).total_seconds() * 1000)
        return SessionEvent(
            type="tool_complete",
            timestamp=completed_at,
            record_uuid=record.uuid,
            tool_name=tool.name,
            tool_id=tool.tool_id,
            started_at=tool.started_at,
            duration_ms=duration_ms,
            is_error=block.is_error,
        )

    def _pop_pending(self, tool_use_id: str | None) -> PendingTool | None:
        if not self._pending:
            return None
        if tool_use_id is None:
            return self._pending.popleft()
        for i, pending in enumerate(self._pending):
            if pending.tool_id == tool_use_id:
                del self._pending[i]
                return pending
        # Unknown id: fall back to the oldest start that has no id of its own
        for i, pending in enumerate(self._pending):
            if pending.tool_id is None:
                del self._pending[i]
                return pending
        return None

    def _close_turn(self) -> list[SessionEvent]:
        if self._turn_started_at is None or self._last_assistant_at is None:
            return []
        ended_at = self._last_assistant_at
        duration_ms = max(0, int((ended_at - self._turn_started_at).total_seconds() * 1000))
        self._last_assistant_at = None
        return [SessionEvent(type="turn_end", timestamp=ended_at, turn_duration_ms=duration_ms)]


def normalize(
    records: list[RawRecord], *, max_thinking_chars: int | None = None
) -> list[SessionEvent]:
    """Normalize a complete record sequence. Pure: same input, same events."""
    normalizer = EventNormalizer(max_thinking_chars=max_thinking_chars)
    events: list[SessionEvent] = []
    for record in records:
        events.extend(normalizer.feed(record))
    events.extend(normalizer.finish())
    return events
