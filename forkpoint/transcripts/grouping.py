"""Partition transcript records into turns and text-closed segments.

A turn runs from one real user input to the next. Inside a turn, activity
records (tool calls, tool results, reasoning) accumulate until a record with
visible text arrives; that record closes a segment. Text that continues the
previous reply (the agent split one logical message across several records)
is folded into the open segment instead of starting a new one.
"""

import logging

from forkpoint.models import RawRecord, Segment, Turn

logger = logging.getLogger(__name__)


def group_by_turn(records: list[RawRecord]) -> list[Turn]:
    """Group records into turns. Records before the first user input are ignored."""
    turns: list[Turn] = []
    builder: _TurnBuilder | None = None

    for position, record in enumerate(records):
        if record.type == "system":
            continue
        if record.is_user_input:
            if builder is not None:
                turns.append(builder.build())
            builder = _TurnBuilder(record, _identity(record, position))
            continue
        if builder is None:
            continue
        builder.add(record, _identity(record, position))

    if builder is not None:
        turns.append(builder.build())
    return turns


def is_turn_complete(turn: Turn) -> bool:
    """A turn is complete once it has text and no activity after the last text."""
    return turn.is_complete


def continues_reply(record: RawRecord, previous: RawRecord | None) -> bool:
    """True when `record` is a further fragment of the reply in `previous`."""
    if previous is None or record.type != "assistant":
        return False
    if record.is_continuation:
        return True
    message_id = record.message.id if record.message else None
    previous_id = previous.message.id if previous.message else None
    return message_id is not None and message_id == previous_id


def _identity(record: RawRecord, position: int) -> str:
    """Dedup key: the record's own key, else its index in the input list."""
    key = record.key
    return key if key is not None else f"#{position}"


class _TurnBuilder:
    def __init__(self, user_input: RawRecord, identity: str) -> None:
        self.user_input = user_input
        self.segments: list[Segment] = []
        self.pending: list[RawRecord] = []
        self._seen: set[str] = {identity}
        self._last_text: RawRecord | None = None

    def add(self, record: RawRecord, identity: str) -> None:
        if identity in self._seen:
            logger.debug("Skipping repeated record %s in turn", identity)
            return
        self._seen.add(identity)

        if record.type == "assistant" and record.has_text:
            if (
                self.segments
                and not self.pending
                and not record.has_activity
                and continues_reply(record, self._last_text)
            ):
                self.segments[-1].continuations.append(record)
            else:
                self.segments.append(
                    Segment(activity_messages=self.pending, text_output=record)
                )
                self.pending = []
            self._last_text = record
        elif record.has_activity:
            self.pending.append(record)

    def build(self) -> Turn:
        return Turn(
            user_input=self.user_input,
            segments=self.segments,
            trailing_activity=self.pending,
        )
