"""Incremental reader over the agent's append-only JSONL transcript.

The agent process is the only writer. We never hold the file open between
reads: every read is addressed by an explicit byte offset, so any number of
independent readers and watchers can follow the same file.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from forkpoint.models import RECORD_TYPES, RawRecord, SessionEvent
from forkpoint.transcripts.normalizer import EventNormalizer
from forkpoint.utils.json import parse_json_line

logger = logging.getLogger(__name__)


@dataclass
class TranscriptCursor:
    """Position of one reader in one transcript. Advanced by watch()."""

    path: Path
    offset: int = 0

    def __post_init__(self) -> None:
        self.path = Path(self.path)


def read_all(path: str | Path) -> list[RawRecord]:
    """Read every record in the transcript. Missing file reads as empty."""
    records, _ = read_incremental(path, 0)
    return records


def read_incremental(path: str | Path, from_offset: int) -> tuple[list[RawRecord], int]:
    """Read records appended since `from_offset`.

    Returns the records and the offset to pass on the next call. Only bytes
    that were fully consumed advance the offset: a trailing fragment that
    does not parse yet (the writer is mid-line) is left for the next read.
    """
    path = Path(path)
    try:
        size = path.stat().st_size
        if size < from_offset:
            logger.warning(
                "Transcript %s is shorter (%d bytes) than offset %d, ignoring",
                path, size, from_offset,
            )
            return [], from_offset
        if size == from_offset:
            return [], from_offset
        with path.open("rb") as f:
            f.seek(from_offset)
            data = f.read(size - from_offset)
    except FileNotFoundError:
        return [], from_offset

    return _parse_chunk(data, from_offset)


def file_size(path: str | Path) -> int:
    """Current transcript size, 0 when the file does not exist yet."""
    try:
        return Path(path).stat().st_size
    except FileNotFoundError:
        return 0


def _parse_chunk(data: bytes, base_offset: int) -> tuple[list[RawRecord], int]:
    records: list[RawRecord] = []
    consumed = 0
    pos = 0

    while pos < len(data):
        newline = data.find(b"\n", pos)
        if newline == -1:
            # Unterminated tail: consume it only if it is already a complete object
            obj = parse_json_line(data[pos:])
            if obj is None:
                break
            record = _to_record(obj, base_offset + pos)
            if record is not None:
                records.append(record)
            consumed = len(data)
            break

        line = data[pos:newline]
        obj = parse_json_line(line)
        if obj is None:
            if line.strip():
                logger.debug("Skipping malformed transcript line at byte %d", base_offset + pos)
        else:
            record = _to_record(obj, base_offset + pos)
            if record is not None:
                records.append(record)
        pos = newline + 1
        consumed = pos

    return records, base_offset + consumed


def _to_record(obj: dict[str, Any], offset: int) -> RawRecord | None:
    if obj.get("type") not in RECORD_TYPES:
        return None
    try:
        record = RawRecord.model_validate(obj)
    except ValidationError as e:
        logger.debug("Skipping invalid %s record at byte %d: %s", obj.get("type"), offset, e)
        return None
    return record.model_copy(update={"offset": offset})


async def watch(
    cursor: TranscriptCursor,
    *,
    poll_interval: float = 0.5,
    cancel: asyncio.Event | None = None,
    producer_done: Callable[[], bool] | None = None,
    stop_when_idle: bool = False,
    normalizer: EventNormalizer | None = None,
) -> AsyncIterator[SessionEvent]:
    """Poll the transcript and yield normalized events as the agent writes them.

    Stops when `cancel` is set (within one poll interval), when
    `producer_done()` reports the agent exited and a poll saw no growth, or,
    with `stop_when_idle`, on the first poll without growth after a terminal
    record. Without any of these it runs until cancelled. The cursor is
    advanced in place, so a stopped watch can be restarted from it.
    """
    if normalizer is None:
        # Resuming mid-file: the session was already announced
        normalizer = EventNormalizer(emit_init=cursor.offset == 0)
    saw_terminal = False

    while cancel is None or not cancel.is_set():
        records, new_offset = await asyncio.to_thread(
            read_incremental, cursor.path, cursor.offset
        )
        grew = new_offset != cursor.offset
        cursor.offset = new_offset

        for record in records:
            for event in normalizer.feed(record):
                yield event
        if records:
            saw_terminal = records[-1].is_terminal

        if not grew:
            if producer_done is not None and producer_done():
                break
            if stop_when_idle and saw_terminal:
                break

        if await _wait_for_cancel(cancel, poll_interval):
            break

    for event in normalizer.finish():
        yield event


async def _wait_for_cancel(cancel: asyncio.Event | None, timeout: float) -> bool:
    """Sleep one poll interval; True if cancellation fired meanwhile."""
    if cancel is None:
        await asyncio.sleep(timeout)
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout=timeout)
    except TimeoutError:
        return False
    return True
