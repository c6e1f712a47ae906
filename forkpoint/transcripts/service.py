"""Transcript service: locates a session's transcript and serves derived views."""

import asyncio
import logging
from collections.abc import AsyncIterator
from pathlib import Path

from forkpoint.config import Settings
from forkpoint.models import ActivityEntry, RawRecord, SessionEvent, Turn
from forkpoint.transcripts.activity import activity_for_records, build_activity_log
from forkpoint.transcripts.grouping import group_by_turn
from forkpoint.transcripts.normalizer import EventNormalizer, normalize
from forkpoint.transcripts.paths import (
    extract_text_content,
    find_session_file,
    session_file_path,
)
from forkpoint.transcripts.reader import TranscriptCursor, file_size, read_all, watch
from forkpoint.transcripts.schemas import SegmentResponse, TranscriptLocation, TurnResponse

logger = logging.getLogger(__name__)


class TranscriptService:
    """Read-only views over the agent's transcripts. Never writes to them."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def locate(self, session_id: str, working_dir: str | None = None) -> TranscriptLocation:
        """Where the transcript lives. With a working dir the path is computed,
        otherwise every project directory is searched."""
        if working_dir:
            path = session_file_path(session_id, working_dir, self._settings.projects_dir)
            return TranscriptLocation(
                session_id=session_id,
                path=str(path),
                working_dir=working_dir,
                size=file_size(path),
            )

        found = find_session_file(session_id, self._settings.projects_dir)
        if found is None:
            raise TranscriptNotFoundError(session_id)
        return TranscriptLocation(
            session_id=session_id,
            path=str(found.path),
            working_dir=found.working_dir,
            size=file_size(found.path),
        )

    async def get_events(
        self, session_id: str, working_dir: str | None = None
    ) -> list[SessionEvent]:
        location = self.locate(session_id, working_dir)
        records = await asyncio.to_thread(read_all, location.path)
        return normalize(records, max_thinking_chars=self._settings.max_thinking_chars)

    async def get_activity(
        self, session_id: str, working_dir: str | None = None
    ) -> list[ActivityEntry]:
        events = await self.get_events(session_id, working_dir)
        return build_activity_log(events, preview_chars=self._settings.preview_chars)

    async def get_turns(
        self, session_id: str, working_dir: str | None = None
    ) -> list[TurnResponse]:
        location = self.locate(session_id, working_dir)
        records = await asyncio.to_thread(read_all, location.path)
        return [self._turn_response(turn) for turn in group_by_turn(records)]

    async def watch(
        self,
        session_id: str,
        working_dir: str | None = None,
        *,
        from_offset: int = 0,
        cancel: asyncio.Event | None = None,
        until_idle: bool = True,
    ) -> AsyncIterator[SessionEvent]:
        """Follow the transcript, yielding events as they are appended."""
        location = self.locate(session_id, working_dir)
        cursor = TranscriptCursor(Path(location.path), from_offset)
        normalizer = EventNormalizer(
            emit_init=from_offset == 0,
            max_thinking_chars=self._settings.max_thinking_chars,
        )
        logger.debug("Watching %s from byte %d", location.path, from_offset)
        async for event in watch(
            cursor,
            poll_interval=self._settings.poll_interval,
            cancel=cancel,
            stop_when_idle=until_idle,
            normalizer=normalizer,
        ):
            yield event
        logger.debug("Stopped watching %s at byte %d", location.path, cursor.offset)

    def _turn_response(self, turn: Turn) -> TurnResponse:
        preview_chars = self._settings.preview_chars
        segments = [
            SegmentResponse(
                text_output_uuid=segment.text_output.key,
                text=segment.text,
                activity=activity_for_records(
                    segment.activity_messages, preview_chars=preview_chars
                ),
                activity_message_uuids=_keys(segment.activity_messages),
                continuation_uuids=_keys(segment.continuations),
            )
            for segment in turn.segments
        ]
        return TurnResponse(
            user_input_uuid=turn.user_input.key,
            user_text=extract_text_content(turn.user_input),
            segments=segments,
            trailing_activity=activity_for_records(
                turn.trailing_activity, preview_chars=preview_chars
            ),
            is_complete=turn.is_complete,
            message_uuids=turn.all_message_uuids,
        )


def _keys(records: list[RawRecord]) -> list[str]:
    return [r.key for r in records if r.key is not None]


class TranscriptNotFoundError(Exception):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Transcript not found for session: {session_id}")
