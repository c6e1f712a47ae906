"""FastAPI routes for reading and following agent transcripts."""

from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from forkpoint.models import ActivityEntry, SessionEvent
from forkpoint.transcripts.schemas import TranscriptLocation, TurnResponse
from forkpoint.transcripts.service import TranscriptNotFoundError, TranscriptService
from forkpoint.utils.json import sse_event

router = APIRouter(prefix="/api/transcripts", tags=["transcripts"])


def get_transcript_service() -> TranscriptService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("TranscriptService not initialized")


@router.get("/{session_id}")
async def locate_transcript(
    session_id: str,
    working_dir: str | None = Query(None),
    service: TranscriptService = Depends(get_transcript_service),
) -> TranscriptLocation:
    try:
        return service.locate(session_id, working_dir)
    except TranscriptNotFoundError:
        raise HTTPException(status_code=404, detail=f"Transcript not found: {session_id}")


@router.get("/{session_id}/events")
async def get_events(
    session_id: str,
    working_dir: str | None = Query(None),
    service: TranscriptService = Depends(get_transcript_service),
) -> list[SessionEvent]:
    try:
        return await service.get_events(session_id, working_dir)
    except TranscriptNotFoundError:
        raise HTTPException(status_code=404, detail=f"Transcript not found: {session_id}")


@router.get("/{session_id}/turns")
async def get_turns(
    session_id: str,
    working_dir: str | None = Query(None),
    service: TranscriptService = Depends(get_transcript_service),
) -> list[TurnResponse]:
    try:
        return await service.get_turns(session_id, working_dir)
    except TranscriptNotFoundError:
        raise HTTPException(status_code=404, detail=f"Transcript not found: {session_id}")


@router.get("/{session_id}/activity")
async def get_activity(
    session_id: str,
    working_dir: str | None = Query(None),
    service: TranscriptService = Depends(get_transcript_service),
) -> list[ActivityEntry]:
    try:
        return await service.get_activity(session_id, working_dir)
    except TranscriptNotFoundError:
        raise HTTPException(status_code=404, detail=f"Transcript not found: {session_id}")


@router.get("/{session_id}/watch", response_model=None)
async def watch_transcript(
    session_id: str,
    working_dir: str | None = Query(None),
    from_offset: int = Query(0, ge=0),
    until_idle: bool = Query(True),
    service: TranscriptService = Depends(get_transcript_service),
) -> StreamingResponse:
    # Resolve up front so a missing transcript is a 404, not an error frame
    try:
        service.locate(session_id, working_dir)
    except TranscriptNotFoundError:
        raise HTTPException(status_code=404, detail=f"Transcript not found: {session_id}")

    return StreamingResponse(
        _stream_sse(service, session_id, working_dir, from_offset, until_idle),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def _stream_sse(
    service: TranscriptService,
    session_id: str,
    working_dir: str | None,
    from_offset: int,
    until_idle: bool,
) -> AsyncIterator[str]:
    """Async generator that yields SSE-formatted frames, one per event.

    The client disconnecting cancels this generator, which stops the watch.
    """
    try:
        async for event in service.watch(
            session_id, working_dir, from_offset=from_offset, until_idle=until_idle
        ):
            yield sse_event(event.type, event.model_dump(mode="json"))
        yield sse_event("done", {"session_id": session_id})
    except TranscriptNotFoundError:
        yield sse_event("error", {"error": f"Transcript not found: {session_id}"})
    except OSError as e:
        yield sse_event("error", {"error": str(e)})
