"""Response schemas for transcript endpoints."""

from pydantic import BaseModel, Field

from forkpoint.models import ActivityEntry


class SegmentResponse(BaseModel):
    text_output_uuid: str | None = None
    text: str
    activity: list[ActivityEntry] = Field(default_factory=list)
    activity_message_uuids: list[str] = Field(default_factory=list)
    continuation_uuids: list[str] = Field(default_factory=list)


class TurnResponse(BaseModel):
    user_input_uuid: str | None = None
    user_text: str
    segments: list[SegmentResponse] = Field(default_factory=list)
    trailing_activity: list[ActivityEntry] = Field(default_factory=list)
    is_complete: bool
    message_uuids: list[str] = Field(default_factory=list)


class TranscriptLocation(BaseModel):
    session_id: str
    path: str
    working_dir: str | None = None
    size: int = 0
