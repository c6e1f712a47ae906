"""Shared test helpers: transcript record builders and index entry builders."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Literal
from uuid import uuid4

from forkpoint.models import MessageIndexEntry, RawRecord

BASE_TIME = datetime(2026, 1, 5, 12, 0, 0, tzinfo=UTC)

SESSION_ID = "sess-0001"
WORKING_DIR = "/work/project"


def ts(seconds: float) -> str:
    """ISO timestamp `seconds` after BASE_TIME, in the agent's Z-suffixed format."""
    return (BASE_TIME + timedelta(seconds=seconds)).isoformat().replace("+00:00", "Z")


def at(seconds: float) -> datetime:
    return BASE_TIME + timedelta(seconds=seconds)


# -- Content blocks --


def text_block(text: str) -> dict:
    return {"type": "text", "text": text}


def thinking_block(thinking: str, **extra: Any) -> dict:
    return {"type": "thinking", "thinking": thinking, "signature": "sig", **extra}


def tool_use_block(name: str = "Read", tool_id: str | None = None, input: dict | None = None) -> dict:
    block = {"type": "tool_use", "name": name, "input": input or {"file_path": "/tmp/x"}}
    if tool_id is not None:
        block["id"] = tool_id
    return block


def tool_result_block(
    tool_use_id: str | None = None, content: str = "ok", is_error: bool = False
) -> dict:
    block = {"type": "tool_result", "content": content, "is_error": is_error}
    if tool_use_id is not None:
        block["tool_use_id"] = tool_use_id
    return block


# -- Records --


def make_init_record(
    session_id: str = SESSION_ID,
    model: str = "claude-sonnet-4-5-20250929",
    seconds: float = 0.0,
    **extra: Any,
) -> dict:
    return {
        "type": "system",
        "subtype": "init",
        "session_id": session_id,
        "model": model,
        "cwd": WORKING_DIR,
        "uuid": str(uuid4()),
        "timestamp": ts(seconds),
        **extra,
    }


def make_user_record(
    text: str = "hi",
    seconds: float = 1.0,
    uuid: str | None = None,
    session_id: str = SESSION_ID,
    **extra: Any,
) -> dict:
    return {
        "type": "user",
        "uuid": uuid or str(uuid4()),
        "sessionId": session_id,
        "timestamp": ts(seconds),
        "cwd": WORKING_DIR,
        "message": {"role": "user", "content": text},
        **extra,
    }


def make_assistant_record(
    blocks: list[dict] | str,
    seconds: float = 2.0,
    uuid: str | None = None,
    message_id: str | None = None,
    stop_reason: str | None = None,
    session_id: str = SESSION_ID,
    **extra: Any,
) -> dict:
    if isinstance(blocks, str):
        blocks = [text_block(blocks)]
    return {
        "type": "assistant",
        "uuid": uuid or str(uuid4()),
        "sessionId": session_id,
        "timestamp": ts(seconds),
        "message": {
            "id": message_id or f"msg_{uuid4().hex[:12]}",
            "role": "assistant",
            "model": "claude-sonnet-4-5-20250929",
            "stop_reason": stop_reason,
            "content": blocks,
        },
        **extra,
    }


def make_tool_result_record(
    *results: dict,
    seconds: float = 3.0,
    uuid: str | None = None,
    session_id: str = SESSION_ID,
) -> dict:
    return {
        "type": "user",
        "uuid": uuid or str(uuid4()),
        "sessionId": session_id,
        "timestamp": ts(seconds),
        "message": {"role": "user", "content": list(results) or [tool_result_block()]},
    }


def to_records(dicts: list[dict]) -> list[RawRecord]:
    return [RawRecord.model_validate(d) for d in dicts]


# -- Transcript files --


def write_transcript(path: Path, records: list[dict]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        for record in records:
            f.write(json.dumps(record) + "\n")
    return path


def append_raw(path: Path, data: str) -> None:
    with path.open("a", encoding="utf-8") as f:
        f.write(data)


def append_records(path: Path, records: list[dict]) -> None:
    append_raw(path, "".join(json.dumps(r) + "\n" for r in records))


def scenario_b_records() -> list[dict]:
    """[init, user, assistant(tool_use Read), user(tool_result), assistant(text "done")]."""
    return [
        make_init_record(seconds=0),
        make_user_record("read the file", seconds=1),
        make_assistant_record([tool_use_block("Read", tool_id="toolu_1")], seconds=2),
        make_tool_result_record(tool_result_block("toolu_1", "contents"), seconds=3.5),
        make_assistant_record("done", seconds=4, stop_reason="end_turn"),
    ]


# -- Message index --


def make_index_entry(
    external_ref: str,
    internal_message_id: str,
    kind: Literal["user", "assistant"] = "assistant",
    session_id: str | None = SESSION_ID,
    **extra: Any,
) -> MessageIndexEntry:
    return MessageIndexEntry(
        external_ref=external_ref,
        internal_message_id=internal_message_id,
        kind=kind,
        session_id=session_id,
        **extra,
    )
