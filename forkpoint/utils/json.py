"""JSON parsing helpers shared by the transcript reader and the conversation store.

Both sides read data we do not fully control (a file another process
appends to, documents that may predate the current schema), so every
helper here returns None instead of raising on bad input.
"""

import json
from typing import Any


def parse_json_line(raw: bytes | str) -> dict[str, Any] | None:
    """Parse one transcript line into a dict, None when it is not a JSON object.

    Returns None for: blank lines, invalid UTF-8, invalid JSON, and JSON
    values that are not objects.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not raw.strip():
        return None
    try:
        parsed = json.loads(raw)
    except (ValueError, TypeError):
        return None
    if isinstance(parsed, dict):
        return parsed
    return None


def parse_json_field(raw: str | dict | None) -> dict[str, Any] | None:
    """Parse a JSON string or dict, returning None on failure or empty.

    For document columns. Returns None for: None, empty string, empty dict,
    invalid JSON, non-dict JSON.
    """
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw if raw else None
    if isinstance(raw, str):
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict) and parsed:
                return parsed
        except (ValueError, TypeError):
            pass
    return None


def sse_event(event: str, data: Any) -> str:
    """Format one server-sent event frame."""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"
