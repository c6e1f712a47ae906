"""Locate agent transcripts on disk and pull small facts out of them."""

import logging
from dataclasses import dataclass
from pathlib import Path

from forkpoint.config import DEFAULT_PROJECTS_DIR
from forkpoint.models import RawRecord, TextBlock, ToolUseBlock
from forkpoint.transcripts.reader import read_all
from forkpoint.utils.json import parse_json_line

logger = logging.getLogger(__name__)


@dataclass
class SessionFile:
    path: Path
    working_dir: str | None


def project_dir_name(working_dir: str) -> str:
    """The agent stores each working directory's sessions under its path with / as -."""
    return working_dir.replace("/", "-")


def session_file_path(
    session_id: str,
    working_dir: str,
    projects_dir: str | Path = DEFAULT_PROJECTS_DIR,
) -> Path:
    return Path(projects_dir) / project_dir_name(working_dir) / f"{session_id}.jsonl"


def find_session_file(
    session_id: str, projects_dir: str | Path = DEFAULT_PROJECTS_DIR
) -> SessionFile | None:
    """Search every project directory for the session's transcript.

    Used when the working directory is unknown. The working directory is
    recovered from the first record that carries a `cwd`.
    """
    root = Path(projects_dir)
    try:
        project_dirs = sorted(p for p in root.iterdir() if p.is_dir())
    except OSError as e:
        logger.debug("Cannot list projects directory %s: %s", root, e)
        return None

    filename = f"{session_id}.jsonl"
    for project_dir in project_dirs:
        candidate = project_dir / filename
        if candidate.is_file():
            return SessionFile(path=candidate, working_dir=_recover_working_dir(candidate))
    return None


def _recover_working_dir(path: Path) -> str | None:
    try:
        with path.open("rb") as f:
            for line in f:
                obj = parse_json_line(line)
                if obj and isinstance(obj.get("cwd"), str):
                    return obj["cwd"]
    except OSError as e:
        logger.debug("Cannot read %s: %s", path, e)
    return None


def last_user_message_uuid(path: str | Path) -> str | None:
    """Uuid of the most recent real user input in the transcript."""
    for record in reversed(read_all(path)):
        if record.is_user_input and record.uuid:
            return record.uuid
    return None


def extract_text_content(record: RawRecord) -> str:
    """Visible text of a record: text blocks plus a marker per tool call."""
    if record.message is None:
        return ""
    if isinstance(record.message.content, str):
        return record.message.content

    parts = []
    for block in record.blocks:
        if isinstance(block, TextBlock):
            if block.text:
                parts.append(block.text)
        elif isinstance(block, ToolUseBlock):
            parts.append(f"[Tool: {block.name}]")
    return "\n".join(parts)
