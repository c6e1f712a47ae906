"""Runtime settings, read from the environment (a .env file is loaded at startup)."""

import os
from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_PROJECTS_DIR = Path.home() / ".claude" / "projects"


class Settings(BaseModel):
    db_path: str = "forkpoint.db"
    projects_dir: Path = DEFAULT_PROJECTS_DIR
    poll_interval_ms: int = Field(default=500, ge=10)
    preview_chars: int = Field(default=500, ge=1)
    max_thinking_chars: int | None = None  # None = keep reasoning text whole
    default_working_dir: str | None = None  # None = the process working directory
    log_level: str = "INFO"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from FORKPOINT_* variables, falling back to defaults."""
        values: dict = {}
        env = os.environ

        if env.get("FORKPOINT_DB_PATH"):
            values["db_path"] = env["FORKPOINT_DB_PATH"]
        if env.get("FORKPOINT_PROJECTS_DIR"):
            values["projects_dir"] = Path(env["FORKPOINT_PROJECTS_DIR"]).expanduser()
        if env.get("FORKPOINT_POLL_INTERVAL_MS"):
            values["poll_interval_ms"] = int(env["FORKPOINT_POLL_INTERVAL_MS"])
        if env.get("FORKPOINT_PREVIEW_CHARS"):
            values["preview_chars"] = int(env["FORKPOINT_PREVIEW_CHARS"])
        if env.get("FORKPOINT_MAX_THINKING_CHARS"):
            values["max_thinking_chars"] = int(env["FORKPOINT_MAX_THINKING_CHARS"])
        if env.get("FORKPOINT_DEFAULT_WORKING_DIR"):
            values["default_working_dir"] = env["FORKPOINT_DEFAULT_WORKING_DIR"]
        if env.get("FORKPOINT_LOG_LEVEL"):
            values["log_level"] = env["FORKPOINT_LOG_LEVEL"].upper()
        if env.get("FORKPOINT_CORS_ORIGINS"):
            values["cors_origins"] = [
                origin.strip()
                for origin in env["FORKPOINT_CORS_ORIGINS"].split(",")
                if origin.strip()
            ]

        return cls.model_validate(values)
