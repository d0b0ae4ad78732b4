"""
Shell-side context: history file reader and the session files written by
the shell hooks (see `aether inject`).

Layout under AETHER_TMP_DIR (default /tmp/aether):
    session_context.json  - refreshed after every prompt
    last_session          - written only when a command exits non-zero
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from aether.config import DEFAULT_HISTORY_LIMIT, get_tmp_dir
from aether.errors import AetherError

logger = logging.getLogger(__name__)

SESSION_CONTEXT_FILE = "session_context.json"
LAST_SESSION_FILE = "last_session"

HISTORY_FILES = (".bash_history", ".zsh_history")

# zsh EXTENDED_HISTORY lines look like ": 1700000000:0;git status"
_ZSH_EXTENDED = re.compile(r"^: \d+:\d+;")


def read_history(limit: int = DEFAULT_HISTORY_LIMIT, home: Optional[Path] = None) -> list[str]:
    """
    Most recent `limit` commands, most recent first.

    Reads the first history file that exists (bash, then zsh). Returns []
    when neither exists or HOME is unknown.
    """
    if home is None:
        home_env = os.environ.get("HOME")
        if not home_env:
            return []
        home = Path(home_env)

    for filename in HISTORY_FILES:
        history_path = home / filename
        if not history_path.is_file():
            continue
        try:
            content = history_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Could not read %s: %s", history_path, e)
            continue

        commands = []
        for line in reversed(content.splitlines()):
            command = _ZSH_EXTENDED.sub("", line).strip()
            if not command:
                continue
            commands.append(command)
            if len(commands) >= limit:
                break
        return commands

    return []


class SessionContext(BaseModel):
    """
    One snapshot written by the shell hooks.

    The hooks write `last_exit_code` into session_context.json and
    `exit_code` into last_session; both populate `exit_code`.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    last_command: Optional[str] = None
    exit_code: Optional[int] = Field(default=None, alias="last_exit_code")
    duration: Optional[int] = None
    working_directory: str = ""
    shell_type: str = ""
    timestamp: Optional[int] = None

    @classmethod
    def from_json(cls, text: str) -> "SessionContext":
        try:
            data = json.loads(text)
        except ValueError as e:
            raise AetherError(f"Malformed session file: {e}") from e
        if not isinstance(data, dict):
            raise AetherError("Malformed session file: expected a JSON object")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise AetherError(f"Malformed session file: {e}") from e

    @classmethod
    def load(cls, path: Optional[Path] = None) -> Optional["SessionContext"]:
        """Load session_context.json (or `path`); None if it does not exist."""
        path = path or session_context_path()
        if not path.exists():
            return None
        return cls.from_json(path.read_text(encoding="utf-8"))

    @classmethod
    def load_last_session(cls) -> Optional["SessionContext"]:
        """Load the last failed command recorded for Sentinel mode."""
        return cls.load(last_session_path())

    def save(self, path: Optional[Path] = None) -> Path:
        path = path or session_context_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        return path

    @property
    def failed(self) -> bool:
        return self.exit_code not in (None, 0)

    def error_log(self) -> str:
        """Text handed to get_fix_suggestion()."""
        lines = [f"$ {self.last_command or '(unknown command)'}"]
        if self.exit_code is not None:
            lines.append(f"exit code: {self.exit_code}")
        if self.working_directory:
            lines.append(f"working directory: {self.working_directory}")
        if self.shell_type:
            lines.append(f"shell: {self.shell_type}")
        return "\n".join(lines)


def session_context_path() -> Path:
    return get_tmp_dir() / SESSION_CONTEXT_FILE


def last_session_path() -> Path:
    return get_tmp_dir() / LAST_SESSION_FILE
