"""
Command safety checks and patch application.

Nothing here runs the suggested shell command itself: lens mode prints it
for the shell widget to place on the prompt, so the user always executes
it by hand.
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import Optional, Union

from aether.errors import AetherError

logger = logging.getLogger(__name__)

# Matched case-insensitively as substrings
DANGEROUS_PATTERNS: tuple[str, ...] = (
    "rm -rf",
    "rm -fr",
    "drop table",
    "drop database",
    "delete from",
    "truncate",
    "mkfs",
    "dd if=",
    "> /dev/",
    ":(){ :|:& };:",  # fork bomb
    "chmod -r 777",
    "chown -r",
)

_FENCED_DIFF = re.compile(r"```(?:diff|patch)?[ \t]*\n(.*?)```", re.DOTALL)
_HUNK_HEADER = re.compile(r"^@@ -\d+(?:,\d+)? \+\d+(?:,\d+)? @@", re.MULTILINE)


def is_destructive(command: str) -> bool:
    command_lower = command.lower()
    return any(pattern in command_lower for pattern in DANGEROUS_PATTERNS)


def analyze_command(command: str) -> str:
    """Human-readable summary shown as the Review explanation."""
    if is_destructive(command):
        return (
            "WARNING: This command appears to be destructive!\n\n"
            f"Command: {command}\n\n"
            "This may delete files, modify permissions, or cause irreversible changes."
        )
    return f"Command: {command}\n\nThis command appears safe to execute."


def _looks_like_diff(text: str) -> bool:
    return (
        "\n+++ " in f"\n{text}"
        and "\n--- " in f"\n{text}"
        and _HUNK_HEADER.search(text) is not None
    )


def extract_diff(text: str) -> Optional[str]:
    """
    Return the unified diff carried by a model answer, or None.

    Accepts a bare diff or one wrapped in a ``` / ```diff fence; the
    answer may have prose around a fenced diff.
    """
    for match in _FENCED_DIFF.finditer(text):
        body = match.group(1)
        if _looks_like_diff(body):
            return body if body.endswith("\n") else body + "\n"

    stripped = text.strip()
    if _looks_like_diff(stripped):
        start = stripped.find("--- ")
        diff = stripped[start:]
        return diff + "\n"
    return None


def apply_patch(diff: str, cwd: Optional[Union[str, Path]] = None) -> str:
    """
    Apply a unified diff with `git apply`, reading the patch from stdin.

    Returns:
        git's report of the files it touched

    Raises:
        AetherError: git is missing or rejected the patch
    """
    logger.debug("Applying patch (%d bytes) in %s", len(diff), cwd or ".")
    try:
        cp = subprocess.run(
            ["git", "apply", "--verbose", "-"],
            cwd=cwd,
            input=diff,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise AetherError("git not found; cannot apply patch") from e

    if cp.returncode != 0:
        raise AetherError(f"git apply failed: {cp.stderr.strip() or cp.stdout.strip()}")
    return (cp.stdout + cp.stderr).strip()
