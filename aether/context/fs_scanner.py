"""
File-system scanner for request context.

Lists files that are not ignored by .gitignore (via `git ls-files` when the
directory is inside a work tree, else a pruned os.walk), keeps text files
under the size ceiling, and returns them most-recently-modified first.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional, Union

from aether.config import DEFAULT_MAX_CONTEXT_FILES

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 100_000
# Files considered (stat-ed and ordered by mtime) before max_files applies
MAX_CANDIDATES = 2_000

PRUNED_DIRS = frozenset({
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    "__pycache__",
    "node_modules",
    "dist",
    "build",
    "target",
    ".mypy_cache",
    ".pytest_cache",
})


def _run_git(args: list[str], cwd: Path) -> tuple[int, str]:
    try:
        cp = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
        return cp.returncode, cp.stdout
    except FileNotFoundError:
        return 127, ""


def _files_via_git(root: Path, limit: int) -> list[Path]:
    """Tracked plus untracked-but-not-ignored files, or [] outside a work tree."""
    code, out = _run_git(["ls-files", "-co", "--exclude-standard"], root)
    if code != 0:
        return []
    names = [line.strip() for line in out.splitlines() if line.strip()]
    return [root / name for name in names[:limit]]


def _files_via_walk(root: Path, limit: int) -> list[Path]:
    """First `limit` files of a pruned walk; stops as soon as it has them."""
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in PRUNED_DIRS and not d.startswith("."))
        for name in filenames:
            found.append(Path(dirpath, name))
            if len(found) >= limit:
                logger.debug("Walk of %s stopped at %d candidates", root, limit)
                return found
    return found


def _read_text(path: Path) -> Optional[str]:
    try:
        data = path.read_bytes()
    except OSError:
        return None
    if b"\x00" in data:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


def scan_directory(
    path: Union[str, Path],
    max_files: int = DEFAULT_MAX_CONTEXT_FILES,
    max_bytes: int = MAX_FILE_BYTES,
    max_candidates: int = MAX_CANDIDATES,
) -> list[tuple[str, str]]:
    """
    Return up to max_files (filename, content) pairs from under path.

    Binary files, undecodable files and files over max_bytes are skipped.
    At most max_candidates files are listed and ordered, so scanning a
    large tree (or $HOME) stays bounded. Names are relative to path.
    """
    root = Path(path).resolve()
    candidates = _files_via_git(root, max_candidates) or _files_via_walk(root, max_candidates)
    candidates.sort(key=_mtime, reverse=True)

    files = []
    for candidate in candidates:
        if len(files) >= max_files:
            break
        try:
            if candidate.stat().st_size > max_bytes:
                continue
        except OSError:
            continue
        content = _read_text(candidate)
        if content is None:
            continue
        files.append((candidate.relative_to(root).as_posix(), content))

    logger.debug("Scanned %s: %d context files", root, len(files))
    return files
