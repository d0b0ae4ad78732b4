"""Context collaborators: file scan, shell history, hook session files."""

from .fs_scanner import scan_directory
from .shell import SessionContext, read_history

__all__ = ["SessionContext", "read_history", "scan_directory"]
