"""Lens overlay: state machine and rich/prompt_toolkit event loop."""

from .renderer import LensApp, render, run_diff_review, run_lens_mode
from .state import AppMode, AppState, Key, KeyEvent, StreamOutcome, handle_key_event

__all__ = [
    "AppMode",
    "AppState",
    "Key",
    "KeyEvent",
    "LensApp",
    "StreamOutcome",
    "handle_key_event",
    "render",
    "run_diff_review",
    "run_lens_mode",
]
