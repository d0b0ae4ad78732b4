"""
Lens overlay state machine.

One AppState value is owned by the render loop and passed into
handle_key_event() and render() each tick. Transitions come only from key
events or from the streaming task reporting completion:

    Input --Enter--> Thinking --stream done--> Review | Diff
      ^                  |
      +---stream failed--+

Every mode exits on Ctrl+C; Input, Review and Diff also exit on Escape.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field

from aether.executor import analyze_command, extract_diff


class AppMode(str, Enum):
    INPUT = "input"        # typing a query
    THINKING = "thinking"  # stream in flight
    REVIEW = "review"      # suggested command, accept or reject
    DIFF = "diff"          # suggested patch, accept or reject


class StreamOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"  # abandoned by the user; not an error


class Key(str, Enum):
    CHAR = "char"
    ENTER = "enter"
    ESCAPE = "escape"
    TAB = "tab"
    BACKSPACE = "backspace"
    UP = "up"
    DOWN = "down"
    INTERRUPT = "interrupt"  # Ctrl+C


@dataclass(frozen=True)
class KeyEvent:
    key: Key
    char: str = ""

    @classmethod
    def of(cls, char: str) -> "KeyEvent":
        return cls(Key.CHAR, char)


class ChatMessage(BaseModel):
    role: str  # "user" or "assistant"
    content: str


class AppState(BaseModel):
    """Everything the overlay draws and every pending action it signals."""

    input_buffer: str = ""
    mode: AppMode = AppMode.INPUT
    chat_history: list[ChatMessage] = Field(default_factory=list)

    suggested_command: Optional[str] = None
    command_explanation: Optional[str] = None
    diff_content: Optional[str] = None
    scroll_position: int = 0
    show_explanation: bool = False

    # Signals read by the render loop
    should_process_query: bool = False
    should_execute: bool = False
    should_apply_patch: bool = False
    should_cancel_stream: bool = False

    streamed_text: str = ""
    error_message: Optional[str] = None
    last_outcome: Optional[StreamOutcome] = None

    animation_frame: int = 0
    initial_buffer: str = ""
    cursor_pos: int = 0

    @classmethod
    def new(cls, initial_buffer: str = "", cursor_pos: int = 0) -> "AppState":
        """Start in Input, prefilled with the shell's command line."""
        return cls(
            input_buffer=initial_buffer,
            initial_buffer=initial_buffer,
            cursor_pos=cursor_pos,
        )

    @classmethod
    def for_diff(cls, diff: str) -> "AppState":
        """Start directly in Diff (Sentinel mode with a patch to review)."""
        return cls(mode=AppMode.DIFF, diff_content=diff)

    @property
    def max_scroll(self) -> int:
        if not self.diff_content:
            return 0
        return max(0, len(self.diff_content.splitlines()) - 1)

    def add_message(self, role: str, content: str) -> None:
        self.chat_history.append(ChatMessage(role=role, content=content))


# ─────────────────────────────────────────────────────────────────────
# KEY HANDLING
# ─────────────────────────────────────────────────────────────────────

def handle_key_event(state: AppState, event: KeyEvent) -> bool:
    """Apply one key event. Returns True when the overlay should exit."""
    key = event.key

    if state.mode == AppMode.INPUT:
        if key in (Key.INTERRUPT, Key.ESCAPE):
            return True
        if key == Key.ENTER:
            if state.input_buffer.strip():
                state.mode = AppMode.THINKING
                state.should_process_query = True
        elif key == Key.CHAR:
            state.input_buffer += event.char
        elif key == Key.BACKSPACE:
            state.input_buffer = state.input_buffer[:-1]

    elif state.mode == AppMode.THINKING:
        # Interrupt is the only way out while the stream is in flight
        if key == Key.INTERRUPT:
            state.should_cancel_stream = True
            return True

    elif state.mode == AppMode.REVIEW:
        if key in (Key.INTERRUPT, Key.ESCAPE):
            return True
        if key == Key.ENTER:
            state.should_execute = True
            return True
        if key == Key.TAB:
            state.show_explanation = not state.show_explanation

    elif state.mode == AppMode.DIFF:
        if key in (Key.INTERRUPT, Key.ESCAPE):
            return True
        if key == Key.ENTER:
            state.should_apply_patch = True
            return True
        if key == Key.UP:
            state.scroll_position = max(0, state.scroll_position - 1)
        elif key == Key.DOWN:
            state.scroll_position = min(state.max_scroll, state.scroll_position + 1)

    return False


# ─────────────────────────────────────────────────────────────────────
# STREAM TRANSITIONS
# ─────────────────────────────────────────────────────────────────────

def begin_streaming(state: AppState) -> None:
    state.mode = AppMode.THINKING
    state.should_process_query = False
    state.streamed_text = ""
    state.error_message = None
    state.last_outcome = None


def append_fragment(state: AppState, fragment: str) -> None:
    state.streamed_text += fragment


def finish_streaming(
    state: AppState,
    explain: Callable[[str], str] = analyze_command,
) -> None:
    """
    Move to Diff if the answer carries a unified diff, else to Review.

    `explain` produces the Review explanation for the suggested command.
    """
    answer = state.streamed_text.strip()
    state.last_outcome = StreamOutcome.COMPLETED
    state.add_message("user", state.input_buffer)
    state.add_message("assistant", answer)

    diff = extract_diff(answer)
    if diff is not None:
        state.diff_content = diff
        state.scroll_position = 0
        state.mode = AppMode.DIFF
        return

    state.suggested_command = answer
    state.command_explanation = explain(answer)
    state.show_explanation = False
    state.mode = AppMode.REVIEW


def fail(state: AppState, message: str) -> None:
    """Show the error and hand control back to Input; the query is kept."""
    state.mode = AppMode.INPUT
    state.error_message = message
    state.last_outcome = StreamOutcome.FAILED
    state.streamed_text = ""


def cancel(state: AppState) -> None:
    state.should_cancel_stream = False
    state.last_outcome = StreamOutcome.CANCELLED


def reset_for_new_query(state: AppState) -> None:
    state.mode = AppMode.INPUT
    state.suggested_command = None
    state.command_explanation = None
    state.diff_content = None
    state.scroll_position = 0
    state.show_explanation = False
    state.should_process_query = False
    state.should_execute = False
    state.should_apply_patch = False
    state.should_cancel_stream = False
    state.streamed_text = ""
    state.error_message = None
