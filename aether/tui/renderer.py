"""
Lens overlay - rich rendering plus the cooperative event loop.

One asyncio loop interleaves three things:
- drawing the current AppState (rich Live, on stderr so stdout stays
  free for the command the shell widget captures)
- polling key events from an asyncio.Queue with a 100 ms bound
- the completion stream, running as its own task

Interrupt while Thinking cancels the stream task, which closes the
provider's async generator and with it the HTTP connection.
"""

import asyncio
import logging
import sys
from contextlib import aclosing, contextmanager
from typing import Iterator, Optional

from prompt_toolkit.input import create_input
from prompt_toolkit.keys import Keys
from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from aether.brain import Brain
from aether.errors import AetherError
from aether.executor import apply_patch
from aether.tui.state import (
    AppMode,
    AppState,
    Key,
    KeyEvent,
    append_fragment,
    begin_streaming,
    cancel,
    fail,
    finish_streaming,
    handle_key_event,
)

logger = logging.getLogger(__name__)

TITLE = " AETHER - The Neural Fabric for your Shell "
POLL_INTERVAL_SECONDS = 0.1
ESCAPE_FLUSH_SECONDS = 0.05
DIFF_VIEW_LINES = 20
SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

FOOTERS = {
    AppMode.INPUT: "[green]Enter[/]: Submit | [red]Esc[/]: Quit",
    AppMode.THINKING: "[red]Ctrl+C[/]: Cancel",
    AppMode.REVIEW: "[green]Enter[/]: Execute | [cyan]Tab[/]: Toggle Explanation | [red]Esc[/]: Cancel",
    AppMode.DIFF: "[green]Enter[/]: Apply | [cyan]↑↓[/]: Scroll | [red]Esc[/]: Cancel",
}


# ─────────────────────────────────────────────────────────────────────
# RENDERING (pure: AppState in, renderable out)
# ─────────────────────────────────────────────────────────────────────

def _diff_line(line: str) -> Text:
    if line.startswith(("+++", "---")):
        return Text(line, style="bold")
    if line.startswith("@@"):
        return Text(line, style="cyan")
    if line.startswith("+"):
        return Text(line, style="green")
    if line.startswith("-"):
        return Text(line, style="red")
    return Text(line)


def _render_input(state: AppState) -> list[RenderableType]:
    parts: list[RenderableType] = [
        Text("Type your query in natural language", style="bright_black"),
        Panel(Text(state.input_buffer + "_"), title="Query", border_style="cyan"),
    ]
    if state.error_message:
        parts.append(Text(state.error_message, style="bold red"))
    return parts


def _render_thinking(state: AppState) -> list[RenderableType]:
    spinner = SPINNER_FRAMES[state.animation_frame % len(SPINNER_FRAMES)]
    parts: list[RenderableType] = [
        Text(f"Query: {state.input_buffer}", style="bright_black"),
        Text(f"{spinner} Thinking...", style="magenta"),
    ]
    if state.streamed_text:
        parts.append(Text(state.streamed_text))
    return parts


def _render_review(state: AppState) -> list[RenderableType]:
    parts: list[RenderableType] = [Text(f"Query: {state.input_buffer}", style="bright_black")]
    if state.suggested_command is not None:
        parts.append(Panel(
            Text(state.suggested_command, style="bold"),
            title="Command",
            border_style="green",
        ))
    if state.show_explanation and state.command_explanation:
        parts.append(Panel(Text(state.command_explanation), title="Explanation", border_style="yellow"))
    return parts


def _render_diff(state: AppState) -> list[RenderableType]:
    lines = (state.diff_content or "").splitlines()
    window = lines[state.scroll_position:state.scroll_position + DIFF_VIEW_LINES]
    body = Text("\n").join(_diff_line(line) for line in window)
    return [
        Text("Review the suggested patch", style="yellow"),
        Panel(body, title=f"Patch ({state.scroll_position + 1}/{max(len(lines), 1)})"),
    ]


_BODIES = {
    AppMode.INPUT: _render_input,
    AppMode.THINKING: _render_thinking,
    AppMode.REVIEW: _render_review,
    AppMode.DIFF: _render_diff,
}


def render(state: AppState) -> Panel:
    """The whole overlay for the current mode."""
    return Panel(
        Group(*_BODIES[state.mode](state)),
        title=TITLE,
        subtitle=FOOTERS[state.mode],
        border_style="cyan",
    )


# ─────────────────────────────────────────────────────────────────────
# TERMINAL INPUT
# ─────────────────────────────────────────────────────────────────────

def translate_key_press(key, data: str = "") -> Optional[KeyEvent]:
    """Map a prompt_toolkit key (Keys member or literal character) to a KeyEvent."""
    mapping = {
        Keys.ControlM: Key.ENTER,
        Keys.ControlJ: Key.ENTER,
        Keys.ControlI: Key.TAB,
        Keys.ControlH: Key.BACKSPACE,
        Keys.Escape: Key.ESCAPE,
        Keys.ControlC: Key.INTERRUPT,
        Keys.Up: Key.UP,
        Keys.Down: Key.DOWN,
    }
    if key in mapping:
        return KeyEvent(mapping[key])
    if isinstance(key, str) and not isinstance(key, Keys) and len(key) == 1 and key.isprintable():
        return KeyEvent.of(key)
    if data and len(data) == 1 and data.isprintable():
        return KeyEvent.of(data)
    return None


@contextmanager
def terminal_keys(queue: "asyncio.Queue[KeyEvent]") -> Iterator[None]:
    """
    Feed raw-mode keystrokes from the controlling terminal into `queue`.

    prompt_toolkit holds a lone Escape back until it knows no sequence
    follows, so pending keys are flushed shortly after each read.
    """
    loop = asyncio.get_running_loop()
    term_input = create_input()
    pending_flush: Optional[asyncio.TimerHandle] = None

    def push(key_presses) -> None:
        for key_press in key_presses:
            event = translate_key_press(key_press.key, key_press.data)
            if event is not None:
                queue.put_nowait(event)

    def flush() -> None:
        push(term_input.flush_keys())

    def on_ready() -> None:
        nonlocal pending_flush
        push(term_input.read_keys())
        if pending_flush is not None:
            pending_flush.cancel()
        pending_flush = loop.call_later(ESCAPE_FLUSH_SECONDS, flush)

    try:
        with term_input.raw_mode():
            with term_input.attach(on_ready):
                yield
    finally:
        if pending_flush is not None:
            pending_flush.cancel()


# ─────────────────────────────────────────────────────────────────────
# EVENT LOOP
# ─────────────────────────────────────────────────────────────────────

class LensApp:
    """
    Runs one overlay session over a single AppState.

    Usage:
        state = AppState.new(initial_buffer)
        await LensApp(brain, state).run()
        if state.should_execute:
            print(state.suggested_command)
    """

    def __init__(
        self,
        brain: Brain,
        state: AppState,
        console: Optional[Console] = None,
        keys: Optional["asyncio.Queue[KeyEvent]"] = None,
        screen: bool = True,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        """
        Args:
            brain: Builds requests and drives the provider
            state: Mutated in place; inspect it after run() returns
            console: Where to draw (default: stderr)
            keys: Pre-filled key queue; None reads the terminal
            screen: Use the alternate screen
            poll_interval: Upper bound on one key wait
        """
        self.brain = brain
        self.state = state
        self.console = console or Console(stderr=True)
        self._keys = keys
        self._screen = screen
        self._poll_interval = poll_interval
        self._stream_task: Optional[asyncio.Task] = None

    async def run(self) -> AppState:
        if self._keys is not None:
            await self._loop(self._keys)
            return self.state

        queue: "asyncio.Queue[KeyEvent]" = asyncio.Queue()
        with terminal_keys(queue):
            await self._loop(queue)
        return self.state

    async def _loop(self, keys: "asyncio.Queue[KeyEvent]") -> None:
        state = self.state
        try:
            with Live(
                render(state),
                console=self.console,
                screen=self._screen,
                auto_refresh=False,
                transient=True,
            ) as live:
                while True:
                    live.update(render(state), refresh=True)

                    event = await self._next_key(keys)
                    if event is not None and handle_key_event(state, event):
                        break

                    state.animation_frame += 1

                    if state.should_process_query:
                        self._start_stream()
                    self._reap_stream()
        finally:
            await self._cancel_stream()

    async def _next_key(self, keys: "asyncio.Queue[KeyEvent]") -> Optional[KeyEvent]:
        try:
            return await asyncio.wait_for(keys.get(), timeout=self._poll_interval)
        except asyncio.TimeoutError:
            return None

    def _start_stream(self) -> None:
        begin_streaming(self.state)
        self._stream_task = asyncio.create_task(self._stream(self.state.input_buffer))

    async def _stream(self, query: str) -> None:
        # History and directory scan are blocking file I/O; keep the loop drawing
        request = await asyncio.to_thread(self.brain.build_request, query, mode="lens")
        async with aclosing(self.brain.provider.stream_completion(request)) as stream:
            async for fragment in stream:
                append_fragment(self.state, fragment)

    def _reap_stream(self) -> None:
        """Apply the outcome of a finished stream task to the state."""
        task = self._stream_task
        if task is None or not task.done():
            return
        self._stream_task = None

        if task.cancelled():
            cancel(self.state)
            return

        error = task.exception()
        if error is None:
            finish_streaming(self.state, explain=lambda cmd: self.brain.analyze_command(cmd).description)
        elif isinstance(error, AetherError):
            logger.debug("Stream failed: %s", error)
            fail(self.state, str(error))
        else:
            logger.exception("Unexpected stream failure", exc_info=error)
            fail(self.state, f"Unexpected error: {error}")

    async def _cancel_stream(self) -> None:
        task = self._stream_task
        if task is None:
            return
        self._stream_task = None
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except AetherError as e:
            logger.debug("Stream failed while cancelling: %s", e)
        if self.state.last_outcome is None:
            cancel(self.state)


# ─────────────────────────────────────────────────────────────────────
# ENTRY POINTS
# ─────────────────────────────────────────────────────────────────────

def _apply_accepted_patch(state: AppState, console: Console) -> int:
    if not (state.should_apply_patch and state.diff_content):
        return 0
    try:
        report = apply_patch(state.diff_content)
    except AetherError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    console.print(f"[green]Patch applied.[/green] {report}")
    return 0


async def run_lens_mode(
    brain: Brain,
    initial_buffer: str = "",
    cursor_pos: int = 0,
    console: Optional[Console] = None,
) -> int:
    """
    Open the overlay. An accepted command goes to stdout for the shell
    widget to put on the prompt; an accepted patch is applied.

    Returns the process exit code.
    """
    console = console or Console(stderr=True)
    state = AppState.new(initial_buffer, cursor_pos)
    await LensApp(brain, state, console=console).run()

    if state.should_execute and state.suggested_command:
        sys.stdout.write(state.suggested_command + "\n")
        sys.stdout.flush()
        return 0
    return _apply_accepted_patch(state, console)


async def run_diff_review(
    brain: Brain,
    diff: str,
    console: Optional[Console] = None,
) -> int:
    """Open the overlay directly in Diff mode for a suggested patch."""
    console = console or Console(stderr=True)
    state = AppState.for_diff(diff)
    await LensApp(brain, state, console=console).run()
    return _apply_accepted_patch(state, console)
