"""CLI entry point for aether.

Entry point:
    aether inject {bash,zsh}          print the shell integration script
    aether lens [--buffer TEXT]       open the overlay (default)
    aether pipe [INSTRUCTION...]      process stdin, stream the answer
    aether sentinel                   suggest a fix for the last failed command

`--mode {lens,pipe,sentinel}` selects a mode without a subcommand; the
shell widgets call `aether --mode lens --buffer ... --cursor-pos ...`.
"""

import argparse
import asyncio
import logging
import sys
from importlib import resources
from typing import Optional

from dotenv import load_dotenv

from aether import __version__
from aether.brain import Brain
from aether.config import SUPPORTED_PROVIDERS, Settings, load_settings
from aether.context.shell import SessionContext, last_session_path
from aether.errors import AetherError
from aether.executor import extract_diff
from aether.registry import create_provider

logger = logging.getLogger(__name__)

SHELLS = ("bash", "zsh")
MODES = ("lens", "pipe", "sentinel")


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aether",
        description="The Neural Fabric for your Shell.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--mode", choices=MODES, default=None, help="Mode to run when no subcommand is given")
    parser.add_argument("--buffer", default="", help="Current shell buffer (lens mode)")
    parser.add_argument("--cursor-pos", type=int, default=0, help="Cursor position in the buffer")
    parser.add_argument("--provider", choices=SUPPORTED_PROVIDERS, default=None, help="Override AETHER_PROVIDER")
    parser.add_argument("--model", default=None, help="Override AETHER_MODEL")
    parser.add_argument(
        "--no-context", action="store_true",
        help="Do not send shell history or working-directory files",
    )
    sub = parser.add_subparsers(dest="command")

    # inject
    inject_p = sub.add_parser("inject", help="Print the shell integration script")
    inject_p.add_argument("shell", choices=SHELLS, help="Shell type")

    # lens
    sub.add_parser("lens", help="Open the interactive overlay")

    # pipe
    pipe_p = sub.add_parser("pipe", help="Process stdin with an instruction")
    pipe_p.add_argument("instruction", nargs="*", help="What to do with the piped data")

    # sentinel
    sub.add_parser("sentinel", help="Suggest a fix for the last failed command")

    return parser


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────


def _cmd_inject(shell: str) -> int:
    """Print the hook script for `shell`. Returns exit code."""
    script = resources.files("aether.shell_integration").joinpath(f"{shell}.sh")
    sys.stdout.write(script.read_text(encoding="utf-8"))
    return 0


async def _cmd_lens(brain: Brain, buffer: str, cursor_pos: int) -> int:
    from aether.tui.renderer import run_lens_mode

    if not sys.stdin.isatty():
        print("Error: lens mode needs an interactive terminal", file=sys.stderr)
        return 1
    return await run_lens_mode(brain, buffer, cursor_pos)


def _echo(fragment: str) -> None:
    sys.stdout.write(fragment)
    sys.stdout.flush()


async def _cmd_pipe(brain: Brain, instruction: str, stdin_data: str) -> int:
    """Stream the answer for piped data to stdout. Returns exit code."""
    if not stdin_data.strip():
        print("Error: No input provided via stdin", file=sys.stderr)
        print("Usage: cat file.txt | aether pipe 'instruction'", file=sys.stderr)
        print("   or: echo 'data' | ae 'instruction'", file=sys.stderr)
        return 1

    await brain.process_pipe(stdin_data, instruction, on_fragment=_echo)
    sys.stdout.write("\n")
    return 0


async def _cmd_sentinel(brain: Brain, interactive: bool) -> int:
    """Ask for a fix for the last failed command. Returns exit code."""
    session = SessionContext.load_last_session()
    if session is None:
        print(f"Error: no failed command recorded in {last_session_path()}", file=sys.stderr)
        print('Enable the shell hooks with: eval "$(aether inject bash)"', file=sys.stderr)
        return 1

    logger.debug("Diagnosing: %s (exit %s)", session.last_command, session.exit_code)
    suggestion = await brain.process_error(session.error_log())

    diff = extract_diff(suggestion)
    if diff is not None and interactive:
        from aether.tui.renderer import run_diff_review
        return await run_diff_review(brain, diff)

    print(suggestion)
    return 0


# ─────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────────────


def _make_brain(args: argparse.Namespace) -> Brain:
    settings: Settings = load_settings(provider=args.provider, model=args.model)
    if args.no_context:
        settings = settings.model_copy(update={"include_context": False})
    logger.debug("Using %s (%s)", settings.provider, settings.model_type)
    return Brain(create_provider(settings), settings)


def _run(args: argparse.Namespace, command: str) -> int:
    if command == "inject":
        return _cmd_inject(args.shell)

    brain = _make_brain(args)

    if command == "lens":
        return asyncio.run(_cmd_lens(brain, args.buffer, args.cursor_pos))
    if command == "pipe":
        instruction = " ".join(getattr(args, "instruction", None) or [])
        return asyncio.run(_cmd_pipe(brain, instruction, sys.stdin.read()))
    if command == "sentinel":
        interactive = sys.stdin.isatty() and sys.stderr.isatty()
        return asyncio.run(_cmd_sentinel(brain, interactive))

    print(f"Error: unknown mode or command: {command}", file=sys.stderr)
    return 1


def main(argv: Optional[list[str]] = None):
    parser = _build_parser()
    args = parser.parse_args(argv)

    # Logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(name)s %(message)s", stream=sys.stderr)

    # Load env
    load_dotenv()

    command = args.command or args.mode or "lens"
    try:
        code = _run(args, command)
    except AetherError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = 1
    except KeyboardInterrupt:
        code = 130

    sys.exit(code)


if __name__ == "__main__":
    main()
