"""
Brain - headless query processing, decoupled from the lens overlay.

Builds a CompletionRequest (optionally enriched with shell history and a
scan of the working directory), pulls the provider's fragment stream to
completion and returns the trimmed answer. Used by pipe and sentinel
modes, by tests, and by anything scripting aether.

Failures propagate: there is no UI here to report them to.
"""

import logging
from contextlib import aclosing
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union, TYPE_CHECKING

from aether import executor
from aether.adapters.schema import CompletionRequest
from aether.config import Settings
from aether.context.fs_scanner import scan_directory
from aether.context.shell import read_history
from aether.prompts import generate_system_prompt

if TYPE_CHECKING:
    from aether.adapters.base import CompletionProvider

logger = logging.getLogger(__name__)

DEFAULT_PIPE_INSTRUCTION = "Summarize this data."


@dataclass(frozen=True)
class CommandAnalysis:
    """Dry-run verdict on a suggested command."""
    command: str
    is_destructive: bool
    description: str


class Brain:
    """
    Drives a CompletionProvider for non-interactive use.

    Usage:
        brain = Brain(create_provider(settings), settings)
        command = await brain.process_query("list files")
    """

    def __init__(
        self,
        provider: "CompletionProvider",
        settings: Optional[Settings] = None,
        cwd: Optional[Union[str, Path]] = None,
    ):
        """
        Args:
            provider: Any CompletionProvider implementation
            settings: History/file limits and the include_context default
            cwd: Directory scanned for context files (default: process cwd)
        """
        self.provider = provider
        self.settings = settings or Settings()
        self.cwd = Path(cwd) if cwd is not None else None

    def build_request(
        self,
        query: str,
        mode: str = "lens",
        include_context: Optional[bool] = None,
    ) -> CompletionRequest:
        if include_context is None:
            include_context = self.settings.include_context

        history: list[str] = []
        context_files: list[tuple[str, str]] = []
        if include_context:
            history = read_history(self.settings.history_limit)
            context_files = scan_directory(
                self.cwd or Path.cwd(),
                max_files=self.settings.max_context_files,
            )

        return CompletionRequest(
            system_prompt=generate_system_prompt(mode),
            user_query=query,
            context_files=tuple(context_files),
            history=tuple(history),
        )

    async def collect(
        self,
        request: CompletionRequest,
        on_fragment: Optional[Callable[[str], None]] = None,
    ) -> str:
        """
        Pull the stream to completion and return the trimmed concatenation.

        `on_fragment` sees each fragment as it arrives (pipe mode echoes
        them to stdout). The stream is closed on every exit path.
        """
        fragments = []
        async with aclosing(self.provider.stream_completion(request)) as stream:
            async for fragment in stream:
                fragments.append(fragment)
                if on_fragment is not None:
                    on_fragment(fragment)

        response = "".join(fragments).strip()
        logger.debug("Collected %d fragments (%d chars)", len(fragments), len(response))
        return response

    async def process_query(
        self,
        query: str,
        include_context: Optional[bool] = None,
    ) -> str:
        """Suggested shell command for a natural-language query."""
        return await self.collect(self.build_request(query, "lens", include_context))

    async def process_pipe(
        self,
        data: str,
        instruction: str = "",
        on_fragment: Optional[Callable[[str], None]] = None,
    ) -> str:
        """Apply `instruction` to piped `data`; no file or history context."""
        query = f"{instruction.strip() or DEFAULT_PIPE_INSTRUCTION}\n\nInput data:\n{data}"
        request = self.build_request(query, "pipe", include_context=False)
        return await self.collect(request, on_fragment)

    async def process_error(self, error_log: str) -> str:
        """Fix suggestion for a failed command (Sentinel mode)."""
        return await self.provider.get_fix_suggestion(error_log)

    def analyze_command(self, command: str) -> CommandAnalysis:
        if not self.settings.detect_destructive_commands:
            return CommandAnalysis(command, False, f"Command: {command}")
        return CommandAnalysis(
            command=command,
            is_destructive=executor.is_destructive(command),
            description=executor.analyze_command(command),
        )
