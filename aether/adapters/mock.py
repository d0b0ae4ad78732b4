"""
MockAdapter - deterministic CompletionProvider for tests and offline demos.

Maps known queries to canned shell commands (case-insensitive exact match,
then substring match either way), falls back to a fixed default, and
simulates streaming by cutting the answer into five-character chunks.
"""

import asyncio
from typing import AsyncGenerator

from aether.adapters.schema import CompletionRequest

CHUNK_SIZE = 5

DEFAULT_RESPONSES: dict[str, str] = {
    "list files": "ls -la",
    "find python files": "find . -name '*.py'",
    "undo last git commit": "git reset --soft HEAD~1",
    "undo last 3 git commits": "git reset --soft HEAD~3",
    "show git status": "git status",
    "find all python files modified yesterday and tar them":
        "find . -name '*.py' -mtime -1 | xargs tar -cvf archive.tar",
    "delete all log files": "find . -name '*.log' -delete",
}

DEFAULT_RESPONSE = "echo 'Command not found in mock responses'"
MOCK_FIX_SUGGESTION = "Mock fix suggestion: Check your configuration file"


class MockAdapter:
    """
    Mock implementation of CompletionProvider.

    Usage:
        provider = MockAdapter().with_response("ping google", "ping -c 4 google.com")
    """

    def __init__(self, delay_seconds: float = 0.0):
        """
        Args:
            delay_seconds: Pause between chunks, to make streaming visible
        """
        self._responses = dict(DEFAULT_RESPONSES)
        self._default_response = DEFAULT_RESPONSE
        self._delay = delay_seconds

    def with_response(self, query: str, response: str) -> "MockAdapter":
        """Add a canned response (stored lower-cased for matching)."""
        self._responses[query.lower()] = response
        return self

    def with_default(self, response: str) -> "MockAdapter":
        self._default_response = response
        return self

    def get_response(self, query: str) -> str:
        """Exact match first, then substring either way, then the default."""
        query_lower = query.lower()

        if query_lower in self._responses:
            return self._responses[query_lower]

        for key, value in self._responses.items():
            if key in query_lower or query_lower in key:
                return value

        return self._default_response

    async def stream_completion(
        self, request: CompletionRequest
    ) -> AsyncGenerator[str, None]:
        response = self.get_response(request.user_query)
        for start in range(0, len(response), CHUNK_SIZE):
            # Suspension point, like a real network read
            await asyncio.sleep(self._delay)
            yield response[start:start + CHUNK_SIZE]

    async def complete(self, request: CompletionRequest) -> str:
        return self.get_response(request.user_query)

    async def get_fix_suggestion(self, error_log: str) -> str:
        return MOCK_FIX_SUGGESTION

    def model_name(self) -> str:
        return "mock-provider"
