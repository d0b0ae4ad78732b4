"""
OllamaAdapter - local Ollama server implementation of CompletionProvider.

Local inference adapter: no credential, just a base URL. Wire format is
line-delimited JSON from /api/chat; each line carries `message.content`
and a `done` flag. The flag is informational; the stream ends when the
server closes the connection.
"""

from typing import Optional

import httpx

from aether.adapters.decoders import JSONLinesDecoder
from aether.adapters.http import HTTPAdapter
from aether.adapters.schema import CompletionRequest
from aether.config import DEFAULT_CONNECT_TIMEOUT_SECONDS, DEFAULT_OLLAMA_URL
from aether.prompts import append_recent_commands, format_user_query


class OllamaChatDialect:
    """`message.content` of each /api/chat line."""

    def extract(self, payload: dict) -> list[str]:
        message = payload.get("message") or {}
        content = message.get("content")
        return [content] if isinstance(content, str) and content else []

    def error_message(self, payload: dict) -> Optional[str]:
        error = payload.get("error")
        return str(error) if error else None


class OllamaAdapter(HTTPAdapter):
    """
    Ollama implementation of CompletionProvider.

    Shell history is folded into the leading system message as
    "Recent commands"; context files are appended to the user message
    as "Relevant files".
    """

    provider = "Ollama"

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        model: str = "llama3",
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        read_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(model, connect_timeout, read_timeout, transport)
        self._base_url = base_url.rstrip("/")

    def build_messages(self, request: CompletionRequest) -> list[dict]:
        return [
            {"role": "system", "content": append_recent_commands(request.system_prompt, request.history)},
            {"role": "user", "content": format_user_query(request.user_query, request.context_files)},
        ]

    def _endpoint(self, stream: bool) -> str:
        return f"{self._base_url}/api/chat"

    def _build_payload(self, request: CompletionRequest, stream: bool) -> dict:
        return {
            "model": self._model,
            "messages": self.build_messages(request),
            "stream": stream,
        }

    def _new_decoder(self) -> JSONLinesDecoder:
        return JSONLinesDecoder(OllamaChatDialect(), provider=self.provider)

    def _parse_completion(self, data: dict) -> str:
        message = data.get("message") or {}
        return message.get("content") or ""

    def _connection_hint(self) -> str:
        return f"Is Ollama running at {self._base_url}? Start it with `ollama serve`."

    def _status_hint(self) -> Optional[str]:
        return f"Check that '{self._model}' is pulled (ollama pull {self._model})."
