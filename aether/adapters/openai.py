"""
OpenAIAdapter - OpenAI Chat Completions implementation of CompletionProvider.

Wire format: event stream of `chat.completion.chunk` objects, terminated
by `data: [DONE]`. Every data frame is a content chunk, so a malformed one
aborts the stream.
"""

from typing import Optional

import httpx

from aether.adapters.decoders import EventStreamDecoder
from aether.adapters.http import HTTPAdapter
from aether.adapters.schema import CompletionRequest, render_context_files
from aether.config import (
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_OPENAI_BASE_URL,
    OPENAI_API_KEY_VAR,
    require_env,
)


class OpenAIChatDialect:
    """`choices[*].delta.content` of each chunk, in choice order."""

    def is_content_event(self, event: Optional[str], raw: str) -> bool:
        return True

    def extract(self, payload: dict) -> list[str]:
        fragments = []
        for choice in payload.get("choices") or []:
            delta = choice.get("delta") or {}
            content = delta.get("content")
            if isinstance(content, str) and content:
                fragments.append(content)
        return fragments

    def error_message(self, payload: dict) -> Optional[str]:
        error = payload.get("error")
        if isinstance(error, dict):
            return error.get("message") or str(error)
        if isinstance(error, str):
            return error
        return None


class OpenAIAdapter(HTTPAdapter):
    """
    OpenAI implementation of CompletionProvider.

    System prompt, context files and shell history each become their own
    leading `system` message, followed by the user query.
    """

    provider = "OpenAI"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        read_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(model, connect_timeout, read_timeout, transport)
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    @classmethod
    def from_env(cls, model: str, **kwargs) -> "OpenAIAdapter":
        """Build from AETHER_OPENAI_API_KEY; raises ConfigurationError if unset."""
        return cls(require_env(OPENAI_API_KEY_VAR), model, **kwargs)

    def build_messages(self, request: CompletionRequest) -> list[dict]:
        messages = [{"role": "system", "content": request.system_prompt}]

        if request.context_files:
            messages.append({
                "role": "system",
                "content": f"Context:\n{render_context_files(request.context_files)}",
            })

        if request.history:
            messages.append({
                "role": "system",
                "content": "Recent shell history:\n" + "\n".join(request.history),
            })

        messages.append({"role": "user", "content": request.user_query})
        return messages

    def _endpoint(self, stream: bool) -> str:
        return f"{self._base_url}/chat/completions"

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(self, request: CompletionRequest, stream: bool) -> dict:
        return {
            "model": self._model,
            "messages": self.build_messages(request),
            "stream": stream,
        }

    def _new_decoder(self) -> EventStreamDecoder:
        return EventStreamDecoder(OpenAIChatDialect(), provider=self.provider)

    def _parse_completion(self, data: dict) -> str:
        choices = data.get("choices") or []
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        return message.get("content") or ""

    def _connection_hint(self) -> str:
        return f"Check your internet connection and {OPENAI_API_KEY_VAR}."

    def _status_hint(self) -> Optional[str]:
        return f"Check your {OPENAI_API_KEY_VAR}."
