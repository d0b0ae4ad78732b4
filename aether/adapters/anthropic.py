"""
AnthropicAdapter - Anthropic Messages API implementation of CompletionProvider.

Wire format: typed event stream (`message_start`, `content_block_start`,
`content_block_delta`, `ping`, `message_stop`, ...). Only
`content_block_delta` events with a `text_delta` carry answer text; the
rest are bookkeeping and are skipped if they fail to parse.
"""

from typing import Optional

import httpx

from aether.adapters.decoders import EventStreamDecoder
from aether.adapters.http import HTTPAdapter
from aether.adapters.schema import CompletionRequest, render_context_files
from aether.config import ANTHROPIC_API_KEY_VAR, DEFAULT_CONNECT_TIMEOUT_SECONDS, require_env

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
ANTHROPIC_MAX_TOKENS = 4096

CONTENT_EVENT = "content_block_delta"


class AnthropicMessagesDialect:
    """Text of `content_block_delta` / `text_delta` events."""

    def is_content_event(self, event: Optional[str], raw: str) -> bool:
        return event == CONTENT_EVENT or f'"{CONTENT_EVENT}"' in raw

    def extract(self, payload: dict) -> list[str]:
        if payload.get("type") != CONTENT_EVENT:
            return []
        delta = payload.get("delta") or {}
        if delta.get("type", "text_delta") != "text_delta":
            return []
        text = delta.get("text")
        return [text] if isinstance(text, str) and text else []

    def error_message(self, payload: dict) -> Optional[str]:
        if payload.get("type") != "error":
            return None
        error = payload.get("error") or {}
        if isinstance(error, dict):
            return error.get("message") or str(error)
        return str(error)


class AnthropicAdapter(HTTPAdapter):
    """
    Anthropic implementation of CompletionProvider.

    The system prompt, context files and shell history are folded into the
    top-level `system` field; the only message is the user query
    (the API requires alternating user/assistant turns).
    """

    provider = "Anthropic"

    def __init__(
        self,
        api_key: str,
        model: str,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        read_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(model, connect_timeout, read_timeout, transport)
        self._api_key = api_key

    @classmethod
    def from_env(cls, model: str, **kwargs) -> "AnthropicAdapter":
        """Build from AETHER_ANTHROPIC_API_KEY; raises ConfigurationError if unset."""
        return cls(require_env(ANTHROPIC_API_KEY_VAR), model, **kwargs)

    def build_messages_and_system(self, request: CompletionRequest) -> tuple[list[dict], str]:
        system_parts = [request.system_prompt]

        if request.context_files:
            system_parts.append(f"Context:\n{render_context_files(request.context_files)}")

        if request.history:
            system_parts.append("Recent shell history:\n" + "\n".join(request.history))

        messages = [{"role": "user", "content": request.user_query}]
        return messages, "\n\n".join(system_parts)

    def _endpoint(self, stream: bool) -> str:
        return ANTHROPIC_MESSAGES_URL

    def _headers(self) -> dict:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def _build_payload(self, request: CompletionRequest, stream: bool) -> dict:
        messages, system = self.build_messages_and_system(request)
        return {
            "model": self._model,
            "messages": messages,
            "max_tokens": ANTHROPIC_MAX_TOKENS,
            "system": system,
            "stream": stream,
        }

    def _new_decoder(self) -> EventStreamDecoder:
        return EventStreamDecoder(AnthropicMessagesDialect(), provider=self.provider)

    def _parse_completion(self, data: dict) -> str:
        content = data.get("content") or []
        if not content:
            return ""
        return content[0].get("text") or ""

    def _connection_hint(self) -> str:
        return f"Check your internet connection and {ANTHROPIC_API_KEY_VAR}."

    def _status_hint(self) -> Optional[str]:
        return f"Check your {ANTHROPIC_API_KEY_VAR}."
