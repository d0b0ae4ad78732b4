"""
GeminiAdapter - Google Gemini implementation of CompletionProvider.

Wire format: streamGenerateContent answers with one JSON array whose
elements (pretty-printed, comma-separated) arrive as they are
generated. Each element carries zero or more candidates with zero or more
text parts; parts are emitted in the order given.
"""

from typing import Optional

import httpx

from aether.adapters.decoders import JSONArrayDecoder
from aether.adapters.http import HTTPAdapter
from aether.adapters.schema import CompletionRequest, render_context_files
from aether.config import DEFAULT_CONNECT_TIMEOUT_SECONDS, GEMINI_API_KEY_VAR, require_env

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _candidate_texts(candidate: dict) -> list[str]:
    content = candidate.get("content") or {}
    texts = []
    for part in content.get("parts") or []:
        text = part.get("text") if isinstance(part, dict) else None
        if isinstance(text, str) and text:
            texts.append(text)
    return texts


class GeminiDialect:
    """`candidates[*].content.parts[*].text`, candidates then parts in order."""

    def extract(self, payload: dict) -> list[str]:
        fragments = []
        for candidate in payload.get("candidates") or []:
            fragments.extend(_candidate_texts(candidate))
        return fragments

    def error_message(self, payload: dict) -> Optional[str]:
        error = payload.get("error")
        if isinstance(error, dict):
            return error.get("message") or str(error)
        if isinstance(error, str):
            return error
        return None


class GeminiAdapter(HTTPAdapter):
    """
    Gemini implementation of CompletionProvider.

    The system prompt goes to `system_instruction`. Shell history and
    context files are prepended to the user text (history first, then
    context, then the query).
    """

    provider = "Gemini"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = GEMINI_BASE_URL,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        read_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(model, connect_timeout, read_timeout, transport)
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    @classmethod
    def from_env(cls, model: str, **kwargs) -> "GeminiAdapter":
        """Build from AETHER_GEMINI_API_KEY; raises ConfigurationError if unset."""
        return cls(require_env(GEMINI_API_KEY_VAR), model, **kwargs)

    def build_request(self, request: CompletionRequest) -> dict:
        user_text_parts = [request.user_query]

        if request.context_files:
            user_text_parts.insert(0, f"Context:\n{render_context_files(request.context_files)}")

        if request.history:
            user_text_parts.insert(0, "Recent shell history:\n" + "\n".join(request.history))

        return {
            "contents": [
                {"role": "user", "parts": [{"text": "\n\n".join(user_text_parts)}]},
            ],
            "system_instruction": {
                "role": "user",
                "parts": [{"text": request.system_prompt}],
            },
        }

    def _endpoint(self, stream: bool) -> str:
        method = "streamGenerateContent" if stream else "generateContent"
        return f"{self._base_url}/models/{self._model}:{method}"

    def _params(self) -> dict:
        return {"key": self._api_key}

    def _build_payload(self, request: CompletionRequest, stream: bool) -> dict:
        return self.build_request(request)

    def _new_decoder(self) -> JSONArrayDecoder:
        return JSONArrayDecoder(GeminiDialect(), provider=self.provider)

    def _parse_completion(self, data: dict) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        return "".join(_candidate_texts(candidates[0]))

    def _connection_hint(self) -> str:
        return f"Check your internet connection and {GEMINI_API_KEY_VAR}."

    def _status_hint(self) -> Optional[str]:
        return f"Check your {GEMINI_API_KEY_VAR}."
