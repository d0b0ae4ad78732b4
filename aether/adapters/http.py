"""
HTTPAdapter - shared request/response plumbing for the HTTP providers.

Subclasses supply the provider-specific parts (endpoint, auth, payload
mapping, wire dialect, single-shot response shape); this class turns them
into the CompletionProvider contract:

1. Build the native payload from the CompletionRequest
2. Send it with the provider's auth and JSON content type
3. On a non-success status, read the full body and raise ProviderError
4. On success, feed the byte stream through the frame decoder

Each call opens its own httpx.AsyncClient, so the decoder session and the
connection belong to exactly one request.
"""

import logging
from typing import AsyncGenerator, Optional

import httpx

from aether.adapters.schema import CompletionRequest
from aether.config import DEFAULT_CONNECT_TIMEOUT_SECONDS
from aether.errors import DecodeError, ProviderConnectionError, ProviderError
from aether.prompts import NO_RESPONSE, SENTINEL_FIX_SYSTEM_PROMPT, format_fix_query

logger = logging.getLogger(__name__)


def fix_request(error_log: str) -> CompletionRequest:
    """The fixed Sentinel request sent by get_fix_suggestion()."""
    return CompletionRequest(
        system_prompt=SENTINEL_FIX_SYSTEM_PROMPT,
        user_query=format_fix_query(error_log),
    )


class HTTPAdapter:
    """Base for adapters that talk JSON over HTTP."""

    provider = "provider"

    def __init__(
        self,
        model: str,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        read_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            model: Provider model identifier
            connect_timeout: Seconds allowed to establish the connection
            read_timeout: Seconds allowed between reads (None = unbounded)
            transport: Optional httpx transport (tests, proxies)
        """
        self._model = model
        self._timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        self._transport = transport

    def model_name(self) -> str:
        return self._model

    # ─────────────────────────────────────────────────────────────────
    # PROVIDER HOOKS
    # ─────────────────────────────────────────────────────────────────

    def _endpoint(self, stream: bool) -> str:
        raise NotImplementedError

    def _headers(self) -> dict:
        return {"Content-Type": "application/json"}

    def _params(self) -> dict:
        return {}

    def _build_payload(self, request: CompletionRequest, stream: bool) -> dict:
        raise NotImplementedError

    def _new_decoder(self):
        raise NotImplementedError

    def _parse_completion(self, data: dict) -> str:
        """Full text of the first candidate in a single-shot response."""
        raise NotImplementedError

    def _connection_hint(self) -> str:
        return "Check your internet connection and API key."

    def _status_hint(self) -> Optional[str]:
        return None

    # ─────────────────────────────────────────────────────────────────
    # CONTRACT
    # ─────────────────────────────────────────────────────────────────

    async def stream_completion(
        self, request: CompletionRequest
    ) -> AsyncGenerator[str, None]:
        """Stream decoded fragments; see CompletionProvider.stream_completion."""
        payload = self._build_payload(request, stream=True)
        decoder = self._new_decoder()
        connected = False

        logger.debug("Streaming %s completion (model=%s)", self.provider, self._model)
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    self._endpoint(stream=True),
                    params=self._params(),
                    headers=self._headers(),
                    json=payload,
                ) as response:
                    connected = True
                    if response.status_code >= 400:
                        error_body = await response.aread()
                        raise self._status_error(response.status_code, error_body)

                    async for chunk in response.aiter_bytes():
                        for fragment in decoder.feed(chunk):
                            yield fragment
                        if decoder.done:
                            break

                    decoder.finish()
        except httpx.HTTPError as e:
            if connected:
                raise ProviderConnectionError(
                    f"{self.provider} stream read error: {e}. {self._connection_hint()}"
                ) from e
            raise ProviderConnectionError(
                f"Failed to connect to {self.provider}: {e}. {self._connection_hint()}"
            ) from e

        logger.debug("%s stream completed", self.provider)

    async def complete(self, request: CompletionRequest) -> str:
        """
        Single-shot (non-streaming) completion with the same request mapping.

        Returns the first candidate's full text, or "" if there is none.
        """
        payload = self._build_payload(request, stream=False)

        try:
            async with self._client() as client:
                response = await client.post(
                    self._endpoint(stream=False),
                    params=self._params(),
                    headers=self._headers(),
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise ProviderConnectionError(
                f"Failed to connect to {self.provider}: {e}. {self._connection_hint()}"
            ) from e

        if response.status_code >= 400:
            raise self._status_error(response.status_code, response.content)

        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError(
                f"{self.provider} returned a non-JSON body: {response.text[:200]}"
            ) from e
        if not isinstance(data, dict):
            raise DecodeError(f"{self.provider} returned unexpected JSON: {response.text[:200]}")

        return self._parse_completion(data)

    async def get_fix_suggestion(self, error_log: str) -> str:
        text = await self.complete(fix_request(error_log))
        return text or NO_RESPONSE

    # ─────────────────────────────────────────────────────────────────
    # HELPERS
    # ─────────────────────────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _status_error(self, status_code: int, body: bytes) -> ProviderError:
        text = body.decode("utf-8", errors="replace")
        logger.debug("%s returned status %s: %.500s", self.provider, status_code, text)
        return ProviderError(self.provider, status_code, text, hint=self._status_hint())
