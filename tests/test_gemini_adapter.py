"""Tests for GeminiAdapter: key query param, system_instruction, streamed JSON array."""

import json

import httpx
import pytest
import respx

from aether.adapters.gemini import GeminiAdapter
from aether.errors import ConfigurationError, ProviderError
from tests.conftest import (
    ANSWER,
    ANSWER_FRAGMENTS,
    GEMINI_COMPLETE_URL,
    GEMINI_MODEL,
    GEMINI_STREAM_URL,
    MOCK_API_KEY,
    gemini_json_array,
    gemini_ndjson,
    split_every,
    tracking_transport,
)


@pytest.fixture
def adapter():
    return GeminiAdapter(api_key=MOCK_API_KEY, model=GEMINI_MODEL)


class TestRequestMapping:
    def test_system_instruction(self, adapter, request_plain):
        body = adapter.build_request(request_plain)
        assert body["system_instruction"]["parts"] == [{"text": "You are AETHER."}]
        assert body["contents"] == [
            {"role": "user", "parts": [{"text": "find python files modified today"}]}
        ]

    def test_history_then_context_then_query(self, adapter, request_with_context):
        text = adapter.build_request(request_with_context)["contents"][0]["parts"][0]["text"]
        history_at = text.index("Recent shell history:")
        context_at = text.index("Context:")
        query_at = text.index("run the tests")
        assert history_at < context_at < query_at

    @pytest.mark.asyncio
    @respx.mock
    async def test_key_sent_as_query_parameter(self, adapter, request_plain):
        route = respx.post(url__startswith=GEMINI_STREAM_URL).mock(
            return_value=httpx.Response(200, content=gemini_ndjson())
        )

        async for _ in adapter.stream_completion(request_plain):
            pass

        sent = route.calls.last.request
        assert sent.url.params["key"] == MOCK_API_KEY
        assert "Authorization" not in sent.headers

    def test_from_env_missing_key(self, monkeypatch):
        monkeypatch.delenv("AETHER_GEMINI_API_KEY", raising=False)
        with pytest.raises(ConfigurationError) as exc_info:
            GeminiAdapter.from_env(GEMINI_MODEL)
        assert exc_info.value.variable == "AETHER_GEMINI_API_KEY"


class TestStreaming:
    @pytest.mark.asyncio
    @respx.mock
    async def test_streams_parts(self, adapter, request_plain):
        respx.post(url__startswith=GEMINI_STREAM_URL).mock(return_value=httpx.Response(200, content=gemini_ndjson()))

        fragments = [f async for f in adapter.stream_completion(request_plain)]

        assert fragments == ANSWER_FRAGMENTS

    @pytest.mark.asyncio
    async def test_streams_array_body_in_small_chunks(self, request_plain):
        body = gemini_json_array(["ls", " -la"])
        transport, stream = tracking_transport(split_every(body, 7))
        adapter = GeminiAdapter(api_key=MOCK_API_KEY, model=GEMINI_MODEL, transport=transport)

        fragments = [f async for f in adapter.stream_completion(request_plain)]

        assert fragments == ["ls", " -la"]
        assert stream.closed is True

    @pytest.mark.asyncio
    @respx.mock
    async def test_streaming_matches_single_shot(self, adapter, request_with_context):
        respx.post(url__startswith=GEMINI_STREAM_URL).mock(return_value=httpx.Response(200, content=gemini_json_array()))
        respx.post(url__startswith=GEMINI_COMPLETE_URL).mock(return_value=httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": ANSWER}]}}],
        }))

        streamed = "".join([f async for f in adapter.stream_completion(request_with_context)])

        assert streamed == await adapter.complete(request_with_context) == ANSWER

    @pytest.mark.asyncio
    @respx.mock
    async def test_status_error_includes_body(self, adapter, request_plain):
        body = json.dumps({"error": {"code": 400, "message": "API key not valid"}})
        respx.post(url__startswith=GEMINI_STREAM_URL).mock(return_value=httpx.Response(400, text=body))

        with pytest.raises(ProviderError) as exc_info:
            async for _ in adapter.stream_completion(request_plain):
                pass

        assert exc_info.value.status_code == 400
        assert "API key not valid" in str(exc_info.value)
        assert "AETHER_GEMINI_API_KEY" in str(exc_info.value)

    @pytest.mark.asyncio
    @respx.mock
    async def test_fix_suggestion_without_candidates(self, adapter):
        respx.post(url__startswith=GEMINI_COMPLETE_URL).mock(return_value=httpx.Response(200, json={"candidates": []}))

        assert await adapter.get_fix_suggestion("segfault") == "No response from model"
