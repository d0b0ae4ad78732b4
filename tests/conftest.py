"""Shared test fixtures for aether tests."""

import asyncio
import json

import httpx
import pytest

from aether.adapters.schema import CompletionRequest


# ─────────────────────────────────────────────────────────────────────
# MOCK DATA
# ─────────────────────────────────────────────────────────────────────

MOCK_API_KEY = "test-key-123"

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
GEMINI_MODEL = "gemini-1.5-pro"
GEMINI_STREAM_URL = (
    f"https://generativelanguage.googleapis.com/v1beta/models/{GEMINI_MODEL}:streamGenerateContent"
)
GEMINI_COMPLETE_URL = (
    f"https://generativelanguage.googleapis.com/v1beta/models/{GEMINI_MODEL}:generateContent"
)
OLLAMA_URL = "http://localhost:11434/api/chat"

ANSWER_FRAGMENTS = ["find . ", "-name '*.py'", " -mtime -1"]
ANSWER = "".join(ANSWER_FRAGMENTS)


def openai_sse(fragments=ANSWER_FRAGMENTS) -> bytes:
    """OpenAI chat.completion.chunk stream, terminated by [DONE]."""
    events = [
        'data: {"id":"chatcmpl-1","object":"chat.completion.chunk",'
        '"choices":[{"index":0,"delta":{"role":"assistant","content":""},"finish_reason":null}]}'
    ]
    for fragment in fragments:
        chunk = {
            "id": "chatcmpl-1",
            "object": "chat.completion.chunk",
            "choices": [{"index": 0, "delta": {"content": fragment}, "finish_reason": None}],
        }
        events.append(f"data: {json.dumps(chunk)}")
    events.append(
        'data: {"id":"chatcmpl-1","object":"chat.completion.chunk",'
        '"choices":[{"index":0,"delta":{},"finish_reason":"stop"}]}'
    )
    events.append("data: [DONE]")
    return ("\n\n".join(events) + "\n\n").encode()


def anthropic_sse(fragments=ANSWER_FRAGMENTS) -> bytes:
    """Anthropic Messages event stream with bookkeeping events around the deltas."""
    events = [
        ("message_start", {"type": "message_start", "message": {"id": "msg_1", "role": "assistant", "content": []}}),
        ("content_block_start", {"type": "content_block_start", "index": 0,
                                 "content_block": {"type": "text", "text": ""}}),
        ("ping", {"type": "ping"}),
    ]
    for fragment in fragments:
        events.append(("content_block_delta", {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "text_delta", "text": fragment},
        }))
    events += [
        ("content_block_stop", {"type": "content_block_stop", "index": 0}),
        ("message_delta", {"type": "message_delta", "delta": {"stop_reason": "end_turn"}}),
        ("message_stop", {"type": "message_stop"}),
    ]
    return "".join(
        f"event: {name}\ndata: {json.dumps(payload)}\n\n" for name, payload in events
    ).encode()


def gemini_ndjson(fragments=ANSWER_FRAGMENTS) -> bytes:
    lines = [
        json.dumps({"candidates": [{"content": {"role": "model", "parts": [{"text": fragment}]}}]})
        for fragment in fragments
    ]
    return ("\n".join(lines) + "\n").encode()


def gemini_json_array(fragments=ANSWER_FRAGMENTS) -> bytes:
    """streamGenerateContent body as the API sends it: one pretty-printed array."""
    elements = [
        json.dumps({
            "candidates": [{
                "content": {"role": "model", "parts": [{"text": fragment}]},
                "index": 0,
            }],
            "modelVersion": GEMINI_MODEL,
        }, indent=2, ensure_ascii=False)
        for fragment in fragments
    ]
    return ("[" + ",\r\n".join(elements) + "]").encode()


def ollama_ndjson(fragments=ANSWER_FRAGMENTS, model="llama3") -> bytes:
    lines = [
        json.dumps({"model": model, "message": {"role": "assistant", "content": fragment}, "done": False})
        for fragment in fragments
    ]
    lines.append(json.dumps({"model": model, "message": {"role": "assistant", "content": ""}, "done": True}))
    return ("\n".join(lines) + "\n").encode()


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


class TrackingStream(httpx.AsyncByteStream):
    """Response body that records how far it was read and whether it was closed."""

    def __init__(self, chunks: list[bytes]):
        self.chunks = chunks
        self.sent = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.sent += 1
            yield chunk
            await asyncio.sleep(0)

    async def aclose(self) -> None:
        self.closed = True


def tracking_transport(chunks: list[bytes]) -> tuple[httpx.MockTransport, TrackingStream]:
    stream = TrackingStream(chunks)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=stream)

    return httpx.MockTransport(handler), stream


# ─────────────────────────────────────────────────────────────────────
# FIXTURES
# ─────────────────────────────────────────────────────────────────────


@pytest.fixture
def request_plain():
    return CompletionRequest(
        system_prompt="You are AETHER.",
        user_query="find python files modified today",
    )


@pytest.fixture
def request_with_context():
    return CompletionRequest(
        system_prompt="You are AETHER.",
        user_query="run the tests",
        context_files=(("Makefile", "test:\n\tpytest"), ("README.md", "# demo")),
        history=("git status", "ls -la"),
    )


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Strip AETHER_* variables and point the tmp dir at tmp_path."""
    import os

    for name in list(os.environ):
        if name.startswith("AETHER_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AETHER_TMP_DIR", str(tmp_path / "aether"))
    return tmp_path
