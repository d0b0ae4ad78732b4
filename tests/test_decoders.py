"""Tests for frame decoders: cross-chunk buffering, tolerance policy, end of stream."""

import json
import logging

import pytest

from aether.adapters.anthropic import AnthropicMessagesDialect
from aether.adapters.decoders import (
    EventStreamDecoder,
    JSONArrayDecoder,
    JSONLinesDecoder,
    LineBuffer,
    ObjectBuffer,
)
from aether.adapters.gemini import GeminiDialect
from aether.adapters.ollama import OllamaChatDialect
from aether.adapters.openai import OpenAIChatDialect
from aether.errors import DecodeError, ProviderError
from tests.conftest import (
    ANSWER_FRAGMENTS,
    anthropic_sse,
    gemini_json_array,
    gemini_ndjson,
    ollama_ndjson,
    openai_sse,
    split_every,
)


DECODERS = {
    "openai": (lambda: EventStreamDecoder(OpenAIChatDialect(), "OpenAI"), openai_sse),
    "anthropic": (lambda: EventStreamDecoder(AnthropicMessagesDialect(), "Anthropic"), anthropic_sse),
    "gemini": (lambda: JSONArrayDecoder(GeminiDialect(), "Gemini"), gemini_json_array),
    "gemini-lines": (lambda: JSONArrayDecoder(GeminiDialect(), "Gemini"), gemini_ndjson),
    "ollama": (lambda: JSONLinesDecoder(OllamaChatDialect(), "Ollama"), ollama_ndjson),
}


def decode_all(decoder, chunks) -> list[str]:
    fragments = []
    for chunk in chunks:
        fragments.extend(decoder.feed(chunk))
    decoder.finish()
    return fragments


# ─────────────────────────────────────────────────────────────────────
# LINE BUFFER
# ─────────────────────────────────────────────────────────────────────


class TestLineBuffer:
    def test_holds_incomplete_line(self):
        buffer = LineBuffer()
        assert buffer.feed(b"data: {\"a\"") == []
        assert buffer.pending == b"data: {\"a\""
        assert buffer.feed(b": 1}\nnext") == ['data: {"a": 1}']
        assert buffer.pending == b"next"

    def test_strips_carriage_return(self):
        buffer = LineBuffer()
        assert buffer.feed(b"one\r\ntwo\r\n") == ["one", "two"]

    def test_multibyte_character_split_across_chunks(self):
        data = "echo 'héllo ✓'\n".encode()
        cut = data.index("✓".encode()) + 1
        buffer = LineBuffer()
        assert buffer.feed(data[:cut]) == []
        assert buffer.feed(data[cut:]) == ["echo 'héllo ✓'"]

    def test_invalid_utf8_line_is_decode_error(self):
        buffer = LineBuffer()
        with pytest.raises(DecodeError):
            buffer.feed(b"\xff\xfe\n")

    def test_drain_empties_buffer(self):
        buffer = LineBuffer()
        buffer.feed(b"partial")
        assert buffer.drain() == b"partial"
        assert buffer.pending == b""


# ─────────────────────────────────────────────────────────────────────
# CHUNK-BOUNDARY INVARIANCE
# ─────────────────────────────────────────────────────────────────────


class TestChunkBoundaryInvariance:
    @pytest.mark.parametrize("name", list(DECODERS))
    def test_single_chunk_yields_fragments_in_order(self, name):
        make_decoder, wire = DECODERS[name]
        assert decode_all(make_decoder(), [wire()]) == ANSWER_FRAGMENTS

    @pytest.mark.parametrize("name", list(DECODERS))
    @pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 13, 64])
    def test_fixed_size_chunks_match_single_chunk(self, name, size):
        make_decoder, wire = DECODERS[name]
        data = wire()
        expected = decode_all(make_decoder(), [data])
        assert decode_all(make_decoder(), split_every(data, size)) == expected

    @pytest.mark.parametrize("name", list(DECODERS))
    def test_every_two_way_split_matches_single_chunk(self, name):
        make_decoder, wire = DECODERS[name]
        data = wire()
        expected = decode_all(make_decoder(), [data])
        for cut in range(1, len(data)):
            assert decode_all(make_decoder(), [data[:cut], data[cut:]]) == expected, cut

    @pytest.mark.parametrize("name", list(DECODERS))
    def test_non_ascii_fragments_survive_byte_splits(self, name):
        fragments = ["grep -r 'café' ", "| wc -l  # ✓"]
        make_decoder, wire = DECODERS[name]
        data = wire(fragments)
        assert decode_all(make_decoder(), split_every(data, 1)) == fragments


# ─────────────────────────────────────────────────────────────────────
# EVENT STREAM
# ─────────────────────────────────────────────────────────────────────


class TestEventStreamDecoder:
    def anthropic(self):
        return EventStreamDecoder(AnthropicMessagesDialect(), "Anthropic")

    def test_malformed_non_content_event_is_skipped(self):
        data = (
            b"event: ping\ndata: {not json\n\n"
            b'event: content_block_delta\ndata: {"type":"content_block_delta","delta":{"type":"text_delta","text":"ls"}}\n\n'
        )
        assert decode_all(self.anthropic(), [data]) == ["ls"]

    def test_malformed_content_event_raises(self):
        data = b'event: content_block_delta\ndata: {"type":"content_block_delta","delta":\n\n'
        with pytest.raises(DecodeError, match="Malformed Anthropic content event"):
            decode_all(self.anthropic(), [data])

    def test_malformed_content_without_event_line_is_recognised(self):
        data = b'data: {"type": "content_block_delta", "delta": {"text": "ls"\n\n'
        with pytest.raises(DecodeError):
            decode_all(self.anthropic(), [data])

    def test_openai_malformed_chunk_raises(self):
        decoder = EventStreamDecoder(OpenAIChatDialect(), "OpenAI")
        with pytest.raises(DecodeError):
            decoder.feed(b'data: {"choices": [\n\n')

    def test_done_sentinel_stops_decoding(self):
        decoder = EventStreamDecoder(OpenAIChatDialect(), "OpenAI")
        data = openai_sse(["ls"]) + b'data: {"choices":[{"delta":{"content":"ignored"}}]}\n\n'
        assert decode_all(decoder, [data]) == ["ls"]
        assert decoder.done is True

    def test_comments_and_unknown_fields_ignored(self):
        decoder = EventStreamDecoder(OpenAIChatDialect(), "OpenAI")
        data = (
            b": keep-alive\n"
            b"id: 7\n"
            b"retry: 1000\n"
            b'data:{"choices":[{"delta":{"content":"pwd"}}]}\n\n'
        )
        assert decode_all(decoder, [data]) == ["pwd"]

    def test_error_event_raises_provider_error(self):
        decoder = EventStreamDecoder(OpenAIChatDialect(), "OpenAI")
        with pytest.raises(ProviderError, match="overloaded") as exc_info:
            decoder.feed(b'data: {"error": {"message": "overloaded"}}\n\n')
        assert exc_info.value.status_code is None

    def test_anthropic_error_event(self):
        data = b'event: error\ndata: {"type":"error","error":{"type":"overloaded_error","message":"Overloaded"}}\n\n'
        with pytest.raises(ProviderError, match="Overloaded"):
            decode_all(self.anthropic(), [data])

    def test_stream_ending_mid_frame_is_decode_error(self):
        decoder = EventStreamDecoder(OpenAIChatDialect(), "OpenAI")
        assert decoder.feed(b'data: {"choices":[{"delta":{"content":"l') == []
        with pytest.raises(DecodeError, match="ended mid-frame"):
            decoder.finish()

    def test_empty_delta_yields_nothing(self):
        decoder = EventStreamDecoder(OpenAIChatDialect(), "OpenAI")
        assert decoder.feed(b'data: {"choices":[{"delta":{"role":"assistant"}}]}\n\n') == []


# ─────────────────────────────────────────────────────────────────────
# LINE-DELIMITED JSON
# ─────────────────────────────────────────────────────────────────────


class TestJSONLinesDecoder:
    def test_batched_parts_emitted_in_order(self):
        line = {
            "candidates": [
                {"content": {"parts": [{"text": "git "}, {"text": "log"}]}},
                {"content": {"parts": [{"text": " --oneline"}]}},
            ]
        }
        decoder = JSONLinesDecoder(GeminiDialect(), "Gemini")
        assert decode_all(decoder, [json.dumps(line).encode() + b"\n"]) == ["git ", "log", " --oneline"]

    def test_malformed_line_skipped_with_warning(self, caplog):
        decoder = JSONLinesDecoder(OllamaChatDialect(), "Ollama")
        data = (
            b'{"message":{"content":"ls"},"done":false}\n'
            b"{garbage\n"
            b'{"message":{"content":" -la"},"done":true}\n'
        )
        with caplog.at_level(logging.WARNING, logger="aether.adapters.decoders"):
            assert decode_all(decoder, [data]) == ["ls", " -la"]
        assert "Skipping malformed Ollama line" in caplog.text

    def test_non_object_line_skipped(self):
        decoder = JSONLinesDecoder(GeminiDialect(), "Gemini")
        assert decoder.feed(b"[1, 2, 3]\n") == []

    def test_blank_lines_ignored(self):
        decoder = JSONLinesDecoder(OllamaChatDialect(), "Ollama")
        assert decode_all(decoder, [b'\n\n{"message":{"content":"ls"}}\n\n']) == ["ls"]

    def test_done_flag_is_informational(self):
        decoder = JSONLinesDecoder(OllamaChatDialect(), "Ollama")
        data = ollama_ndjson(["ls"]) + b'{"message":{"content":" later"},"done":false}\n'
        assert decode_all(decoder, [data]) == ["ls", " later"]
        assert decoder.saw_done_flag is True
        assert decoder.done is False

    def test_error_line_raises_provider_error(self):
        decoder = JSONLinesDecoder(OllamaChatDialect(), "Ollama")
        with pytest.raises(ProviderError, match="model 'nope' not found"):
            decoder.feed(b'{"error": "model \'nope\' not found"}\n')

    def test_stream_ending_mid_line_is_decode_error(self):
        decoder = JSONLinesDecoder(GeminiDialect(), "Gemini")
        decoder.feed(b'{"candidates": [{"content": {"parts": [{"text": "l')
        with pytest.raises(DecodeError, match="ended mid-line"):
            decoder.finish()

    def test_trailing_whitespace_is_not_an_error(self):
        decoder = JSONLinesDecoder(GeminiDialect(), "Gemini")
        decoder.feed(gemini_ndjson(["ls"]) + b"  ")
        decoder.finish()


# ─────────────────────────────────────────────────────────────────────
# STREAMED JSON ARRAY
# ─────────────────────────────────────────────────────────────────────


class TestObjectBuffer:
    def test_pretty_printed_array_elements(self):
        buffer = ObjectBuffer()
        assert buffer.feed(b'[{\n  "a": 1\n}\n') == ['{\n  "a": 1\n}']
        assert buffer.feed(b',\r\n{\n  "b": {"c": 2}\n}\n]') == ['{\n  "b": {"c": 2}\n}']
        assert buffer.pending == b""

    def test_braces_and_quotes_inside_strings(self):
        buffer = ObjectBuffer()
        text = '{"text": "awk \'{print $1}\' \\"}\\" done"}'
        assert buffer.feed(text.encode()) == [text]

    def test_holds_unfinished_object(self):
        buffer = ObjectBuffer()
        assert buffer.feed(b'[{"text": "l') == []
        assert buffer.pending == b'{"text": "l'
        assert buffer.drain() == b'{"text": "l'
        assert buffer.pending == b""

    def test_stray_text_between_objects_is_its_own_frame(self):
        buffer = ObjectBuffer()
        assert buffer.feed(b'oops\n{"a": 1}') == ["oops", '{"a": 1}']


class TestJSONArrayDecoder:
    def test_gemini_array_body(self):
        decoder = JSONArrayDecoder(GeminiDialect(), "Gemini")
        assert decode_all(decoder, [gemini_json_array(["ls", " -la"])]) == ["ls", " -la"]

    def test_error_element_raises_provider_error(self):
        decoder = JSONArrayDecoder(GeminiDialect(), "Gemini")
        body = b'[{\n  "error": {\n    "code": 429,\n    "message": "Resource exhausted"\n  }\n}\n]'
        with pytest.raises(ProviderError, match="Resource exhausted"):
            decoder.feed(body)

    def test_stream_ending_mid_object_is_decode_error(self):
        decoder = JSONArrayDecoder(GeminiDialect(), "Gemini")
        decoder.feed(gemini_json_array(["ls"])[:-10])
        with pytest.raises(DecodeError, match="ended mid-object"):
            decoder.finish()

    def test_closing_bracket_is_not_an_error(self):
        decoder = JSONArrayDecoder(GeminiDialect(), "Gemini")
        decoder.feed(gemini_json_array(["ls"]))
        decoder.finish()
