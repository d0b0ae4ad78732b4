"""
Frame decoders: raw byte chunks in, ordered text fragments out.

Two wire dialects are covered:

- Event stream (`text/event-stream`): `data: <json>` lines, optional
  `event:` lines, and a literal `[DONE]` terminator.
- Line-delimited JSON: one complete JSON object per line, no wrapping array.
  Gemini streams the same objects as the elements of one JSON array, so
  its decoder frames on object boundaries instead of newlines.

Each decoder owns one LineBuffer (the per-request session). A network chunk
may end anywhere, including mid-line or inside a multi-byte UTF-8 sequence,
so trailing bytes are held back and prepended to the next chunk. Decoding a
chunk in isolation would split frames and corrupt the answer.

Provider-specific knowledge (where the text lives, which events carry it)
is supplied by small dialect objects defined next to each adapter.
"""

import json
import logging
from typing import Optional, Protocol

from aether.errors import DecodeError, ProviderError

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class LineBuffer:
    """Bytes not yet forming a complete line, carried across chunks."""

    def __init__(self):
        self._pending = b""

    @property
    def pending(self) -> bytes:
        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        """Append a chunk and return every line it completed, in order."""
        data = self._pending + chunk
        *lines, self._pending = data.split(b"\n")
        return [self._decode(line) for line in lines]

    def drain(self) -> bytes:
        """Return and discard whatever incomplete line is left."""
        leftover, self._pending = self._pending, b""
        return leftover

    @staticmethod
    def _decode(line: bytes) -> str:
        try:
            text = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Frame is not valid UTF-8: {line[:200]!r}") from e
        return text[:-1] if text.endswith("\r") else text


_OPEN_BRACE = ord("{")
_CLOSE_BRACE = ord("}")
_QUOTE = ord('"')
_BACKSLASH = ord("\\")
_NEWLINE = ord("\n")
# Array punctuation and whitespace between top-level objects
_BETWEEN_OBJECTS = frozenset(b" \t\r\n,[]")


class ObjectBuffer:
    """
    Top-level JSON objects in a byte stream, carried across chunks.

    Accepts newline-delimited objects and a JSON array streamed element by
    element (`[{...},\\r\\n{...}]`, pretty-printed or not). Brackets, commas
    and whitespace between objects are skipped; braces inside strings do
    not count towards nesting. Anything else found between objects is
    returned as its own frame so the caller can report it.
    """

    def __init__(self):
        self._pending = bytearray()
        self._depth = 0
        self._in_string = False
        self._escaped = False

    @property
    def pending(self) -> bytes:
        return bytes(self._pending)

    def feed(self, chunk: bytes) -> list[str]:
        """Append a chunk and return every object it completed, in order."""
        frames = []
        for byte in chunk:
            if self._depth == 0:
                if byte == _OPEN_BRACE:
                    if self._pending:
                        frames.append(self._take())
                    self._depth = 1
                    self._pending.append(byte)
                elif byte == _NEWLINE and self._pending:
                    frames.append(self._take())
                elif byte not in _BETWEEN_OBJECTS:
                    self._pending.append(byte)
                continue

            self._pending.append(byte)
            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif byte == _BACKSLASH:
                    self._escaped = True
                elif byte == _QUOTE:
                    self._in_string = False
            elif byte == _QUOTE:
                self._in_string = True
            elif byte == _OPEN_BRACE:
                self._depth += 1
            elif byte == _CLOSE_BRACE:
                self._depth -= 1
                if self._depth == 0:
                    frames.append(self._take())
        return frames

    def drain(self) -> bytes:
        """Return and discard an unfinished object (or stray bytes)."""
        leftover = bytes(self._pending)
        self._pending.clear()
        self._depth = 0
        self._in_string = False
        self._escaped = False
        return leftover

    def _take(self) -> str:
        frame = bytes(self._pending)
        self._pending.clear()
        return LineBuffer._decode(frame)


# ─────────────────────────────────────────────────────────────────────
# DIALECTS
# ─────────────────────────────────────────────────────────────────────

class EventStreamDialect(Protocol):
    """What an event-stream provider puts where."""

    def is_content_event(self, event: Optional[str], raw: str) -> bool:
        """Whether a payload that failed to parse should have carried text."""
        ...

    def extract(self, payload: dict) -> list[str]:
        """Text fragments carried by one decoded event, in order."""
        ...

    def error_message(self, payload: dict) -> Optional[str]:
        """Error text if the event reports a provider-side failure."""
        ...


class JSONLinesDialect(Protocol):
    """What a line-delimited-JSON provider puts where."""

    def extract(self, payload: dict) -> list[str]:
        ...

    def error_message(self, payload: dict) -> Optional[str]:
        ...


# ─────────────────────────────────────────────────────────────────────
# EVENT STREAM
# ─────────────────────────────────────────────────────────────────────

class EventStreamDecoder:
    """
    Decoder for `data: <json>` event streams.

    Only content-delta events contribute text. A malformed payload is
    skipped when it belongs to a non-content event (pings, metadata) and
    raises DecodeError when it should have carried content, since dropping
    it would silently corrupt the reconstructed answer.
    """

    def __init__(self, dialect: EventStreamDialect, provider: str = "provider"):
        self._dialect = dialect
        self._provider = provider
        self._buffer = LineBuffer()
        self._event: Optional[str] = None
        self.done = False

    def feed(self, chunk: bytes) -> list[str]:
        fragments: list[str] = []
        for line in self._buffer.feed(chunk):
            fragments.extend(self._decode_line(line))
        return fragments

    def finish(self) -> None:
        """
        Close the session at end of stream.

        Raises:
            DecodeError: If the stream stopped in the middle of a frame
        """
        leftover = self._buffer.drain()
        if self.done or not leftover.strip():
            return
        raise DecodeError(
            f"{self._provider} stream ended mid-frame: {leftover[:200]!r}"
        )

    def _decode_line(self, line: str) -> list[str]:
        if not line:
            # Blank line dispatches the event; the next one starts fresh
            self._event = None
            return []
        if line.startswith(":"):
            return []

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value.strip()
            return []
        if field != "data" or self.done:
            return []
        if value.strip() == DONE_SENTINEL:
            self.done = True
            return []

        try:
            payload = json.loads(value)
        except json.JSONDecodeError as e:
            if self._dialect.is_content_event(self._event, value):
                raise DecodeError(
                    f"Malformed {self._provider} content event: {value[:200]}"
                ) from e
            logger.debug("Skipping malformed %s event %r: %.200s",
                         self._provider, self._event, value)
            return []

        if not isinstance(payload, dict):
            if self._dialect.is_content_event(self._event, value):
                raise DecodeError(
                    f"Unexpected {self._provider} content event: {value[:200]}"
                )
            return []

        message = self._dialect.error_message(payload)
        if message:
            raise ProviderError(self._provider, None, message)

        return [text for text in self._dialect.extract(payload) if text]


# ─────────────────────────────────────────────────────────────────────
# LINE-DELIMITED JSON
# ─────────────────────────────────────────────────────────────────────

class JSONLinesDecoder:
    """
    Decoder for one-JSON-object-per-line streams.

    A line may batch several fragments (candidates/parts); all of them are
    emitted in the order given. A `done` flag is informational only; the
    stream ends when the connection closes. Complete lines that are not
    valid JSON are skipped with a warning.
    """

    frame_unit = "line"

    def __init__(self, dialect: JSONLinesDialect, provider: str = "provider"):
        self._dialect = dialect
        self._provider = provider
        self._buffer = self._new_buffer()
        # Never set: the connection closing ends the stream
        self.done = False
        self.saw_done_flag = False

    def _new_buffer(self):
        return LineBuffer()

    def feed(self, chunk: bytes) -> list[str]:
        fragments: list[str] = []
        for line in self._buffer.feed(chunk):
            fragments.extend(self._decode_line(line))
        return fragments

    def finish(self) -> None:
        """
        Close the session at end of stream.

        Raises:
            DecodeError: If the stream stopped in the middle of a frame
        """
        leftover = self._buffer.drain()
        if leftover.strip():
            raise DecodeError(
                f"{self._provider} stream ended mid-{self.frame_unit}: {leftover[:200]!r}"
            )

    def _decode_line(self, line: str) -> list[str]:
        if not line.strip():
            return []

        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed %s line: %.200s", self._provider, line)
            return []

        if not isinstance(payload, dict):
            logger.warning("Skipping non-object %s line: %.200s", self._provider, line)
            return []

        message = self._dialect.error_message(payload)
        if message:
            raise ProviderError(self._provider, None, message)

        if payload.get("done") is True:
            self.saw_done_flag = True

        return [text for text in self._dialect.extract(payload) if text]


class JSONArrayDecoder(JSONLinesDecoder):
    """
    Line-delimited-JSON decoding over object framing instead of newlines.

    Gemini's streamGenerateContent answers with one JSON array whose
    elements arrive as the model produces them, each element pretty-printed
    over several lines. Elements are decoded exactly like JSON lines; plain
    newline-delimited objects decode the same way.
    """

    frame_unit = "object"

    def _new_buffer(self):
        return ObjectBuffer()
