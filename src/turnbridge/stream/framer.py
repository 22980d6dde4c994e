"""Turns marker-prefixed agent output lines into framed events."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from collections import deque
from collections.abc import AsyncIterator, Callable, Iterable, Iterator

from turnbridge.constants import MAX_LINE_BYTES
from turnbridge.errors import ParseError
from turnbridge.stream.events import (
    ContentDelta,
    ContentFull,
    FramedEvent,
    MessageEnd,
    MessageStart,
    RawJsonBlock,
    SessionId,
    StructuredMessage,
)

logger = logging.getLogger(__name__)

MESSAGE_START = "[MESSAGE_START]"
MESSAGE_END = "[MESSAGE_END]"
MESSAGE = "[MESSAGE]"
CONTENT_DELTA = "[CONTENT_DELTA]"
CONTENT = "[CONTENT]"
SESSION_ID = "[SESSION_ID]"
JSON_START = "[JSON_START]"
JSON_END = "[JSON_END]"

#: Unmatched lines kept for failure diagnostics.
_TAIL_LINES = 20


class FramerState(enum.Enum):
    """Parser state for one stream."""

    IDLE = "idle"
    CAPTURING_JSON = "capturing_json"


def _payload(line: str, marker: str) -> str:
    """Return the text after *marker*, minus one separator space."""
    rest = line[len(marker):]
    if rest.startswith(" "):
        rest = rest[1:]
    return rest


def _text(line: str, marker: str) -> str:
    """Decode a delta payload; JSON string literals are unquoted."""
    rest = _payload(line, marker)
    if len(rest) >= 2 and rest.startswith('"') and rest.endswith('"'):
        try:
            decoded = json.loads(rest)
        except json.JSONDecodeError:
            return rest
        if isinstance(decoded, str):
            return decoded
    return rest


def _message_start(line: str) -> FramedEvent:
    return MessageStart()


def _message_end(line: str) -> FramedEvent:
    return MessageEnd()


def _message(line: str) -> FramedEvent:
    raw = _payload(line, MESSAGE).strip()
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ParseError(line, f"malformed {MESSAGE} payload ({exc.msg})") from exc
    if not isinstance(payload, dict):
        msg = f"{MESSAGE} payload is {type(payload).__name__}, expected object"
        raise ParseError(line, msg)
    return StructuredMessage(payload=payload)


def _content_delta(line: str) -> FramedEvent:
    return ContentDelta(text=_text(line, CONTENT_DELTA))


def _content(line: str) -> FramedEvent:
    return ContentFull(text=_payload(line, CONTENT))


def _session_id(line: str) -> FramedEvent:
    return SessionId(session_id=_payload(line, SESSION_ID).strip())


#: Closed marker grammar.  Longer markers sharing a prefix come first so a
#: line matches exactly one entry.
GRAMMAR: tuple[tuple[str, Callable[[str], FramedEvent]], ...] = (
    (MESSAGE_START, _message_start),
    (MESSAGE_END, _message_end),
    (MESSAGE, _message),
    (CONTENT_DELTA, _content_delta),
    (CONTENT, _content),
    (SESSION_ID, _session_id),
)


class StreamFramer:
    """Classifies complete output lines against the marker grammar.

    One framer per subprocess stream, fed by a single reader.  Malformed
    lines are logged and dropped; they never abort the stream.
    """

    def __init__(
        self, name: str = "agent", tail_lines: int | None = _TAIL_LINES
    ) -> None:
        self.name = name
        self._state = FramerState.IDLE
        self._json_lines: list[str] = []
        self._tail: deque[str] = deque(maxlen=tail_lines)
        self.parse_errors = 0

    @property
    def state(self) -> FramerState:
        return self._state

    @property
    def tail(self) -> list[str]:
        """Most recent unmatched lines, oldest first."""
        return list(self._tail)

    # ------------------------------------------------------------------ #
    # Line input
    # ------------------------------------------------------------------ #

    def feed_line(self, line: str) -> FramedEvent | None:
        """Frame one complete line; returns the event it produced, if any."""
        line = line.rstrip("\r\n")
        try:
            return self._frame(line)
        except ParseError as exc:
            self.parse_errors += 1
            logger.warning("%s: dropped protocol line: %s", self.name, exc)
            return None

    def feed_bytes(self, raw: bytes) -> FramedEvent | None:
        """Decode and frame one raw line read from the subprocess."""
        if len(raw) > MAX_LINE_BYTES:
            logger.warning(
                "%s: output line exceeds %d bytes, skipping",
                self.name,
                MAX_LINE_BYTES,
            )
            return None
        return self.feed_line(raw.decode("utf-8", errors="replace"))

    def finish(self) -> None:
        """Signal end of stream; an unterminated JSON block is discarded."""
        if self._state is FramerState.CAPTURING_JSON:
            logger.warning(
                "%s: stream ended inside %s block (%d lines discarded)",
                self.name,
                JSON_START,
                len(self._json_lines),
            )
        self._state = FramerState.IDLE
        self._json_lines = []

    def iter_lines(self, lines: Iterable[str]) -> Iterator[FramedEvent]:
        """Frame every line of *lines* and yield the produced events."""
        for line in lines:
            event = self.feed_line(line)
            if event is not None:
                yield event
        self.finish()

    async def aframe(self, reader: asyncio.StreamReader) -> AsyncIterator[FramedEvent]:
        """Read *reader* line by line until EOF, yielding framed events.

        ``readline`` only returns once a newline (or EOF) is seen, so
        partial lines are never framed.
        """
        try:
            while True:
                try:
                    raw = await reader.readline()
                except ValueError:
                    # Line exceeded the StreamReader limit; the reader has
                    # already discarded it.
                    logger.warning(
                        "%s: output line exceeded buffer limit, skipping",
                        self.name,
                    )
                    continue
                if not raw:
                    break
                event = self.feed_bytes(raw)
                if event is not None:
                    yield event
        finally:
            self.finish()

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _frame(self, line: str) -> FramedEvent | None:
        stripped = line.strip()

        if self._state is FramerState.CAPTURING_JSON:
            if stripped.startswith(JSON_END):
                return self._close_json_block(line)
            self._json_lines.append(line)
            return None

        if stripped.startswith(JSON_START):
            self._state = FramerState.CAPTURING_JSON
            self._json_lines = []
            return None

        for marker, build in GRAMMAR:
            if line.startswith(marker):
                return build(line)

        if stripped:
            self._tail.append(line)
        return None

    def _close_json_block(self, line: str) -> FramedEvent:
        body = "\n".join(self._json_lines).strip()
        self._state = FramerState.IDLE
        self._json_lines = []
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as exc:
            raise ParseError(line, f"malformed JSON block ({exc.msg})") from exc
        return RawJsonBlock(payload=payload)


def serialize(event: FramedEvent) -> str:
    """Render *event* back to its marker line(s), without a trailing newline."""
    if isinstance(event, MessageStart):
        return MESSAGE_START
    if isinstance(event, MessageEnd):
        return MESSAGE_END
    if isinstance(event, StructuredMessage):
        return f"{MESSAGE} {json.dumps(event.payload)}"
    if isinstance(event, ContentDelta):
        return f"{CONTENT_DELTA} {json.dumps(event.text)}"
    if isinstance(event, ContentFull):
        return f"{CONTENT} {event.text}"
    if isinstance(event, SessionId):
        return f"{SESSION_ID} {event.session_id}"
    if isinstance(event, RawJsonBlock):
        return "\n".join([JSON_START, json.dumps(event.payload, indent=2), JSON_END])
    msg = f"Unknown framed event: {event!r}"
    raise TypeError(msg)
