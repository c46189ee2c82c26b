"""Incremental Server-Sent Events frame parser.

Turns an unbounded sequence of byte chunks into ``SSEFrame`` objects.

Line handling:
- ``event: X`` sets the pending event type
- ``data: Y`` emits a frame with the pending event type, then resets it
- anything else (blank line, comment) resets the pending event type

Chunk boundaries are irrelevant: the buffer keeps the trailing partial line
between feeds and bytes go through an incremental UTF-8 decoder, so a frame
sequence is the same whether the stream arrives in one chunk or one byte at
a time.
"""

from __future__ import annotations

import codecs
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

logger = logging.getLogger(__name__)

EVENT_PREFIX = "event: "
DATA_PREFIX = "data: "

# Data payload the server sends as a heartbeat/close hint, never relayed.
DONE_SENTINEL = "[DONE]"

MESSAGE_EVENT = "message"
ENDPOINT_EVENT = "endpoint"


@dataclass(frozen=True)
class SSEFrame:
    """A single ``data:`` line together with the event type it belongs to."""

    event_type: str | None
    data: str

    @property
    def is_message(self) -> bool:
        """Untyped frames are implicit messages."""
        return self.event_type is None or self.event_type == MESSAGE_EVENT


class SSEFrameParser:
    """Stateful parser; one instance per SSE connection."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._pending_event: str | None = None

    def feed(self, chunk: bytes) -> list[SSEFrame]:
        """Feed a chunk of bytes, return the frames it completed."""
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        frames: list[SSEFrame] = []
        for line in lines:
            frame = self._process_line(line.rstrip("\r"))
            if frame is not None:
                frames.append(frame)
        return frames

    def flush(self) -> list[SSEFrame]:
        """Process whatever is left once the stream has ended."""
        remainder = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        frames: list[SSEFrame] = []
        if remainder:
            frame = self._process_line(remainder.rstrip("\r"))
            if frame is not None:
                frames.append(frame)
        self._pending_event = None
        return frames

    async def parse(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[SSEFrame]:
        """Lazily yield frames from an async byte stream."""
        async for chunk in chunks:
            for frame in self.feed(chunk):
                yield frame
        for frame in self.flush():
            yield frame

    def _process_line(self, line: str) -> SSEFrame | None:
        if line.startswith(EVENT_PREFIX):
            self._pending_event = line[len(EVENT_PREFIX) :].strip()
            return None

        if line.startswith(DATA_PREFIX):
            frame = SSEFrame(self._pending_event, line[len(DATA_PREFIX) :])
            self._pending_event = None
            if frame.is_message and frame.data == DONE_SENTINEL:
                logger.debug("Ignoring [DONE] sentinel")
                return None
            return frame

        self._pending_event = None
        return None
