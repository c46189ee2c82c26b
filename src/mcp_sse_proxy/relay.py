"""Inbound relay: server-pushed message frames to stdout."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable

from .protocol.jsonrpc import dumps
from .transport.sse_parser import SSEFrame
from .transport.stdio import StdioLineWriter

logger = logging.getLogger(__name__)

# How much of a bad payload ends up in the log
PREVIEW_CHARS = 50


class InboundRelay:
    """Writes each ``message`` frame as one line of JSON.

    Server data is outside the caller's control, so bad payloads are logged
    and dropped; nothing here ever ends the stream.
    """

    def __init__(self, writer: StdioLineWriter) -> None:
        self._writer = writer
        self.relayed = 0
        self.dropped = 0

    def relay(self, frame: SSEFrame) -> bool:
        """Relay a single frame. Returns True if a line was written."""
        if not frame.is_message:
            logger.debug(f"Skipping {frame.event_type} event")
            return False

        try:
            line = dumps(json.loads(frame.data))
        except (ValueError, RecursionError):
            logger.warning(f"Failed to parse SSE message: {frame.data[:PREVIEW_CHARS]}")
            self.dropped += 1
            return False

        self._writer.write_line(line)
        self.relayed += 1
        return True

    async def run(self, frames: AsyncIterable[SSEFrame]) -> None:
        """Relay frames until the stream is exhausted."""
        async for frame in frames:
            self.relay(frame)
