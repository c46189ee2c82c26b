"""stdio line transport.

Newline-delimited JSON on stdin/stdout, UTF-8 encoded.

Cross-platform considerations:
- Output newlines are always LF, never CRLF
- Input accepts both LF and CRLF
- A UTF-8 BOM at the start of a line is dropped
- Binary streams are used for output so encoding does not depend on locale
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from typing import Any, BinaryIO, TextIO

from ..protocol.jsonrpc import dumps

logger = logging.getLogger(__name__)

ENCODING = "utf-8"
NEWLINE = "\n"

# Buffer size for stdin; longer lines are read in pieces
READ_LIMIT = 1024 * 1024


# Keeps fallback pump tasks alive until they finish
_pump_tasks: set[asyncio.Task[None]] = set()


async def connect_stdin(stdin: TextIO | None = None) -> asyncio.StreamReader:
    """Attach an ``asyncio.StreamReader`` to stdin without blocking the loop."""
    stream = stdin or sys.stdin
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=READ_LIMIT)
    protocol = asyncio.StreamReaderProtocol(reader)

    try:
        await loop.connect_read_pipe(lambda: protocol, stream)
    except ValueError:
        # Regular files (stdin redirected from disk) cannot be registered
        # with the event loop; read them in the default executor instead.
        task = asyncio.create_task(_pump_blocking(stream.buffer, reader))
        _pump_tasks.add(task)
        task.add_done_callback(_pump_tasks.discard)
    return reader


async def _pump_blocking(stream: BinaryIO, reader: asyncio.StreamReader) -> None:
    loop = asyncio.get_running_loop()
    while True:
        data = await loop.run_in_executor(None, stream.readline)
        if not data:
            reader.feed_eof()
            return
        reader.feed_data(data)


class StdioLineReader:
    """Async iterator over input lines.

    Usage:
        reader = StdioLineReader(await connect_stdin())
        async for line in reader.lines():
            ...
    """

    def __init__(self, reader: asyncio.StreamReader) -> None:
        self._reader = reader

    async def lines(self) -> AsyncIterator[str]:
        """Yield decoded lines until EOF, without the line terminator."""
        while True:
            raw = await self._readline()
            if not raw:
                logger.debug("stdin EOF")
                return

            line = raw.decode(ENCODING, errors="replace").rstrip("\r\n")
            if line.startswith("\ufeff"):
                line = line[1:]
            yield line

    async def _readline(self) -> bytes:
        """Read one line including its terminator, however long it is."""
        pieces: list[bytes] = []
        while True:
            try:
                pieces.append(await self._reader.readuntil(NEWLINE.encode(ENCODING)))
            except asyncio.IncompleteReadError as e:
                pieces.append(e.partial)
            except asyncio.LimitOverrunError as e:
                # The data stays buffered; take what fits and keep reading
                pieces.append(await self._reader.readexactly(e.consumed))
                continue
            return b"".join(pieces)


class StdioLineWriter:
    """Writes one JSON document per line to a binary stream."""

    def __init__(self, stdout: BinaryIO | None = None) -> None:
        self._stdout = stdout if stdout is not None else sys.stdout.buffer

    def write_line(self, line: str) -> None:
        self._stdout.write((line + NEWLINE).encode(ENCODING))
        self._stdout.flush()

    def write_message(self, value: Any) -> None:
        """Serialize ``value`` compactly and write it as a single line."""
        self.write_line(dumps(value))
