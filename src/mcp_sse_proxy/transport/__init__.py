"""Transport layer.

- SSE frame parsing for the remote side
- Newline-delimited JSON over stdio for the local side
"""

from .sse_parser import DONE_SENTINEL, ENDPOINT_EVENT, MESSAGE_EVENT, SSEFrame, SSEFrameParser
from .stdio import StdioLineReader, StdioLineWriter, connect_stdin

__all__ = [
    # SSE
    "DONE_SENTINEL",
    "ENDPOINT_EVENT",
    "MESSAGE_EVENT",
    "SSEFrame",
    "SSEFrameParser",
    # stdio
    "StdioLineReader",
    "StdioLineWriter",
    "connect_stdin",
]
