"""Stdin dispatcher: local JSON-RPC lines to the outbound sender.

Every non-blank line ends in exactly one of two ways: a successful send, or
a JSON-RPC error response written to stdout so the waiting caller is
unblocked. Either way the next line is processed.

Example session:
    → {"jsonrpc":"2.0","id":1,"method":"ping"}        (posted to the server)
    → not json
    ← {"jsonrpc":"2.0","id":null,"error":{"code":-32603,"message":"Parse error: ..."}}
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable
from typing import Protocol

from .protocol.jsonrpc import JsonRpcMessage, error_envelope, recover_id
from .transport.stdio import StdioLineWriter

logger = logging.getLogger(__name__)


class MessageSender(Protocol):
    """Anything that can deliver a message (``OutboundSender`` in production)."""

    async def send(self, message: JsonRpcMessage) -> None: ...


class StdinDispatcher:
    """Forwards input lines strictly in order, one send in flight at a time."""

    def __init__(self, sender: MessageSender, writer: StdioLineWriter) -> None:
        self._sender = sender
        self._writer = writer
        self.sent = 0
        self.failed = 0

    async def dispatch(self, line: str) -> None:
        """Handle one line. Never raises, except on cancellation."""
        line = line.strip()
        if not line:
            return

        try:
            message = JsonRpcMessage.from_json(line)
            await self._sender.send(message)
        except Exception as e:
            logger.error(f"Error processing message: {e}")
            self.failed += 1
            self._writer.write_line(error_envelope(recover_id(line), str(e)))
            return

        self.sent += 1

    async def run(self, lines: AsyncIterable[str]) -> None:
        """Dispatch lines until input is exhausted."""
        async for line in lines:
            await self.dispatch(line)
