"""Lifecycle controller: wires the session, the relay and the dispatcher.

State machine:
    STARTING → CONNECTING → ACTIVE → CLOSING → TERMINATED

- CONNECTING: open the SSE session; failure is fatal (exit code 1), a
  signal abandons the handshake and exits cleanly
- ACTIVE: stdin dispatcher and inbound relay run concurrently
- CLOSING: stdin EOF, SIGINT/SIGTERM, or the remote stream ending;
  in-flight work is cancelled, not awaited
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from enum import Enum
from typing import BinaryIO

import httpx

from .config import ProxyConfig
from .dispatcher import StdinDispatcher
from .errors import SessionConnectionError
from .relay import InboundRelay
from .sender import OutboundSender
from .session import Session, SessionManager
from .transport.stdio import StdioLineReader, StdioLineWriter, connect_stdin

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INIT_FAILED = 1

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ProxyState(str, Enum):
    """Proxy lifecycle states."""

    STARTING = "starting"
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    TERMINATED = "terminated"


class ProxyLifecycle:
    """Runs one proxy instance from startup to exit code."""

    def __init__(
        self,
        config: ProxyConfig,
        stdin: asyncio.StreamReader | None = None,
        stdout: BinaryIO | None = None,
        client: httpx.AsyncClient | None = None,
        install_signal_handlers: bool = True,
    ) -> None:
        self.config = config
        self.session = Session()
        self.manager = SessionManager(config, self.session, client=client)
        self.writer = StdioLineWriter(stdout)
        self._stdin = stdin
        self._install_signal_handlers = install_signal_handlers
        self._signals_installed: list[signal.Signals] = []
        self._stop_event: asyncio.Event | None = None
        self._state = ProxyState.STARTING
        self.shutdown_reason: str | None = None

    @property
    def state(self) -> ProxyState:
        return self._state

    def _set_state(self, state: ProxyState) -> None:
        logger.debug(f"Proxy state: {self._state.value} -> {state.value}")
        self._state = state

    def request_stop(self, reason: str) -> None:
        """Ask a running proxy to shut down."""
        if self.shutdown_reason is None:
            self.shutdown_reason = reason
        logger.info(reason)
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self) -> int:
        """Run until shutdown and return the process exit code."""
        self._stop_event = asyncio.Event()
        logger.info("stdio-to-SSE proxy started")
        logger.info(f"Forwarding to: {self.config.sse_url}")

        self._set_state(ProxyState.CONNECTING)
        self._add_signal_handlers()
        try:
            return await self._serve()
        finally:
            self._remove_signal_handlers()
            await self.manager.close()
            self._set_state(ProxyState.TERMINATED)

    async def _serve(self) -> int:
        try:
            connected = await self._connect()
        except SessionConnectionError as e:
            logger.error(f"Failed to initialize: {e}")
            return EXIT_INIT_FAILED
        if not connected:
            return EXIT_OK

        stdin = self._stdin or await connect_stdin()
        sender = OutboundSender(self.config, self.session, self.manager.client)
        dispatcher = StdinDispatcher(sender, self.writer)
        relay = InboundRelay(self.writer)

        self._set_state(ProxyState.ACTIVE)

        dispatch_task = asyncio.create_task(
            dispatcher.run(StdioLineReader(stdin).lines()), name="stdin-dispatcher"
        )
        relay_task = asyncio.create_task(relay.run(self.manager.frames()), name="sse-relay")
        stop_task = self._wait_for_stop()

        watched = {dispatch_task, stop_task}
        if self.config.exit_on_stream_end:
            watched.add(relay_task)

        try:
            done, _ = await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)
            if dispatch_task in done:
                self.request_stop("stdin closed, exiting")
            elif relay_task in done:
                self.request_stop("SSE stream ended, exiting")
        finally:
            self._set_state(ProxyState.CLOSING)
            await self._cancel(dispatch_task, relay_task, stop_task)

        logger.info(
            f"Shutdown complete ({dispatcher.sent} sent, {dispatcher.failed} failed, "
            f"{relay.relayed} relayed, {relay.dropped} dropped)"
        )
        return EXIT_OK

    async def _connect(self) -> bool:
        """Open the session unless a stop is requested first.

        Returns False when the handshake was abandoned because of a stop request.

        Raises:
            SessionConnectionError: If the handshake fails
        """
        open_task = asyncio.create_task(self.manager.open(), name="sse-handshake")
        stop_task = self._wait_for_stop()
        try:
            await asyncio.wait({open_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (open_task, stop_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(open_task, stop_task, return_exceptions=True)

        if open_task.cancelled():
            self._set_state(ProxyState.CLOSING)
            return False
        open_task.result()
        return True

    def _wait_for_stop(self) -> asyncio.Task[bool]:
        assert self._stop_event is not None
        return asyncio.create_task(self._stop_event.wait(), name="stop-request")

    async def _cancel(self, *tasks: asyncio.Task) -> None:
        """Cancel ``tasks`` and log any that had failed."""
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for task in tasks:
            error = None if task.cancelled() else task.exception()
            if error is not None:
                logger.error(f"{task.get_name()} failed: {error}")

    def _add_signal_handlers(self) -> None:
        if not self._install_signal_handlers:
            return
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            with contextlib.suppress(NotImplementedError):  # Windows lacks add_signal_handler
                loop.add_signal_handler(sig, self.request_stop, f"Received {sig.name}, exiting")
                self._signals_installed.append(sig)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._signals_installed:
            loop.remove_signal_handler(sig)
        self._signals_installed.clear()


async def run_proxy(config: ProxyConfig) -> int:
    """Run the proxy against real stdin/stdout."""
    return await ProxyLifecycle(config).run()
