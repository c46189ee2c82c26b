"""Integration tests for the proxy lifecycle.

Runs the whole proxy against a scripted SSE endpoint, verifying:
- Startup failure exit code
- Request forwarding and response relay
- Shutdown on stdin EOF, stream end and stop requests
- Staying attached after the stream ends
- SIGTERM handling during the handshake and while active
"""

from __future__ import annotations

import asyncio
import io
import json
import os
import signal
import sys

import pytest
from fakes import SSE_URL, FakeSSEServer, sse_event

from mcp_sse_proxy.config import ProxyConfig
from mcp_sse_proxy.proxy import EXIT_INIT_FAILED, EXIT_OK, ProxyLifecycle, ProxyState
from mcp_sse_proxy.session import SessionState

# =============================================================================
# Helpers
# =============================================================================


def make_stdin(lines: list[str], eof: bool = True) -> asyncio.StreamReader:
    """Create a stdin reader preloaded with lines."""
    reader = asyncio.StreamReader()
    for line in lines:
        reader.feed_data((line + "\n").encode("utf-8"))
    if eof:
        reader.feed_eof()
    return reader


def read_lines(stdout: io.BytesIO) -> list[dict]:
    return [json.loads(line) for line in stdout.getvalue().decode("utf-8").splitlines()]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


def make_proxy(
    client,
    stdin: asyncio.StreamReader,
    stdout: io.BytesIO,
    **options,
) -> ProxyLifecycle:
    return ProxyLifecycle(
        ProxyConfig(SSE_URL, **options),
        stdin=stdin,
        stdout=stdout,
        client=client,
        install_signal_handlers=False,
    )


# =============================================================================
# Tests: Startup
# =============================================================================


class TestStartup:
    """CONNECTING failures are fatal."""

    @pytest.mark.anyio
    async def test_handshake_failure_exits_1(self) -> None:
        server = FakeSSEServer(status_code=500)
        stdout = io.BytesIO()
        async with server.client() as client:
            proxy = make_proxy(client, make_stdin([]), stdout)
            exit_code = await proxy.run()

        assert exit_code == EXIT_INIT_FAILED == 1
        assert proxy.state == ProxyState.TERMINATED
        assert stdout.getvalue() == b""

    @pytest.mark.anyio
    async def test_missing_endpoint_event_exits_1(self) -> None:
        server = FakeSSEServer(chunks=[b": no endpoint here\n\n"])
        async with server.client() as client:
            proxy = make_proxy(client, make_stdin([]), io.BytesIO())
            assert await proxy.run() == EXIT_INIT_FAILED


# =============================================================================
# Tests: Active session
# =============================================================================


class TestActive:
    """Traffic in both directions."""

    @pytest.mark.anyio
    async def test_stdin_lines_are_posted_in_order(self) -> None:
        server = FakeSSEServer(hold_open=True)
        stdout = io.BytesIO()
        lines = [
            '{"jsonrpc":"2.0","id":1,"method":"initialize","params":{}}',
            "",
            '{"jsonrpc":"2.0","method":"notifications/initialized"}',
        ]
        async with server.client() as client:
            proxy = make_proxy(client, make_stdin(lines), stdout)
            exit_code = await proxy.run()

        assert exit_code == EXIT_OK
        assert proxy.shutdown_reason == "stdin closed, exiting"
        assert server.posted_bodies == [
            b'{"jsonrpc":"2.0","id":1,"method":"initialize","params":{}}',
            b'{"jsonrpc":"2.0","method":"notifications/initialized"}',
        ]
        assert all(r.url.params["sessionId"] == "abc123" for r in server.posts)
        assert stdout.getvalue() == b""

    @pytest.mark.anyio
    async def test_oversized_request_is_posted(self) -> None:
        server = FakeSSEServer(hold_open=True)
        large = json.dumps(
            {"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"blob": "x" * 70_000}},
            separators=(",", ":"),
        )
        ping = '{"jsonrpc":"2.0","id":2,"method":"ping"}'
        stdout = io.BytesIO()
        async with server.client() as client:
            proxy = make_proxy(client, make_stdin([large, ping]), stdout)
            assert await proxy.run() == EXIT_OK

        assert proxy.shutdown_reason == "stdin closed, exiting"
        assert server.posted_bodies == [large.encode(), ping.encode()]
        assert stdout.getvalue() == b""

    @pytest.mark.anyio
    async def test_server_messages_are_relayed(self) -> None:
        server = FakeSSEServer(
            [
                sse_event("/sse?sessionId=abc123", "endpoint"),
                sse_event('{"jsonrpc":"2.0","id":1,"result":{"tools":[]}}', "message"),
                sse_event("[DONE]", "message"),
                sse_event("{broken", "message"),
                sse_event('{"jsonrpc":"2.0","method":"notifications/message"}'),
            ]
        )
        stdout = io.BytesIO()
        async with server.client() as client:
            proxy = make_proxy(client, make_stdin([], eof=False), stdout)
            exit_code = await proxy.run()

        assert exit_code == EXIT_OK
        assert proxy.shutdown_reason == "SSE stream ended, exiting"
        assert read_lines(stdout) == [
            {"jsonrpc": "2.0", "id": 1, "result": {"tools": []}},
            {"jsonrpc": "2.0", "method": "notifications/message"},
        ]

    @pytest.mark.anyio
    async def test_failures_are_answered_locally(self) -> None:
        server = FakeSSEServer(hold_open=True, post_status=500, post_body="Internal Server Error")
        stdout = io.BytesIO()
        lines = ["{oops", '{"jsonrpc":"2.0","id":9,"method":"tools/call"}']
        async with server.client() as client:
            proxy = make_proxy(client, make_stdin(lines), stdout)
            assert await proxy.run() == EXIT_OK

        parse_failure, remote_failure = read_lines(stdout)
        assert parse_failure["id"] is None
        assert parse_failure["error"]["code"] == -32603
        assert parse_failure["error"]["message"].startswith("Parse error")
        assert remote_failure == {
            "jsonrpc": "2.0",
            "id": 9,
            "error": {"code": -32603, "message": "HTTP 500: Internal Server Error"},
        }
        assert len(server.posts) == 1


# =============================================================================
# Tests: Shutdown
# =============================================================================


class TestShutdown:
    """CLOSING triggers and their effect on the session."""

    @pytest.mark.anyio
    async def test_stream_end_invalidates_session(self) -> None:
        server = FakeSSEServer()
        async with server.client() as client:
            proxy = make_proxy(client, make_stdin([], eof=False), io.BytesIO())
            assert await proxy.run() == EXIT_OK

        assert proxy.session.id is None
        assert proxy.session.state == SessionState.CLOSED

    @pytest.mark.anyio
    async def test_request_stop(self) -> None:
        server = FakeSSEServer(hold_open=True)
        async with server.client() as client:
            proxy = make_proxy(client, make_stdin([], eof=False), io.BytesIO())
            task = asyncio.create_task(proxy.run())

            await wait_until(lambda: proxy.state == ProxyState.ACTIVE)
            proxy.request_stop("Received SIGTERM, exiting")
            exit_code = await asyncio.wait_for(task, 2.0)

        assert exit_code == EXIT_OK
        assert proxy.shutdown_reason == "Received SIGTERM, exiting"
        assert proxy.state == ProxyState.TERMINATED
        assert proxy.session.id is None

    @pytest.mark.anyio
    async def test_stay_attached_after_stream_end(self) -> None:
        """Requests after the stream ends fail locally without a network call."""
        server = FakeSSEServer()
        stdin = make_stdin([], eof=False)
        stdout = io.BytesIO()
        async with server.client() as client:
            proxy = make_proxy(client, stdin, stdout, exit_on_stream_end=False)
            task = asyncio.create_task(proxy.run())

            await wait_until(lambda: proxy.session.state == SessionState.CLOSED)
            assert proxy.state == ProxyState.ACTIVE

            stdin.feed_data(b'{"jsonrpc":"2.0","id":42,"method":"ping"}\n')
            stdin.feed_eof()
            exit_code = await asyncio.wait_for(task, 2.0)

        assert exit_code == EXIT_OK
        assert proxy.shutdown_reason == "stdin closed, exiting"
        assert read_lines(stdout) == [
            {"jsonrpc": "2.0", "id": 42, "error": {"code": -32603, "message": "No active session"}}
        ]
        assert server.posts == []

    @pytest.mark.anyio
    async def test_stop_during_handshake(self) -> None:
        server = FakeSSEServer(chunks=[], hold_open=True)
        async with server.client() as client:
            proxy = make_proxy(client, make_stdin([], eof=False), io.BytesIO())
            task = asyncio.create_task(proxy.run())

            await wait_until(lambda: len(server.gets) == 1)
            proxy.request_stop("Received SIGINT, exiting")
            exit_code = await asyncio.wait_for(task, 2.0)

        assert exit_code == EXIT_OK
        assert proxy.state == ProxyState.TERMINATED
        assert proxy.session.id is None


# =============================================================================
# Tests: Signals
# =============================================================================


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
class TestSignals:
    """SIGTERM shuts the proxy down cleanly in every phase."""

    @pytest.mark.anyio
    async def test_sigterm_while_connecting(self) -> None:
        server = FakeSSEServer(chunks=[], hold_open=True)
        async with server.client() as client:
            proxy = ProxyLifecycle(
                ProxyConfig(SSE_URL),
                stdin=make_stdin([], eof=False),
                stdout=io.BytesIO(),
                client=client,
            )
            task = asyncio.create_task(proxy.run())

            await wait_until(lambda: len(server.gets) == 1)
            assert proxy.state == ProxyState.CONNECTING
            os.kill(os.getpid(), signal.SIGTERM)
            exit_code = await asyncio.wait_for(task, 2.0)

        assert exit_code == EXIT_OK
        assert proxy.shutdown_reason == "Received SIGTERM, exiting"
        assert signal.getsignal(signal.SIGTERM) == signal.SIG_DFL

    @pytest.mark.anyio
    async def test_sigterm_while_active(self) -> None:
        server = FakeSSEServer(hold_open=True)
        async with server.client() as client:
            proxy = ProxyLifecycle(
                ProxyConfig(SSE_URL),
                stdin=make_stdin([], eof=False),
                stdout=io.BytesIO(),
                client=client,
            )
            task = asyncio.create_task(proxy.run())

            await wait_until(lambda: proxy.state == ProxyState.ACTIVE)
            os.kill(os.getpid(), signal.SIGTERM)
            exit_code = await asyncio.wait_for(task, 2.0)

        assert exit_code == EXIT_OK
        assert proxy.shutdown_reason == "Received SIGTERM, exiting"
        assert proxy.session.id is None
        assert signal.getsignal(signal.SIGTERM) == signal.SIG_DFL
