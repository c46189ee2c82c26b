"""Proxy error taxonomy.

Errors raised before a session exists are fatal to startup. Everything
raised while dispatching a local line is reported back to the caller as a
JSON-RPC error envelope and processing continues.
"""

from __future__ import annotations


class ProxyError(Exception):
    """Base class for all proxy errors."""


class SessionConnectionError(ProxyError, ConnectionError):
    """The SSE handshake failed before a session was established."""


class NoSessionError(ProxyError):
    """A send was attempted while no session id is held."""

    def __init__(self, message: str = "No active session") -> None:
        super().__init__(message)


class RemoteError(ProxyError):
    """The remote endpoint answered a POST with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"HTTP {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class TransportError(ProxyError):
    """Connection-level failure while a session is active."""


class ParseError(ProxyError, ValueError):
    """A payload could not be decoded as JSON."""
