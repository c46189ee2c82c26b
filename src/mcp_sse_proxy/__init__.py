"""stdio-to-SSE proxy for MCP servers.

Bridges newline-delimited JSON-RPC on stdin/stdout to a remote
Server-Sent-Events session:
- Messages read from stdin are POSTed to the session endpoint
- ``message`` events pushed by the server are written to stdout
"""

__version__ = "0.1.0"

from .config import DEFAULT_SSE_URL, ProxyConfig  # noqa: E402
from .errors import (  # noqa: E402
    NoSessionError,
    ParseError,
    ProxyError,
    RemoteError,
    SessionConnectionError,
    TransportError,
)
from .proxy import ProxyLifecycle, ProxyState, run_proxy  # noqa: E402
from .session import Session, SessionManager  # noqa: E402

__all__ = [
    "__version__",
    # Configuration
    "DEFAULT_SSE_URL",
    "ProxyConfig",
    # Errors
    "NoSessionError",
    "ParseError",
    "ProxyError",
    "RemoteError",
    "SessionConnectionError",
    "TransportError",
    # Lifecycle
    "ProxyLifecycle",
    "ProxyState",
    "Session",
    "SessionManager",
    "run_proxy",
]
