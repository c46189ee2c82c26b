"""SSE session lifecycle.

The remote server assigns the session id. The client opens the event stream
with a throwaway placeholder id and waits for an ``endpoint`` event whose
payload is a URL carrying the real id as its ``sessionId`` query parameter:

    GET /sse?sessionId=<uuid4>
    ← event: endpoint
    ← data: /sse?sessionId=abc123

The id lives on a single ``Session`` handle shared with the sender. It only
changes through ``Session.establish`` and ``Session.invalidate``.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

import httpx

from .config import ProxyConfig
from .errors import NoSessionError, SessionConnectionError
from .transport.sse_parser import ENDPOINT_EVENT, SSEFrame, SSEFrameParser

logger = logging.getLogger(__name__)

SESSION_ID_PARAM = "sessionId"

SSE_HEADERS = {
    "Accept": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class SessionState(str, Enum):
    """Session state machine."""

    PENDING = "pending"
    ACTIVE = "active"
    CLOSED = "closed"


class Session:
    """Handle for the one server-assigned session.

    The id changes only through ``establish`` and ``invalidate``.
    """

    def __init__(self) -> None:
        self._id: str | None = None
        self._endpoint_url: httpx.URL | None = None
        self._state = SessionState.PENDING

    @property
    def id(self) -> str | None:
        return self._id

    @property
    def endpoint_url(self) -> httpx.URL | None:
        """Message endpoint advertised by the server."""
        return self._endpoint_url

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._id is not None

    def establish(self, session_id: str, endpoint_url: httpx.URL | None = None) -> None:
        """Adopt a server-assigned session id."""
        self._id = session_id
        self._endpoint_url = endpoint_url
        self._state = SessionState.ACTIVE
        logger.info(f"Session established: {session_id}")

    def invalidate(self, reason: str) -> None:
        """Drop the session id. Safe to call repeatedly."""
        if self._state == SessionState.CLOSED:
            return
        previous = self._id
        self._id = None
        self._endpoint_url = None
        self._state = SessionState.CLOSED
        logger.info(f"Session {previous} invalidated: {reason}")

    def require_id(self) -> str:
        """Return the session id.

        Raises:
            NoSessionError: If no session is active
        """
        if self._id is None:
            raise NoSessionError()
        return self._id

    def __repr__(self) -> str:
        return f"Session(id={self._id!r}, state={self._state.value})"


class SessionManager:
    """Owns the SSE connection and the session it carries.

    Usage:
        manager = SessionManager(config)
        await manager.open()          # resolves once the endpoint event arrives
        async for frame in manager.frames():
            ...                       # message frames; ends when the stream ends
        await manager.close()
    """

    def __init__(
        self,
        config: ProxyConfig,
        session: Session | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.session = session or Session()
        self._client = client
        self._owns_client = client is None
        self._response: httpx.Response | None = None
        self._frames: AsyncIterator[SSEFrame] | None = None
        # Frames that arrived ahead of the endpoint event
        self._early_frames: deque[SSEFrame] = deque()
        self._closed = False

    @property
    def client(self) -> httpx.AsyncClient:
        """HTTP client shared by the event stream and outbound sends."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout())
        return self._client

    async def open(self) -> Session:
        """Connect to the SSE endpoint and wait for the session id.

        Raises:
            SessionConnectionError: If the handshake fails or the stream ends
                before an endpoint event is received
        """
        placeholder = str(uuid.uuid4())
        url = self.config.url.copy_with(params={SESSION_ID_PARAM: placeholder})
        request = self.client.build_request("GET", url, headers=SSE_HEADERS)

        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"SSE connection error: {e}")
            raise SessionConnectionError(f"Failed to connect to SSE: {e}") from e

        if response.status_code != 200:
            await response.aclose()
            raise SessionConnectionError(
                f"Failed to connect to SSE: HTTP {response.status_code}"
            )

        logger.info("Connected to SSE endpoint")
        self._response = response
        self._frames = SSEFrameParser().parse(response.aiter_bytes())

        try:
            while not self.session.is_active:
                frame = await anext(self._frames)
                if frame.event_type == ENDPOINT_EVENT:
                    self._handle_endpoint(frame, handshake=True)
                else:
                    self._early_frames.append(frame)
        except StopAsyncIteration:
            await self._abort_handshake()
            raise SessionConnectionError("SSE stream closed before endpoint event") from None
        except (httpx.HTTPError, httpx.StreamError) as e:
            await self._abort_handshake()
            logger.error(f"SSE connection error: {e}")
            raise SessionConnectionError(f"SSE connection error: {e}") from e
        except SessionConnectionError:
            await self._abort_handshake()
            raise

        return self.session

    async def frames(self) -> AsyncIterator[SSEFrame]:
        """Yield non-endpoint frames until the stream ends.

        Transport errors end the iteration instead of propagating. Either
        way the session is invalidated on exit.
        """
        if self._frames is None:
            raise RuntimeError("Session manager not opened")

        try:
            while self._early_frames:
                yield self._early_frames.popleft()

            async for frame in self._frames:
                if frame.event_type == ENDPOINT_EVENT:
                    self._handle_endpoint(frame, handshake=False)
                    continue
                yield frame

            logger.info("SSE connection closed")
            self.session.invalidate("SSE connection closed")
        except (httpx.HTTPError, httpx.StreamError) as e:
            logger.error(f"SSE connection error: {e}")
            self.session.invalidate(f"SSE connection error: {e}")
        finally:
            self.session.invalidate("SSE stream released")

    async def close(self) -> None:
        """Tear down the event stream and the HTTP client."""
        if self._closed:
            return
        self._closed = True

        if self._response is not None:
            await self._response.aclose()
            self._response = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
        self.session.invalidate("proxy closing")

    def _handle_endpoint(self, frame: SSEFrame, handshake: bool) -> None:
        try:
            endpoint_url = self.config.url.join(frame.data)
        except httpx.InvalidURL:
            endpoint_url = None

        session_id = endpoint_url.params.get(SESSION_ID_PARAM) if endpoint_url else None
        if not session_id:
            if handshake:
                raise SessionConnectionError(
                    f"Endpoint event carries no {SESSION_ID_PARAM}: {frame.data[:50]}"
                )
            logger.warning(f"Ignoring endpoint event without {SESSION_ID_PARAM}: {frame.data[:50]}")
            return

        self.session.establish(session_id, endpoint_url)

    async def _abort_handshake(self) -> None:
        if self._response is not None:
            await self._response.aclose()
            self._response = None
        self._frames = None

    async def __aenter__(self) -> SessionManager:
        await self.open()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
