"""Outbound sender: local messages to the session-scoped POST endpoint."""

from __future__ import annotations

import logging

import httpx

from .config import ProxyConfig
from .errors import NoSessionError, RemoteError, TransportError
from .protocol.jsonrpc import JsonRpcMessage
from .session import SESSION_ID_PARAM, Session

logger = logging.getLogger(__name__)


class OutboundSender:
    """POSTs one message at a time on behalf of the active session.

    No retries: a failed send is reported to the caller, which decides
    what to do with it.
    """

    def __init__(self, config: ProxyConfig, session: Session, client: httpx.AsyncClient) -> None:
        self.config = config
        self.session = session
        self._client = client

    def message_url(self, session_id: str) -> httpx.URL:
        """URL a message for ``session_id`` is posted to."""
        if self.config.use_advertised_endpoint and self.session.endpoint_url is not None:
            return self.session.endpoint_url
        return self.config.url.copy_with(params={SESSION_ID_PARAM: session_id})

    async def send(self, message: JsonRpcMessage) -> None:
        """Deliver ``message`` to the remote endpoint.

        Raises:
            NoSessionError: If no session is active, or the session ended
                while the request was in flight
            RemoteError: If the server answers with a non-2xx status
            TransportError: If the request fails at the connection level
        """
        session_id = self.session.require_id()

        body = message.to_json().encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Content-Length": str(len(body)),
        }

        logger.debug(f"Sending {message!r}")
        try:
            response = await self._client.post(
                self.message_url(session_id), content=body, headers=headers
            )
        except httpx.TransportError as e:
            raise TransportError(f"Failed to send message: {e}") from e

        if not self.session.is_active:
            raise NoSessionError("Session ended while sending")

        if not response.is_success:
            raise RemoteError(response.status_code, response.text)
