"""JSON-RPC 2.0 message types.

Messages are passed through the proxy unmodified. The typed models are used
only to classify a decoded value at the boundary; the raw value is what gets
serialized again, so anything that does not match a known shape still flows
through as an ``opaque`` message.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import ParseError

# =============================================================================
# JSON-RPC 2.0 Base Types
# =============================================================================


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"] = "2.0"
    id: str | int
    method: str
    params: dict[str, Any] | list[Any] | None = None


class JsonRpcNotification(BaseModel):
    """JSON-RPC 2.0 notification (no response expected)."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: dict[str, Any] | list[Any] | None = None


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any | None = None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: str | int | None
    result: Any | None = None
    error: JsonRpcError | None = None


class JsonRpcErrorCode:
    """Standard JSON-RPC 2.0 error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


# =============================================================================
# Passthrough message
# =============================================================================


class MessageKind(str, Enum):
    """Shape of a decoded message."""

    REQUEST = "request"
    NOTIFICATION = "notification"
    RESPONSE = "response"
    OPAQUE = "opaque"


def _classify(payload: Any) -> MessageKind:
    if not isinstance(payload, dict) or payload.get("jsonrpc") != "2.0":
        return MessageKind.OPAQUE

    if "method" in payload:
        model: type[BaseModel] = JsonRpcRequest if "id" in payload else JsonRpcNotification
        kind = MessageKind.REQUEST if "id" in payload else MessageKind.NOTIFICATION
    elif "result" in payload or "error" in payload:
        model, kind = JsonRpcResponse, MessageKind.RESPONSE
    else:
        return MessageKind.OPAQUE

    try:
        model.model_validate(payload)
    except ValidationError:
        return MessageKind.OPAQUE
    return kind


class JsonRpcMessage:
    """A decoded message tagged with its JSON-RPC shape."""

    __slots__ = ("kind", "payload")

    def __init__(self, payload: Any, kind: MessageKind | None = None) -> None:
        self.payload = payload
        self.kind = kind if kind is not None else _classify(payload)

    @classmethod
    def from_json(cls, text: str) -> JsonRpcMessage:
        """Decode a JSON document.

        Raises:
            ParseError: If the text is not valid JSON
        """
        try:
            payload = json.loads(text)
        except (ValueError, RecursionError) as e:
            raise ParseError(f"Parse error: {e}") from e
        return cls(payload)

    @property
    def id(self) -> Any:
        """The message id, or None when absent."""
        if isinstance(self.payload, dict):
            return self.payload.get("id")
        return None

    @property
    def method(self) -> str | None:
        if self.kind in (MessageKind.REQUEST, MessageKind.NOTIFICATION):
            return self.payload["method"]
        return None

    def to_json(self) -> str:
        """Serialize compactly, leaving the payload untouched."""
        return dumps(self.payload)

    def __repr__(self) -> str:
        return f"JsonRpcMessage(kind={self.kind.value}, id={self.id!r}, method={self.method!r})"


def dumps(value: Any) -> str:
    """Compact JSON serialization used on every output path."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def error_envelope(
    request_id: Any, message: str, code: int = JsonRpcErrorCode.INTERNAL_ERROR
) -> str:
    """Build a single-line JSON-RPC error response."""
    response = JsonRpcResponse(id=request_id, error=JsonRpcError(code=code, message=message))
    return dumps(response.model_dump(exclude={"result": True, "error": {"data"}}))


def recover_id(line: str) -> Any:
    """Best-effort id extraction from a raw input line."""
    try:
        payload = json.loads(line)
    except (ValueError, RecursionError):
        return None
    if isinstance(payload, dict):
        request_id = payload.get("id")
        if isinstance(request_id, str | int) and not isinstance(request_id, bool):
            return request_id
    return None
