"""JSON-RPC protocol layer."""

from .jsonrpc import (
    JsonRpcError,
    JsonRpcErrorCode,
    JsonRpcMessage,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    MessageKind,
    dumps,
    error_envelope,
    recover_id,
)

__all__ = [
    "JsonRpcError",
    "JsonRpcErrorCode",
    "JsonRpcMessage",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "MessageKind",
    "dumps",
    "error_envelope",
    "recover_id",
]
