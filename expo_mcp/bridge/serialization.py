"""Serialization helpers for peer RPC frames."""

from __future__ import annotations

import json
from typing import Any

from .protocol import (
    JSONRPC_VERSION,
    RpcError,
    RpcFailure,
    RpcNotification,
    RpcRequest,
    RpcSuccess,
    WireMessage,
)


def safe_dict(value: Any) -> dict[str, Any]:
    """Return the value when dict-like, otherwise an empty dict."""
    return value if isinstance(value, dict) else {}


def encode_message(message: RpcRequest | RpcNotification) -> str:
    """Encode an outgoing frame into one line of JSON (no terminator)."""
    payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": message.method, "params": message.params}
    if isinstance(message, RpcRequest):
        payload["id"] = message.id
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def normalize_rpc_error(error: Any) -> RpcError:
    """Normalize unknown error payloads into RpcError."""
    if isinstance(error, str) and error.strip():
        return RpcError(message=error.strip())
    row = safe_dict(error)
    message = row.get("message")
    if not isinstance(message, str) or not message:
        message = json.dumps(error, ensure_ascii=False, default=str)
    return RpcError(message=message, code=row.get("code"), data=row.get("data"))


def decode_message(payload: Any) -> WireMessage:
    """
    Decode one parsed frame into its tagged variant.

    Discriminated by presence of ``method`` (request/notification), then ``error``,
    then ``result``. Raises ValueError for anything else.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"frame is not an object: {type(payload).__name__}")
    method = payload.get("method")
    if isinstance(method, str):
        params = safe_dict(payload.get("params"))
        if "id" in payload and payload["id"] is not None:
            return RpcRequest(id=payload["id"], method=method, params=params)
        return RpcNotification(method=method, params=params)
    if "id" not in payload:
        raise ValueError("response frame has no id")
    if payload.get("error") is not None:
        return RpcFailure(id=payload["id"], error=normalize_rpc_error(payload["error"]))
    if "result" in payload:
        return RpcSuccess(id=payload["id"], result=payload["result"])
    raise ValueError("frame has neither method, result nor error")
