"""Wire models for the newline-delimited JSON-RPC peer protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

JSONRPC_VERSION = "2.0"


@dataclass(slots=True)
class RpcError:
    """Normalized error payload of a failure response."""

    message: str
    code: Any = None
    data: Any = None


@dataclass(slots=True)
class RpcRequest:
    """Request frame; expects exactly one response with the same id."""

    id: int
    method: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RpcNotification:
    """Request frame without id; never answered."""

    method: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RpcSuccess:
    """Response frame carrying a result value."""

    id: Any
    result: Any = None


@dataclass(slots=True)
class RpcFailure:
    """Response frame carrying an error description."""

    id: Any
    error: RpcError


WireMessage = Union[RpcRequest, RpcNotification, RpcSuccess, RpcFailure]
