"""Utility functions for expo-mcp."""

from expo_mcp.utils.helpers import ensure_dir, get_data_path, get_download_path
from expo_mcp.utils.exceptions import (
    ExpoMcpError,
    ValidationError,
    NotFoundError,
    TimeoutError,
    TransportError,
    ProtocolError,
    NotReadyError,
    CapabilityError,
    RpcTimeoutError,
    TerminationError,
    PeerCallError,
    UnknownOperationError,
    ToolError,
    CommandError,
    ErrorCategory,
    classify_exception,
    sanitize_error_message,
)

__all__ = [
    "ensure_dir",
    "get_data_path",
    "get_download_path",
    "ExpoMcpError",
    "ValidationError",
    "NotFoundError",
    "TimeoutError",
    "TransportError",
    "ProtocolError",
    "NotReadyError",
    "CapabilityError",
    "RpcTimeoutError",
    "TerminationError",
    "PeerCallError",
    "UnknownOperationError",
    "ToolError",
    "CommandError",
    "ErrorCategory",
    "classify_exception",
    "sanitize_error_message",
]
