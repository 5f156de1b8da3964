"""
Exception hierarchy and error handling utilities for expo-mcp.

Provides:
- Custom exception classes with error codes
- Error categorization (recoverable, retryable, fatal)
- Safe error message formatting (no sensitive data leak)
"""

from __future__ import annotations

import asyncio
import json
import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    RECOVERABLE = "recoverable"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"


class ExpoMcpError(Exception):
    """Base exception for all expo-mcp errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return self.message


class ValidationError(ExpoMcpError):
    """Input validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", category=ErrorCategory.VALIDATION, details=details)


class NotFoundError(ExpoMcpError):
    """Resource not found error."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            code="NOT_FOUND",
            category=ErrorCategory.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class TimeoutError(ExpoMcpError):
    """Operation timeout error."""

    def __init__(self, operation: str, timeout_seconds: float, message: str | None = None):
        super().__init__(
            message or f"Operation '{operation}' timed out after {timeout_seconds}s",
            code="TIMEOUT",
            category=ErrorCategory.TIMEOUT,
            details={"operation": operation, "timeout_seconds": timeout_seconds},
        )


class TransportError(ExpoMcpError):
    """Writing to (or spawning) the peer process failed."""

    def __init__(self, message: str):
        super().__init__(message, code="TRANSPORT_ERROR", category=ErrorCategory.RETRYABLE)


class ProtocolError(ExpoMcpError):
    """Handshake failed or the peer answered with an unexpected shape."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, code="PROTOCOL_ERROR", category=ErrorCategory.FATAL, details=details)


class NotReadyError(ExpoMcpError):
    """Call issued before the peer session completed its handshake."""

    def __init__(self, message: str = "peer session is not ready"):
        super().__init__(message, code="NOT_READY", category=ErrorCategory.RECOVERABLE)


class CapabilityError(ExpoMcpError):
    """Call issued against an operation the peer never declared."""

    def __init__(self, name: str):
        super().__init__(
            f"unknown capability: {name}",
            code="UNKNOWN_CAPABILITY",
            category=ErrorCategory.NOT_FOUND,
            details={"name": name},
        )


class RpcTimeoutError(TimeoutError):
    """No response arrived within the call ceiling."""

    def __init__(self, method: str, request_id: int, timeout_seconds: float):
        super().__init__(
            method,
            timeout_seconds,
            message=f"request '{method}' (id {request_id}) timed out after {timeout_seconds}s",
        )
        self.details["request_id"] = request_id


class TerminationError(ExpoMcpError):
    """The peer process went away while calls were outstanding."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(
            message,
            code="PEER_TERMINATED",
            category=ErrorCategory.RETRYABLE,
            details={"exit_code": exit_code},
        )


class PeerCallError(ExpoMcpError):
    """The peer answered a request with an error payload."""

    def __init__(self, message: str, rpc_code: Any = None, data: Any = None):
        details: dict[str, Any] = {}
        if rpc_code is not None:
            details["rpc_code"] = rpc_code
        if data is not None:
            details["data"] = data
        super().__init__(message, code="PEER_ERROR", category=ErrorCategory.RECOVERABLE, details=details)
        self.rpc_code = rpc_code


class UnknownOperationError(ExpoMcpError):
    """Inbound name is neither a local operation nor forwardable."""

    def __init__(self, name: str):
        super().__init__(
            f"no such operation: {name}",
            code="UNKNOWN_OPERATION",
            category=ErrorCategory.NOT_FOUND,
            details={"name": name},
        )


class ToolError(ExpoMcpError):
    """Local operation failed a precondition or its own logic."""

    def __init__(self, tool_name: str, message: str, is_recoverable: bool = True):
        category = ErrorCategory.RECOVERABLE if is_recoverable else ErrorCategory.FATAL
        super().__init__(
            message,
            code="TOOL_ERROR",
            category=category,
            details={"tool_name": tool_name, "is_recoverable": is_recoverable},
        )


class CommandError(ExpoMcpError):
    """An external platform tool exited unsuccessfully."""

    def __init__(self, command: list[str], returncode: int | None, stderr: str = ""):
        tail = stderr.strip()[-500:]
        message = f"command failed ({returncode}): {' '.join(command)}"
        if tail:
            message += f": {tail}"
        super().__init__(
            message,
            code="COMMAND_FAILED",
            category=ErrorCategory.RECOVERABLE,
            details={"command": command, "returncode": returncode},
        )
        self.returncode = returncode
        self.stderr = stderr


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"sk-[a-zA-Z0-9]{20,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: Exception) -> tuple[str, ErrorCategory, bool]:
    """
    Classify an exception and return (error_code, category, should_retry).
    """
    if isinstance(exc, ExpoMcpError):
        return exc.code, exc.category, exc.category == ErrorCategory.RETRYABLE

    if isinstance(exc, FileNotFoundError):
        return "FILE_NOT_FOUND", ErrorCategory.NOT_FOUND, False

    if isinstance(exc, asyncio.TimeoutError):
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if isinstance(exc, (BrokenPipeError, ConnectionError)):
        return "CONNECTION_ERROR", ErrorCategory.RETRYABLE, True

    if isinstance(exc, json.JSONDecodeError):
        return "JSON_PARSE_ERROR", ErrorCategory.VALIDATION, False

    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return "INVALID_VALUE", ErrorCategory.VALIDATION, False

    exc_str = str(exc).lower()
    if "timeout" in exc_str or "timed out" in exc_str:
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if "not found" in exc_str:
        return "NOT_FOUND", ErrorCategory.NOT_FOUND, False

    return "INTERNAL_ERROR", ErrorCategory.FATAL, False
