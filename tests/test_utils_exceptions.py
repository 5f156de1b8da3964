"""Tests for expo_mcp.utils.exceptions module."""

from __future__ import annotations

import asyncio
import json

from expo_mcp.utils.exceptions import (
    CapabilityError,
    CommandError,
    ErrorCategory,
    ExpoMcpError,
    NotFoundError,
    NotReadyError,
    PeerCallError,
    RpcTimeoutError,
    TerminationError,
    TimeoutError,
    ToolError,
    ValidationError,
    classify_exception,
    sanitize_error_message,
)


class TestExceptionClasses:
    """Test custom exception classes."""

    def test_base_error_to_dict(self) -> None:
        exc = ExpoMcpError("test message", code="TEST_CODE")
        assert exc.to_dict() == {
            "error": "TEST_CODE",
            "message": "test message",
            "category": ErrorCategory.FATAL.value,
            "details": {},
        }

    def test_validation_error_with_field(self) -> None:
        exc = ValidationError("Invalid input", field="port")
        assert exc.code == "VALIDATION_ERROR"
        assert exc.category == ErrorCategory.VALIDATION
        assert exc.details == {"field": "port"}

    def test_not_found_error(self) -> None:
        exc = NotFoundError("simulator", "iPhone 99")
        assert exc.code == "NOT_FOUND"
        assert str(exc) == "simulator not found: iPhone 99"

    def test_timeout_error_default_message(self) -> None:
        exc = TimeoutError("boot", 30.0)
        assert exc.category == ErrorCategory.TIMEOUT
        assert "30.0s" in exc.message

    def test_rpc_timeout_carries_request_id(self) -> None:
        exc = RpcTimeoutError("tools/call", 7, 0.5)
        assert isinstance(exc, TimeoutError)
        assert exc.details["request_id"] == 7
        assert "(id 7)" in exc.message

    def test_peer_call_error_keeps_rpc_code(self) -> None:
        exc = PeerCallError("boom", rpc_code=-32000, data={"hint": "x"})
        assert exc.rpc_code == -32000
        assert exc.details == {"rpc_code": -32000, "data": {"hint": "x"}}

    def test_termination_error_is_retryable(self) -> None:
        exc = TerminationError("maestro exited", exit_code=1)
        assert exc.category == ErrorCategory.RETRYABLE
        assert exc.details == {"exit_code": 1}

    def test_not_ready_default_message(self) -> None:
        assert NotReadyError().message == "peer session is not ready"

    def test_capability_error(self) -> None:
        assert str(CapabilityError("swipe")) == "unknown capability: swipe"

    def test_tool_error_recoverable(self) -> None:
        exc = ToolError("launch_expo", "already running")
        assert exc.code == "TOOL_ERROR"
        assert exc.category == ErrorCategory.RECOVERABLE

    def test_tool_error_fatal(self) -> None:
        exc = ToolError("launch_expo", "no npx", is_recoverable=False)
        assert exc.category == ErrorCategory.FATAL

    def test_command_error_includes_stderr_tail(self) -> None:
        exc = CommandError(["xcrun", "simctl", "boot", "X"], 149, "Unable to boot device\n")
        assert exc.returncode == 149
        assert exc.message == "command failed (149): xcrun simctl boot X: Unable to boot device"


class TestSanitizeErrorMessage:
    """Test sanitize_error_message function."""

    def test_no_sensitive_info(self) -> None:
        assert sanitize_error_message("Operation failed") == "Operation failed"

    def test_sanitize_api_key(self) -> None:
        result = sanitize_error_message("API key: sk-1234567890abcdefghijklmnop")
        assert "sk-1234567890" not in result
        assert "[REDACTED]" in result

    def test_sanitize_password(self) -> None:
        result = sanitize_error_message("Password: mySecret123")
        assert "mySecret123" not in result

    def test_sanitize_bearer(self) -> None:
        result = sanitize_error_message("header Bearer abc.def-ghi", replacement="[HIDDEN]")
        assert "abc.def" not in result
        assert "[HIDDEN]" in result


class TestClassifyException:
    """Test classify_exception function."""

    def test_classify_own_error(self) -> None:
        assert classify_exception(TerminationError("gone")) == ("PEER_TERMINATED", ErrorCategory.RETRYABLE, True)

    def test_classify_file_not_found(self) -> None:
        assert classify_exception(FileNotFoundError("npx")) == ("FILE_NOT_FOUND", ErrorCategory.NOT_FOUND, False)

    def test_classify_asyncio_timeout(self) -> None:
        assert classify_exception(asyncio.TimeoutError()) == ("TIMEOUT", ErrorCategory.TIMEOUT, True)

    def test_classify_broken_pipe(self) -> None:
        code, _, should_retry = classify_exception(BrokenPipeError())
        assert code == "CONNECTION_ERROR"
        assert should_retry is True

    def test_classify_json_decode_error(self) -> None:
        code, category, _ = classify_exception(json.JSONDecodeError("Invalid JSON", "", 0))
        assert code == "JSON_PARSE_ERROR"
        assert category == ErrorCategory.VALIDATION

    def test_classify_value_error(self) -> None:
        assert classify_exception(ValueError("bad"))[0] == "INVALID_VALUE"

    def test_classify_timeout_from_message(self) -> None:
        assert classify_exception(RuntimeError("Request timed out"))[0] == "TIMEOUT"

    def test_classify_not_found_from_message(self) -> None:
        assert classify_exception(RuntimeError("device not found"))[0] == "NOT_FOUND"

    def test_classify_generic_exception(self) -> None:
        assert classify_exception(RuntimeError("Unknown")) == ("INTERNAL_ERROR", ErrorCategory.FATAL, False)
