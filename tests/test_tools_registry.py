from typing import Any

import pytest

from expo_mcp.tools.base import Tool
from expo_mcp.tools.registry import ToolRegistry
from expo_mcp.utils.exceptions import UnknownOperationError, ValidationError


class _PortTool(Tool):
    def __init__(self, name: str = "launch"):
        self._name = name
        self.received: list[dict] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "dummy"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                "platform": {"type": "string", "enum": ["ios", "android"]},
                "wait": {"type": "boolean"},
            },
            "required": ["platform"],
        }

    async def execute(self, **kwargs: Any) -> str:
        self.received.append(kwargs)
        return "ok"


def test_validate_params_accepts_valid_input():
    assert _PortTool().validate_params({"platform": "ios", "port": 8081, "wait": True}) == []


def test_validate_params_reports_missing_required():
    assert _PortTool().validate_params({}) == ["missing required parameter 'platform'"]


def test_validate_params_rejects_bool_as_integer():
    errors = _PortTool().validate_params({"platform": "ios", "port": True})
    assert errors == ["parameter 'port' should be integer"]


def test_validate_params_checks_enum_and_range():
    errors = _PortTool().validate_params({"platform": "web", "port": 70000})
    assert "parameter 'platform' must be one of ios, android" in errors
    assert "parameter 'port' must be <= 65535" in errors


def test_validate_params_ignores_undeclared_and_null_values():
    assert _PortTool().validate_params({"platform": "android", "extra": 1, "port": None}) == []


def test_to_schema_uses_mcp_field_names():
    schema = _PortTool().to_schema()
    assert schema["name"] == "launch"
    assert schema["inputSchema"]["required"] == ["platform"]


def test_registry_keeps_registration_order():
    registry = ToolRegistry()
    registry.register(_PortTool("b"))
    registry.register(_PortTool("a"))
    assert registry.tool_names == ["b", "a"]
    assert "a" in registry
    assert len(registry) == 2
    assert [d["name"] for d in registry.get_definitions()] == ["b", "a"]


@pytest.mark.asyncio
async def test_execute_passes_validated_params():
    tool = _PortTool()
    registry = ToolRegistry()
    registry.register(tool)
    assert await registry.execute("launch", {"platform": "ios"}) == "ok"
    assert tool.received == [{"platform": "ios"}]


@pytest.mark.asyncio
async def test_execute_rejects_invalid_params_without_running():
    tool = _PortTool()
    registry = ToolRegistry()
    registry.register(tool)
    with pytest.raises(ValidationError, match="Invalid parameters for 'launch'"):
        await registry.execute("launch", {"port": 0})
    assert tool.received == []


@pytest.mark.asyncio
async def test_execute_unknown_tool():
    with pytest.raises(UnknownOperationError, match="no such operation: nope"):
        await ToolRegistry().execute("nope", {})
