"""Registry of locally implemented operations."""

from typing import Any

from expo_mcp.tools.base import Tool
from expo_mcp.utils.exceptions import UnknownOperationError, ValidationError


class ToolRegistry:
    """
    Static table of local operations keyed by name.

    Populated once at startup; the router consults it before considering
    forwarding.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool (a later registration under the same name replaces it)."""
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get_definitions(self) -> list[dict[str, Any]]:
        """All tool definitions in MCP list_tools shape."""
        return [tool.to_schema() for tool in self._tools.values()]

    async def execute(self, name: str, params: dict[str, Any]) -> Any:
        """
        Validate params and run the named tool.

        Raises:
            UnknownOperationError: If no tool has that name.
            ValidationError: If params violate the tool's schema.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownOperationError(name)
        if not isinstance(params, dict):
            raise ValidationError(f"arguments for '{name}' must be an object", field="arguments")
        errors = tool.validate_params(params)
        if errors:
            raise ValidationError(f"Invalid parameters for '{name}': " + "; ".join(errors))
        return await tool.execute(**params)

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
