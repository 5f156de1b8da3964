"""Local operations and the call router."""

from expo_mcp.tools.base import Tool
from expo_mcp.tools.lifecycle import Devices, build_lifecycle_registry, lifecycle_tools
from expo_mcp.tools.registry import ToolRegistry
from expo_mcp.tools.router import CallRouter, failure_envelope, success_envelope

__all__ = [
    "CallRouter",
    "Devices",
    "Tool",
    "ToolRegistry",
    "build_lifecycle_registry",
    "failure_envelope",
    "lifecycle_tools",
    "success_envelope",
]
