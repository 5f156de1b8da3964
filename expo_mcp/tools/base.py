"""Base class for locally implemented operations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Tool(ABC):
    """
    Abstract base class for local operations.

    A tool declares a name, a description and a JSON-schema input shape, and
    implements ``execute``. Results are plain JSON-compatible values; failures
    are raised and normalized by the router.
    """

    _TYPE_MAP = {
        "string": str,
        "integer": int,
        "number": (int, float),
        "boolean": bool,
        "array": list,
        "object": dict,
    }

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name used in calls."""

    @property
    @abstractmethod
    def description(self) -> str:
        """What the tool does."""

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""

    @abstractmethod
    async def execute(self, **kwargs: Any) -> Any:
        """Run the tool with validated parameters."""

    def validate_params(self, params: dict[str, Any]) -> list[str]:
        """Validate params against the declared schema; return a list of problems."""
        schema = self.parameters or {}
        properties = schema.get("properties", {}) or {}
        errors: list[str] = []
        for key in schema.get("required", []) or []:
            if key not in params or params[key] is None:
                errors.append(f"missing required parameter '{key}'")
        for key, value in params.items():
            spec = properties.get(key)
            if spec is None or value is None:
                continue
            errors.extend(self._validate_value(key, value, spec))
        return errors

    def _validate_value(self, key: str, value: Any, spec: dict[str, Any]) -> list[str]:
        expected = spec.get("type")
        py_type = self._TYPE_MAP.get(expected) if isinstance(expected, str) else None
        if py_type is not None:
            # bool is an int subclass; do not let True pass as a number
            if isinstance(value, bool) and expected in ("integer", "number"):
                return [f"parameter '{key}' should be {expected}"]
            if not isinstance(value, py_type):
                return [f"parameter '{key}' should be {expected}"]
        enum = spec.get("enum")
        if enum and value not in enum:
            return [f"parameter '{key}' must be one of {', '.join(map(str, enum))}"]
        errors: list[str] = []
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if "minimum" in spec and value < spec["minimum"]:
                errors.append(f"parameter '{key}' must be >= {spec['minimum']}")
            if "maximum" in spec and value > spec["maximum"]:
                errors.append(f"parameter '{key}' must be <= {spec['maximum']}")
        return errors

    def to_schema(self) -> dict[str, Any]:
        """MCP tool definition."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.parameters,
        }
