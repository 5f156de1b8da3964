"""Call router: local lifecycle operations plus forwarded peer capabilities behind one contract."""

from __future__ import annotations

from typing import Any

from loguru import logger

from expo_mcp.bridge.contracts import ForwardTarget
from expo_mcp.tools.registry import ToolRegistry
from expo_mcp.utils.exceptions import (
    ExpoMcpError,
    UnknownOperationError,
    classify_exception,
    sanitize_error_message,
)

DEFAULT_FORWARD_PREFIX = "maestro_"

Envelope = dict[str, Any]


def success_envelope(value: Any) -> Envelope:
    return {"success": True, "value": value}


def failure_envelope(message: str) -> Envelope:
    return {"success": False, "error": message}


class CallRouter:
    """
    Resolves an inbound operation name against the local registry first, then the
    forwarding prefix. Every outcome, including unknown names and exceptions from
    either side, comes back as exactly one envelope; ``dispatch`` never raises
    (cancellation aside).
    """

    def __init__(
        self,
        registry: ToolRegistry,
        peer: ForwardTarget | None = None,
        *,
        forward_prefix: str = DEFAULT_FORWARD_PREFIX,
        forward_label: str = "Maestro",
    ):
        if not forward_prefix:
            raise ValueError("forward_prefix must not be empty")
        self.registry = registry
        self.peer = peer
        self.forward_prefix = forward_prefix
        self.forward_label = forward_label

    def is_forwarded(self, name: str) -> bool:
        return name.startswith(self.forward_prefix) and not self.registry.has(name)

    def list_operations(self) -> list[dict[str, Any]]:
        """Local definitions followed by the peer's capabilities under the forwarding prefix."""
        operations = self.registry.get_definitions()
        if self.peer is None or not self.peer.ready:
            return operations
        for capability in self.peer.capabilities:
            operations.append(
                {
                    "name": f"{self.forward_prefix}{capability.name}",
                    "description": f"[{self.forward_label}] {capability.description}".rstrip(),
                    "inputSchema": capability.input_schema,
                }
            )
        return operations

    async def dispatch(self, name: str, arguments: dict[str, Any] | None = None) -> Envelope:
        args = arguments if arguments is not None else {}
        try:
            value = await self._execute(name, args)
        except ExpoMcpError as exc:
            logger.warning("operation {} failed with {}: {}", name, exc.code, exc.message)
            return failure_envelope(sanitize_error_message(exc.message))
        except Exception as exc:
            code, _, _ = classify_exception(exc)
            sanitized = sanitize_error_message(str(exc) or type(exc).__name__)
            logger.exception("operation {} failed with [{}]: {}", name, code, sanitized)
            return failure_envelope(sanitized)
        return success_envelope(value)

    async def _execute(self, name: str, args: dict[str, Any]) -> Any:
        if self.registry.has(name):
            return await self.registry.execute(name, args)
        if name.startswith(self.forward_prefix) and self.peer is not None:
            target = name[len(self.forward_prefix):]
            if target:
                logger.debug("forwarding {} -> {}", name, target)
                return await self.peer.call(target, args)
        raise UnknownOperationError(name)
