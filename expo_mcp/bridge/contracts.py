"""Runtime contract between the call router and a peer session."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .types import CapabilityDescriptor


@runtime_checkable
class ForwardTarget(Protocol):
    @property
    def ready(self) -> bool: ...

    @property
    def capabilities(self) -> list[CapabilityDescriptor]: ...

    async def call(self, name: str, arguments: dict[str, Any] | None = None) -> Any: ...
