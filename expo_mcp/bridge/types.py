"""Types for the peer session."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SessionState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    READY = "ready"
    STOPPING = "stopping"


@dataclass(frozen=True, slots=True)
class CapabilityDescriptor:
    """One operation the peer declares it can execute."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    @classmethod
    def from_payload(cls, raw: Any) -> "CapabilityDescriptor | None":
        if not isinstance(raw, dict):
            return None
        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            return None
        schema = raw.get("inputSchema")
        return cls(
            name=name,
            description=str(raw.get("description") or ""),
            input_schema=schema if isinstance(schema, dict) else {"type": "object", "properties": {}},
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}


@dataclass(slots=True)
class PendingCall:
    """One in-flight request awaiting its response."""

    id: int
    method: str
    future: asyncio.Future[Any]
    created_at: float = field(default_factory=time.monotonic)
    timer: asyncio.TimerHandle | None = None
