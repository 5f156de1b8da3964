"""Request correlation table: correlation id -> pending completion."""

from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from expo_mcp.utils.exceptions import RpcTimeoutError

from .types import PendingCall

DEFAULT_TIMEOUT_SECONDS = 30.0


class CorrelationTable:
    """
    Single-writer map of outstanding requests.

    Every registered id settles exactly once: by ``resolve``, ``reject``, its timeout,
    or ``drain_all``. The entry is always removed before its future is completed, so
    code running in a completion callback sees the table without it. Settling an
    unknown or already-settled id is a silent no-op.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout_seconds = timeout_seconds
        self._pending: dict[int, PendingCall] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    @property
    def pending_ids(self) -> list[int]:
        return list(self._pending)

    def register(self, request_id: int, method: str = "", timeout_seconds: float | None = None) -> asyncio.Future[Any]:
        """Allocate a pending slot for request_id and arm its timeout."""
        if request_id in self._pending:
            raise RuntimeError(f"correlation id {request_id} is already registered")
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        entry = PendingCall(id=request_id, method=method, future=future)
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        if timeout and timeout > 0:
            entry.timer = loop.call_later(timeout, self._expire, request_id, timeout)
        self._pending[request_id] = entry
        return future

    def resolve(self, request_id: Any, value: Any) -> bool:
        entry = self._take(request_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_result(value)
        return True

    def reject(self, request_id: Any, error: BaseException) -> bool:
        entry = self._take(request_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_exception(error)
        return True

    def discard(self, request_id: Any) -> None:
        """Forget an entry whose caller stopped waiting (task cancelled)."""
        self._take(request_id)

    def drain_all(self, error: BaseException) -> int:
        """Reject every pending entry with error and clear the table."""
        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            if entry.timer is not None:
                entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(error)
        if entries:
            logger.debug("drained {} pending call(s): {}", len(entries), error)
        return len(entries)

    def _take(self, request_id: Any) -> PendingCall | None:
        entry = self._pending.pop(request_id, None)
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()
        return entry

    def _expire(self, request_id: int, timeout: float) -> None:
        entry = self._pending.get(request_id)
        if entry is None:
            return
        logger.warning("request '{}' (id {}) timed out after {}s", entry.method, request_id, timeout)
        self.reject(request_id, RpcTimeoutError(entry.method, request_id, timeout))
