"""Peer session: spawn an MCP-speaking child process and call its tools over stdio."""

from __future__ import annotations

import asyncio
import itertools
import shutil
from pathlib import Path
from typing import Any

from loguru import logger

from expo_mcp import __version__
from expo_mcp.utils.exceptions import (
    CapabilityError,
    ExpoMcpError,
    NotReadyError,
    PeerCallError,
    ProtocolError,
    TerminationError,
    TransportError,
    ValidationError,
)
from expo_mcp.utils.process import cancel_tasks, child_env, read_output_line, terminate_process

from .correlation import DEFAULT_TIMEOUT_SECONDS, CorrelationTable
from .protocol import RpcFailure, RpcNotification, RpcRequest, RpcSuccess, WireMessage
from .serialization import safe_dict
from .transport import FramedTransport
from .types import CapabilityDescriptor, SessionState

DEFAULT_PROTOCOL_VERSION = "2024-11-05"
DEFAULT_SHUTDOWN_GRACE_SECONDS = 1.0
_EXIT_FLUSH_SECONDS = 1.0


def resolve_peer_command(command: str, args: list[str] | None = None) -> list[str]:
    """Resolve the peer binary via PATH, falling back to the Maestro install location."""
    binary = (command or "").strip() or "maestro"
    resolved = shutil.which(binary)
    if resolved is None and binary == "maestro":
        fallback = Path.home() / ".maestro" / "bin" / "maestro"
        if fallback.exists():
            resolved = str(fallback)
    return [resolved or binary, *(args or [])]


class PeerSession:
    """
    One long-lived peer process and the protocol state around it.

    Lifecycle: ``start`` spawns the process and runs the two-step handshake
    (``initialize`` then ``tools/list``); only then is the session ready. ``call``
    forwards one tool invocation; any number of calls may be in flight and responses
    are matched purely by correlation id. ``shutdown`` (or the peer exiting on its own)
    rejects every outstanding call and returns the session to a clean stopped state
    from which ``start`` may be retried.
    """

    def __init__(
        self,
        command: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        client_name: str = "expo-mcp",
        client_version: str = __version__,
        protocol_version: str = DEFAULT_PROTOCOL_VERSION,
        request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        shutdown_grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS,
        label: str = "maestro",
    ):
        if not command:
            raise ValueError("peer command must not be empty")
        self.command = list(command)
        self.cwd = cwd
        self.env = dict(env or {})
        self.client_name = client_name
        self.client_version = client_version
        self.protocol_version = protocol_version
        self.shutdown_grace_seconds = shutdown_grace_seconds
        self.label = label
        self.server_info: dict[str, Any] = {}
        self.last_exit_code: int | None = None

        self._state = SessionState.STOPPED
        self._process: asyncio.subprocess.Process | None = None
        self._transport: FramedTransport | None = None
        self._pending = CorrelationTable(request_timeout_seconds)
        self._capabilities: dict[str, CapabilityDescriptor] = {}
        self._ids = itertools.count(1)
        self._lifecycle_lock = asyncio.Lock()
        self._exit_watcher: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._closing = False

    @classmethod
    def from_config(cls, cfg: Any, *, cwd: str | None = None) -> "PeerSession":
        """Build a session from a MaestroConfig section."""
        return cls(
            resolve_peer_command(cfg.command, cfg.args),
            cwd=cwd,
            env=cfg.env,
            protocol_version=cfg.protocol_version,
            request_timeout_seconds=cfg.request_timeout_seconds,
            shutdown_grace_seconds=cfg.shutdown_grace_seconds,
        )

    # -- public surface -------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is SessionState.READY

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def request_timeout_seconds(self) -> float:
        return self._pending.timeout_seconds

    @property
    def capabilities(self) -> list[CapabilityDescriptor]:
        return list(self._capabilities.values())

    def get_capability(self, name: str) -> CapabilityDescriptor | None:
        return self._capabilities.get(name)

    async def start(self) -> None:
        """Spawn the peer and complete the handshake; no-op when already ready."""
        async with self._lifecycle_lock:
            if self._state is SessionState.READY:
                return
            self._state = SessionState.STARTING
            self._closing = False
            self._ids = itertools.count(1)
            try:
                await self._spawn()
            except TransportError:
                self._state = SessionState.STOPPED
                raise
            try:
                await self._handshake()
            except asyncio.CancelledError:
                await self._abort_start("startup cancelled")
                raise
            except ProtocolError as exc:
                await self._abort_start(exc.message)
                raise
            except ExpoMcpError as exc:
                await self._abort_start(exc.message)
                raise ProtocolError(f"{self.label} handshake failed: {exc.message}") from exc
            self._state = SessionState.READY
            logger.info(
                "[{}] session ready (pid {}, {} capabilities)",
                self.label,
                self.pid,
                len(self._capabilities),
            )

    async def call(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Invoke one declared capability and return the peer's result verbatim."""
        if self._state is not SessionState.READY:
            raise NotReadyError()
        if name not in self._capabilities:
            raise CapabilityError(name)
        if arguments is not None and not isinstance(arguments, dict):
            raise ValidationError("arguments must be an object", field="arguments")
        return await self._request("tools/call", {"name": name, "arguments": arguments or {}})

    async def shutdown(self) -> None:
        """Terminate the peer (SIGTERM, grace period, SIGKILL) and reject pending calls."""
        async with self._lifecycle_lock:
            proc = self._process
            if proc is None:
                return
            self._closing = True
            self._state = SessionState.STOPPING
            logger.info("[{}] shutting down (pid {})", self.label, proc.pid)
            self.last_exit_code = await terminate_process(proc, self.shutdown_grace_seconds)
            await self._teardown(TerminationError("shutdown requested", exit_code=self.last_exit_code))

    # -- internals ------------------------------------------------------

    async def _spawn(self) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=child_env(self.env),
            )
        except OSError as exc:
            raise TransportError(f"failed to start {self.label} ({self.command[0]}): {exc}") from exc
        assert proc.stdin is not None and proc.stdout is not None
        logger.debug("[{}] spawned pid {}: {}", self.label, proc.pid, " ".join(self.command))
        self._process = proc
        self._transport = FramedTransport(proc.stdout, proc.stdin, self._on_message, label=self.label)
        self._transport.start()
        if proc.stderr is not None:
            self._stderr_task = asyncio.create_task(self._pump_stderr(proc.stderr), name=f"{self.label}-stderr")
        self._exit_watcher = asyncio.create_task(self._watch_exit(proc), name=f"{self.label}-exit")

    async def _handshake(self) -> None:
        init = await self._request(
            "initialize",
            {
                "protocolVersion": self.protocol_version,
                "capabilities": {},
                "clientInfo": {"name": self.client_name, "version": self.client_version},
            },
        )
        if not isinstance(init, dict):
            raise ProtocolError(f"initialize returned {type(init).__name__}, expected an object")
        self.server_info = safe_dict(init.get("serverInfo"))
        await self._notify("notifications/initialized")
        self._capabilities = await self._discover()

    async def _discover(self) -> dict[str, CapabilityDescriptor]:
        discovered: dict[str, CapabilityDescriptor] = {}
        params: dict[str, Any] = {}
        seen_cursors: set[str] = set()
        while True:
            result = await self._request("tools/list", params)
            if not isinstance(result, dict):
                raise ProtocolError(f"tools/list returned {type(result).__name__}, expected an object")
            tools = result.get("tools")
            if not isinstance(tools, list):
                raise ProtocolError("tools/list result has no 'tools' list", details={"keys": sorted(result)})
            for raw in tools:
                descriptor = CapabilityDescriptor.from_payload(raw)
                if descriptor is None:
                    logger.warning("[{}] skipped capability without a name: {}", self.label, str(raw)[:200])
                    continue
                if descriptor.name in discovered:
                    logger.warning("[{}] duplicate capability '{}' ignored", self.label, descriptor.name)
                    continue
                discovered[descriptor.name] = descriptor
            cursor = result.get("nextCursor")
            if not isinstance(cursor, str) or not cursor:
                return discovered
            if cursor in seen_cursors:
                logger.warning("[{}] tools/list repeated cursor {!r}; stopping", self.label, cursor)
                return discovered
            seen_cursors.add(cursor)
            params = {"cursor": cursor}

    async def _request(self, method: str, params: dict[str, Any]) -> Any:
        transport = self._transport
        if transport is None:
            raise NotReadyError()
        request_id = next(self._ids)
        waiter = self._pending.register(request_id, method)
        try:
            await transport.send(RpcRequest(id=request_id, method=method, params=params))
        except TransportError as exc:
            self._pending.reject(request_id, exc)
        try:
            return await waiter
        except asyncio.CancelledError:
            self._pending.discard(request_id)
            raise

    async def _notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        transport = self._transport
        if transport is None:
            raise NotReadyError()
        await transport.send(RpcNotification(method=method, params=params or {}))

    def _on_message(self, message: WireMessage) -> None:
        if isinstance(message, RpcSuccess):
            if not self._pending.resolve(message.id, message.result):
                logger.warning("[{}] dropped response for unknown id {!r}", self.label, message.id)
            return
        if isinstance(message, RpcFailure):
            error = PeerCallError(message.error.message, rpc_code=message.error.code, data=message.error.data)
            if not self._pending.reject(message.id, error):
                logger.warning("[{}] dropped error for unknown id {!r}: {}", self.label, message.id, error.message)
            return
        logger.debug("[{}] ignored peer-initiated {}", self.label, message.method)

    async def _pump_stderr(self, stream: asyncio.StreamReader) -> None:
        while True:
            line = await read_output_line(stream)
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.debug("[{} stderr] {}", self.label, text)

    async def _watch_exit(self, proc: asyncio.subprocess.Process) -> None:
        code = await proc.wait()
        self.last_exit_code = code
        transport = self._transport
        reader = transport.reader_task if transport is not None else None
        if reader is not None and not reader.done():
            # let frames written just before exit reach their callers first
            await asyncio.wait({reader}, timeout=_EXIT_FLUSH_SECONDS)
        if self._closing or self._process is not proc:
            return
        logger.error("[{}] peer exited unexpectedly (exit code {})", self.label, code)
        await self._teardown(TerminationError(f"peer terminated unexpectedly (exit code {code})", exit_code=code))

    async def _abort_start(self, reason: str) -> None:
        logger.warning("[{}] startup failed: {}", self.label, reason)
        self._closing = True
        proc = self._process
        if proc is not None:
            self.last_exit_code = await terminate_process(proc, self.shutdown_grace_seconds)
        await self._teardown(ProtocolError(f"startup aborted: {reason}"))

    async def _teardown(self, error: ExpoMcpError) -> None:
        """Reject outstanding calls and release the process; safe to call repeatedly."""
        transport, stderr_task, watcher = self._transport, self._stderr_task, self._exit_watcher
        self._process = None
        self._transport = None
        self._stderr_task = None
        self._exit_watcher = None
        self._state = SessionState.STOPPED
        self._capabilities = {}
        self._pending.drain_all(error)
        if transport is not None:
            await transport.close()
        await cancel_tasks([task for task in (stderr_task, watcher) if task is not None])
