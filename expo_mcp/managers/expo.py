"""Expo development server process (``npx expo start``)."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from expo_mcp.utils.exceptions import TimeoutError, ToolError
from expo_mcp.utils.process import cancel_tasks, read_output_line, terminate_process

PLATFORMS = ("ios", "android")


def to_expo_url(url: str) -> str:
    """Rewrite a dev-server URL into the exp:// scheme Expo Go opens."""
    for scheme in ("http://", "https://"):
        if url.startswith(scheme):
            return "exp://" + url[len(scheme):]
    if url.startswith("exp://"):
        return url
    return f"exp://{url}"


class ExpoManager:
    """
    Owns at most one dev-server child process.

    The process is spawned in the app directory with stdout/stderr forwarded to the
    log at debug level; when it exits on its own the manager returns to "stopped".
    """

    def __init__(
        self,
        app_dir: Path,
        *,
        default_port: int = 8081,
        ready_timeout_seconds: float = 120.0,
        poll_interval_seconds: float = 1.0,
        stop_grace_seconds: float = 5.0,
        command: tuple[str, ...] = ("npx", "expo", "start"),
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.app_dir = Path(app_dir)
        self.default_port = default_port
        self.ready_timeout_seconds = ready_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.stop_grace_seconds = stop_grace_seconds
        self.command = command
        self._http_transport = http_transport
        self._process: asyncio.subprocess.Process | None = None
        self._tasks: list[asyncio.Task] = []
        self.port = default_port
        self.platform: str | None = None

    @classmethod
    def from_config(cls, config: Any) -> "ExpoManager":
        return cls(
            config.app_path,
            default_port=config.expo.port,
            ready_timeout_seconds=config.expo.ready_timeout_seconds,
            poll_interval_seconds=config.expo.poll_interval_seconds,
            stop_grace_seconds=config.expo.stop_grace_seconds,
        )

    @property
    def running(self) -> bool:
        return self._process is not None

    @property
    def url(self) -> str:
        return f"http://localhost:{self.port}"

    def status(self) -> str:
        return "running" if self.running else "stopped"

    async def launch(
        self,
        port: int | None = None,
        platform: str | None = None,
        wait_for_ready: bool = True,
        timeout_secs: float | None = None,
    ) -> dict[str, Any]:
        if self._process is not None:
            raise ToolError("launch_expo", "Expo server is already running. Stop it first.")
        if platform is not None and platform not in PLATFORMS:
            raise ToolError("launch_expo", f"unsupported platform: {platform}")
        port = port or self.default_port
        argv = [*self.command, "--port", str(port)]
        if platform:
            argv.append(f"--{platform}")

        logger.info("Starting Expo dev server in {}: {}", self.app_dir, " ".join(argv))
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(self.app_dir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, NotADirectoryError, PermissionError) as exc:
            raise ToolError("launch_expo", f"failed to start Expo dev server: {exc}") from exc

        self._process = proc
        self.port = port
        self.platform = platform
        self._tasks = [
            asyncio.create_task(self._pump(proc.stdout, "stdout")),
            asyncio.create_task(self._pump(proc.stderr, "stderr")),
            asyncio.create_task(self._watch_exit(proc)),
        ]

        if wait_for_ready:
            await self.wait_for_server(port, timeout_secs or self.ready_timeout_seconds)
        return {"url": f"http://localhost:{port}", "port": port, "platform": platform}

    async def wait_for_server(self, port: int, timeout_secs: float) -> None:
        """Poll ``/status`` until it answers 2xx; fail early if the process dies."""
        deadline = time.monotonic() + timeout_secs
        status_url = f"http://localhost:{port}/status"
        async with httpx.AsyncClient(timeout=5.0, transport=self._http_transport) as client:
            while time.monotonic() < deadline:
                if self._process is None:
                    raise ToolError("launch_expo", "Expo dev server exited before becoming ready")
                try:
                    response = await client.get(status_url)
                    if response.is_success:
                        logger.info("Expo dev server ready on port {}", port)
                        return
                except httpx.HTTPError:
                    pass
                await asyncio.sleep(self.poll_interval_seconds)
        raise TimeoutError(
            "expo readiness",
            timeout_secs,
            message=f"Expo server did not become ready within {timeout_secs:g} seconds",
        )

    async def stop(self) -> None:
        """Terminate the dev server (SIGTERM, grace period, SIGKILL). Idempotent."""
        proc = self._process
        if proc is None:
            return
        self._process = None
        self.platform = None
        code = await terminate_process(proc, self.stop_grace_seconds)
        logger.info("Expo dev server stopped (exit code {})", code)
        tasks, self._tasks = self._tasks, []
        await cancel_tasks(tasks)

    async def _pump(self, stream: asyncio.StreamReader | None, label: str) -> None:
        if stream is None:
            return
        while True:
            line = await read_output_line(stream)
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.debug("[expo {}] {}", label, text)

    async def _watch_exit(self, proc: asyncio.subprocess.Process) -> None:
        code = await proc.wait()
        if self._process is proc:
            logger.warning("Expo dev server exited with code {}", code)
            self._process = None
            self.platform = None
