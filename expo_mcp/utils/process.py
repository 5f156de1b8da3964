"""Async helpers for invoking platform command-line tools (xcrun, adb, emulator, tar)."""

from __future__ import annotations

import asyncio
import os
import shutil
import signal
from dataclasses import dataclass

from loguru import logger

from expo_mcp.utils.exceptions import CommandError, TimeoutError


@dataclass(slots=True)
class CommandResult:
    """Captured output of one finished command."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    *args: str,
    timeout: float = 60.0,
    check: bool = True,
    cwd: str | None = None,
) -> CommandResult:
    """
    Run a command to completion and capture its output.

    Raises CommandError when the binary is missing or (with check=True) exits non-zero,
    and TimeoutError when it does not finish within timeout seconds.
    """
    argv = [str(a) for a in args]
    logger.debug("exec: {}", " ".join(argv))
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    except FileNotFoundError as exc:
        raise CommandError(argv, None, f"{argv[0]}: command not found") from exc
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        proc.kill()
        await proc.wait()
        raise TimeoutError(argv[0], timeout) from exc
    result = CommandResult(
        args=argv,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=(stdout or b"").decode("utf-8", errors="replace"),
        stderr=(stderr or b"").decode("utf-8", errors="replace"),
    )
    if check and not result.ok:
        raise CommandError(argv, result.returncode, result.stderr or result.stdout)
    return result


def which(binary: str) -> str | None:
    """Return the absolute path of binary on PATH, or None."""
    return shutil.which(binary)


async def terminate_process(proc: asyncio.subprocess.Process, grace_seconds: float) -> int:
    """SIGTERM, wait up to grace_seconds, then SIGKILL. Returns the exit code."""
    if proc.returncode is not None:
        return proc.returncode
    try:
        proc.send_signal(signal.SIGTERM)
    except ProcessLookupError:
        return await proc.wait()
    try:
        return await asyncio.wait_for(proc.wait(), timeout=grace_seconds)
    except asyncio.TimeoutError:
        logger.warning("pid {} ignored SIGTERM for {}s; killing", proc.pid, grace_seconds)
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        return await proc.wait()


def child_env(extra: dict[str, str] | None = None) -> dict[str, str]:
    """Current environment merged with extra variables."""
    env = os.environ.copy()
    if extra:
        env.update({str(k): str(v) for k, v in extra.items()})
    return env


async def read_output_line(stream: asyncio.StreamReader, chunk_size: int = 64 * 1024) -> bytes:
    """Next line of child output; a line over the reader limit comes back in chunks."""
    try:
        return await stream.readline()
    except ValueError:
        return await stream.read(chunk_size)


async def cancel_tasks(tasks: list[asyncio.Task]) -> None:
    """Cancel background tasks (except the running one) and wait for them to finish."""
    current = asyncio.current_task()
    for task in tasks:
        if task is current or task.done():
            continue
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
