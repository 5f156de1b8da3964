"""Android emulator control through the ``emulator`` and ``adb`` tools."""

from __future__ import annotations

import asyncio
import re
import time
from typing import Any

from loguru import logger

from expo_mcp.managers.downloads import DownloadCache
from expo_mcp.managers.expo import to_expo_url
from expo_mcp.utils.exceptions import (
    CommandError,
    NotFoundError,
    TimeoutError,
    ToolError,
)
from expo_mcp.utils.process import cancel_tasks, read_output_line, run_command, terminate_process

EXPO_GO_PACKAGE = "host.exp.exponent"

_VERSION_NAME = re.compile(r"versionName=(\S+)")


def parse_emulator_serial(adb_devices_output: str) -> str | None:
    """First ``emulator-NNNN`` serial in the ``device`` state from ``adb devices``."""
    for line in adb_devices_output.strip().splitlines()[1:]:
        parts = line.split("\t")
        if len(parts) >= 2 and parts[0].startswith("emulator") and parts[1].strip() == "device":
            return parts[0].strip()
    return None


class EmulatorManager:
    def __init__(
        self,
        downloads: DownloadCache,
        *,
        expo_go_version: str = "2.32.13",
        apk_url: str = "https://d1ahtucjixef4r.cloudfront.net/Exponent-2.32.13.apk",
        poll_interval_seconds: float = 2.0,
        settle_seconds: float = 3.0,
        stop_grace_seconds: float = 2.0,
    ):
        self.downloads = downloads
        self.expo_go_version = expo_go_version
        self.apk_url = apk_url
        self.poll_interval_seconds = poll_interval_seconds
        self.settle_seconds = settle_seconds
        self.stop_grace_seconds = stop_grace_seconds
        self._process: asyncio.subprocess.Process | None = None
        self._tasks: list[asyncio.Task] = []
        self.current_device: str | None = None

    async def list_avds(self) -> list[str]:
        try:
            result = await run_command("emulator", "-list-avds")
        except CommandError as exc:
            if exc.returncode is None:
                raise ToolError(
                    "start_emulator",
                    "Android emulator not found. Make sure ANDROID_HOME is set and emulator is in PATH.",
                ) from exc
            raise
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    async def get_device_serial(self) -> str | None:
        result = await run_command("adb", "devices", check=False)
        if not result.ok:
            return None
        return parse_emulator_serial(result.stdout)

    async def get_running_emulator(self) -> str | None:
        """AVD name of the running emulator, "running" if it cannot be read, or None."""
        serial = await self.get_device_serial()
        if serial is None:
            return None
        result = await run_command("adb", "-s", serial, "emu", "avd", "name", check=False)
        lines = result.stdout.strip().splitlines() if result.ok else []
        name = lines[0].strip() if lines else ""
        return name or "running"

    async def start(
        self,
        device_name: str | None = None,
        wait_for_boot: bool = True,
        timeout_secs: float = 120.0,
    ) -> str:
        if self._process is not None and self.current_device:
            if device_name and device_name != self.current_device:
                raise ToolError(
                    "start_emulator",
                    f"A different emulator is already running: {self.current_device}. Stop it first.",
                )
            return self.current_device

        running = await self.get_running_emulator()
        if running:
            if device_name and running != device_name:
                raise ToolError("start_emulator", "A different emulator is already running. Stop it first.")
            self.current_device = running
            return running

        avds = await self.list_avds()
        if device_name:
            if device_name not in avds:
                raise NotFoundError("emulator", f"{device_name} (available: {', '.join(avds)})")
            target = device_name
        elif avds:
            target = avds[0]
        else:
            raise ToolError("start_emulator", "No Android emulators found. Create one using Android Studio.")

        logger.info("Starting emulator {}", target)
        try:
            proc = await asyncio.create_subprocess_exec(
                "emulator", "-avd", target, "-no-snapshot-save",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            raise ToolError("start_emulator", "Android emulator not found in PATH") from exc
        self._process = proc
        self.current_device = target
        self._tasks = [
            asyncio.create_task(self._pump(proc.stdout, "stdout")),
            asyncio.create_task(self._pump(proc.stderr, "stderr")),
            asyncio.create_task(self._watch_exit(proc)),
        ]
        if wait_for_boot:
            await self.wait_for_boot(timeout_secs)
        return target

    async def stop(self) -> None:
        try:
            result = await run_command("adb", "emu", "kill", check=False)
        except CommandError as exc:
            logger.warning("adb emu kill failed: {}", exc)
        else:
            if result.ok:
                await asyncio.sleep(self.stop_grace_seconds)
        proc = self._process
        self._process = None
        self.current_device = None
        if proc is not None:
            await terminate_process(proc, self.stop_grace_seconds)
        tasks, self._tasks = self._tasks, []
        await cancel_tasks(tasks)

    async def wait_for_boot(self, timeout_secs: float) -> None:
        deadline = time.monotonic() + timeout_secs
        while time.monotonic() < deadline:
            serial = await self.get_device_serial()
            if serial:
                result = await run_command(
                    "adb", "-s", serial, "shell", "getprop", "sys.boot_completed", check=False
                )
                if result.ok and result.stdout.strip() == "1":
                    await asyncio.sleep(self.settle_seconds)
                    return
            await asyncio.sleep(self.poll_interval_seconds)
        raise TimeoutError(
            "emulator boot",
            timeout_secs,
            message=f"Emulator did not boot within {timeout_secs:g} seconds",
        )

    async def expo_go_info(self, serial: str | None = None) -> dict[str, Any]:
        serial = serial or await self.get_device_serial()
        info: dict[str, Any] = {"installed": False, "package": EXPO_GO_PACKAGE}
        if not serial:
            return info
        result = await run_command(
            "adb", "-s", serial, "shell", "pm", "list", "packages", EXPO_GO_PACKAGE, check=False
        )
        if not (result.ok and f"package:{EXPO_GO_PACKAGE}" in result.stdout):
            return info
        info["installed"] = True
        dump = await run_command(
            "adb", "-s", serial, "shell", "dumpsys", "package", EXPO_GO_PACKAGE, check=False
        )
        match = _VERSION_NAME.search(dump.stdout) if dump.ok else None
        if match:
            info["version"] = match.group(1)
        return info

    async def is_expo_go_installed(self, serial: str | None = None) -> bool:
        return (await self.expo_go_info(serial))["installed"]

    async def install_expo_go(self) -> dict[str, Any]:
        serial = await self._require_serial()
        if await self.is_expo_go_installed(serial):
            return {"installed": True, "message": "Expo Go is already installed"}
        apk = await self.downloads.fetch(self.apk_url, f"ExpoGo-{self.expo_go_version}.apk")
        logger.info("Installing Expo Go on emulator {}", serial)
        await run_command("adb", "-s", serial, "install", "-r", str(apk), timeout=300.0)
        if not await self.is_expo_go_installed(serial):
            raise ToolError("install_app", "Failed to install Expo Go")
        return {"installed": True, "message": "Expo Go installed successfully"}

    async def open_in_expo_go(self, url: str) -> dict[str, Any]:
        serial = await self._require_expo_go()
        exp_url = to_expo_url(url)
        logger.info("Opening {} in Expo Go", exp_url)
        await run_command(
            "adb", "-s", serial, "shell", "am", "start",
            "-a", "android.intent.action.VIEW", "-d", exp_url, EXPO_GO_PACKAGE,
        )
        return {"success": True, "message": f"Opened {exp_url} in Expo Go"}

    async def launch_expo_go(self) -> dict[str, Any]:
        serial = await self._require_expo_go()
        await run_command(
            "adb", "-s", serial, "shell", "monkey",
            "-p", EXPO_GO_PACKAGE, "-c", "android.intent.category.LAUNCHER", "1",
        )
        return {"success": True, "message": "Expo Go launched"}

    async def _require_serial(self) -> str:
        serial = await self.get_device_serial()
        if not serial:
            raise ToolError("install_app", "No running emulator found. Start an emulator first.")
        return serial

    async def _require_expo_go(self) -> str:
        serial = await self._require_serial()
        if not await self.is_expo_go_installed(serial):
            raise ToolError("launch_app", "Expo Go is not installed. Install it first using install_app.")
        return serial

    async def _pump(self, stream: asyncio.StreamReader | None, label: str) -> None:
        if stream is None:
            return
        while True:
            line = await read_output_line(stream)
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.debug("[emulator {}] {}", label, text)

    async def _watch_exit(self, proc: asyncio.subprocess.Process) -> None:
        code = await proc.wait()
        if self._process is proc:
            logger.info("Emulator process exited with code {}", code)
            self._process = None
            self.current_device = None
