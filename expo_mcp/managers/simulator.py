"""iOS Simulator control through ``xcrun simctl``."""

from __future__ import annotations

import asyncio
import json
import re
import time
from dataclasses import dataclass
from typing import Any

from loguru import logger

from expo_mcp.managers.downloads import DownloadCache
from expo_mcp.managers.expo import to_expo_url
from expo_mcp.utils.exceptions import CommandError, NotFoundError, TimeoutError, ToolError
from expo_mcp.utils.process import run_command

EXPO_GO_BUNDLE_ID = "host.exp.Exponent"

_RUNTIME_VERSION = re.compile(r"iOS-(\d+)-(\d+)")


@dataclass(slots=True)
class SimulatorDevice:
    udid: str
    name: str
    state: str
    is_available: bool = True
    runtime: str = ""

    @property
    def ios_version(self) -> tuple[int, int] | None:
        match = _RUNTIME_VERSION.search(self.runtime)
        if not match:
            return None
        return int(match.group(1)), int(match.group(2))


def parse_device_list(payload: str) -> list[SimulatorDevice]:
    """Flatten ``simctl list devices --json`` output into one device list."""
    data = json.loads(payload)
    devices: list[SimulatorDevice] = []
    for runtime, entries in (data.get("devices") or {}).items():
        for entry in entries or []:
            devices.append(
                SimulatorDevice(
                    udid=entry.get("udid", ""),
                    name=entry.get("name", ""),
                    state=entry.get("state", ""),
                    is_available=entry.get("isAvailable", True),
                    runtime=runtime,
                )
            )
    return devices


def pick_default_device(devices: list[SimulatorDevice]) -> SimulatorDevice | None:
    """Shut-down available iPhone on the newest runtime, else any shut-down device."""
    candidates = [
        d for d in devices if d.is_available and d.state == "Shutdown" and "iPhone" in d.name
    ]
    candidates.sort(key=lambda d: d.ios_version or (-1, -1), reverse=True)
    if candidates:
        return candidates[0]
    return next((d for d in devices if d.is_available and d.state == "Shutdown"), None)


class SimulatorManager:
    def __init__(
        self,
        downloads: DownloadCache,
        *,
        expo_go_version: str = "2.32.13",
        download_base: str = "https://dpq5q02fu5f55.cloudfront.net/Exponent",
        poll_interval_seconds: float = 1.0,
        settle_seconds: float = 2.0,
    ):
        self.downloads = downloads
        self.expo_go_version = expo_go_version
        self.download_base = download_base
        self.poll_interval_seconds = poll_interval_seconds
        self.settle_seconds = settle_seconds

    async def list_devices(self) -> list[SimulatorDevice]:
        result = await run_command("xcrun", "simctl", "list", "devices", "--json")
        return parse_device_list(result.stdout)

    async def get_booted_device(self) -> SimulatorDevice | None:
        devices = await self.list_devices()
        return next((d for d in devices if d.state == "Booted"), None)

    async def boot(
        self,
        device_name: str | None = None,
        wait_for_boot: bool = True,
        timeout_secs: float = 120.0,
    ) -> dict[str, str]:
        booted = await self.get_booted_device()
        if booted is not None:
            if device_name and booted.name != device_name:
                raise ToolError(
                    "start_simulator",
                    f"A different simulator is already booted: {booted.name}. Shut it down first.",
                )
            await self._open_simulator_app()
            return {"udid": booted.udid, "name": booted.name}

        devices = await self.list_devices()
        if device_name:
            target = next((d for d in devices if d.name == device_name and d.is_available), None)
            if target is None:
                raise NotFoundError("simulator", device_name)
        else:
            target = pick_default_device(devices)
            if target is None:
                raise ToolError("start_simulator", "No available simulators found")

        logger.info("Booting simulator {} ({})", target.name, target.udid)
        try:
            await run_command("xcrun", "simctl", "boot", target.udid)
        except CommandError as exc:
            if "current state: Booted" not in exc.stderr:
                raise
        await self._open_simulator_app()
        if wait_for_boot:
            await self.wait_for_boot(target.udid, timeout_secs)
        return {"udid": target.udid, "name": target.name}

    async def shutdown(self, udid: str | None = None) -> None:
        if udid is None:
            booted = await self.get_booted_device()
            if booted is None:
                return
            udid = booted.udid
        logger.info("Shutting down simulator {}", udid)
        await run_command("xcrun", "simctl", "shutdown", udid)

    async def wait_for_boot(self, udid: str, timeout_secs: float) -> None:
        deadline = time.monotonic() + timeout_secs
        while time.monotonic() < deadline:
            try:
                devices = await self.list_devices()
            except (CommandError, ValueError) as exc:
                logger.debug("simulator state probe failed: {}", exc)
            else:
                if any(d.udid == udid and d.state == "Booted" for d in devices):
                    await asyncio.sleep(self.settle_seconds)
                    return
            await asyncio.sleep(self.poll_interval_seconds)
        raise TimeoutError(
            "simulator boot",
            timeout_secs,
            message=f"Simulator did not boot within {timeout_secs:g} seconds",
        )

    async def is_expo_go_installed(self, udid: str | None = None) -> bool:
        udid = udid or await self._booted_udid()
        if not udid:
            return False
        result = await run_command(
            "xcrun", "simctl", "get_app_container", udid, EXPO_GO_BUNDLE_ID, check=False
        )
        return result.ok and bool(result.stdout.strip())

    async def install_expo_go(self, udid: str | None = None) -> dict[str, Any]:
        udid = await self._require_booted(udid)
        if await self.is_expo_go_installed(udid):
            return {"installed": True, "message": "Expo Go is already installed"}
        url = f"{self.download_base}-{self.expo_go_version}.tar.gz"
        app_path = await self.downloads.fetch_app_bundle(url, f"ExpoGo-{self.expo_go_version}.app")
        logger.info("Installing Expo Go on simulator {}", udid)
        await run_command("xcrun", "simctl", "install", udid, str(app_path), timeout=300.0)
        if not await self.is_expo_go_installed(udid):
            raise ToolError("install_app", "Failed to install Expo Go")
        return {"installed": True, "message": "Expo Go installed successfully"}

    async def open_in_expo_go(self, url: str, udid: str | None = None) -> dict[str, Any]:
        udid = await self._require_expo_go(udid)
        exp_url = to_expo_url(url)
        logger.info("Opening {} in Expo Go", exp_url)
        await run_command("xcrun", "simctl", "openurl", udid, exp_url)
        return {"success": True, "message": f"Opened {exp_url} in Expo Go"}

    async def launch_expo_go(self, udid: str | None = None) -> dict[str, Any]:
        udid = await self._require_expo_go(udid)
        await run_command("xcrun", "simctl", "launch", udid, EXPO_GO_BUNDLE_ID)
        return {"success": True, "message": "Expo Go launched"}

    async def _booted_udid(self) -> str | None:
        booted = await self.get_booted_device()
        return booted.udid if booted else None

    async def _require_booted(self, udid: str | None) -> str:
        udid = udid or await self._booted_udid()
        if not udid:
            raise ToolError("install_app", "No booted simulator found. Boot a simulator first.")
        return udid

    async def _require_expo_go(self, udid: str | None) -> str:
        udid = await self._require_booted(udid)
        if not await self.is_expo_go_installed(udid):
            raise ToolError("launch_app", "Expo Go is not installed. Install it first using install_app.")
        return udid

    async def _open_simulator_app(self) -> None:
        result = await run_command("open", "-a", "Simulator", check=False)
        if not result.ok:
            logger.warning("Could not open Simulator.app: {}", result.stderr.strip())
