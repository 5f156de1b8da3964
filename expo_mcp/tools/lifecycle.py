"""Local lifecycle operations: dev server, simulator/emulator and the Expo Go companion app."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from expo_mcp.managers.emulator import EmulatorManager
from expo_mcp.managers.expo import ExpoManager
from expo_mcp.managers.simulator import SimulatorManager
from expo_mcp.tools.base import Tool
from expo_mcp.tools.registry import ToolRegistry
from expo_mcp.utils.exceptions import ExpoMcpError

_PLATFORM = {"type": "string", "enum": ["ios", "android"]}

_BOOT_PROPERTIES = {
    "wait_for_boot": {
        "type": "boolean",
        "description": "Wait for the device to fully boot (default: true)",
    },
    "timeout_secs": {
        "type": "number",
        "minimum": 1,
        "description": "Boot timeout in seconds (default: 120)",
    },
}


@dataclass
class Devices:
    """Managers shared by every lifecycle tool."""

    expo: ExpoManager
    simulator: SimulatorManager
    emulator: EmulatorManager
    boot_timeout_seconds: float = 120.0


class _LifecycleTool(Tool):
    def __init__(self, devices: Devices):
        self.devices = devices


class AppStatusTool(_LifecycleTool):
    @property
    def name(self) -> str:
        return "app_status"

    @property
    def description(self) -> str:
        return (
            "Get the current status of the mobile app development environment "
            "(Expo server, device, app installation)"
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        expo = self.devices.expo
        device: dict[str, Any] = {"platform": None, "name": None, "udid": None}
        app_installed = False

        try:
            booted = await self.devices.simulator.get_booted_device()
            if booted is not None:
                device = {"platform": "ios", "name": booted.name, "udid": booted.udid}
                app_installed = await self.devices.simulator.is_expo_go_installed(booted.udid)
        except (ExpoMcpError, ValueError) as exc:
            logger.debug("simulator probe failed: {}", exc)

        if device["platform"] is None:
            try:
                serial = await self.devices.emulator.get_device_serial()
                if serial:
                    name = await self.devices.emulator.get_running_emulator()
                    device = {"platform": "android", "name": name, "udid": serial}
                    app_installed = await self.devices.emulator.is_expo_go_installed(serial)
            except ExpoMcpError as exc:
                logger.debug("emulator probe failed: {}", exc)

        return {
            "expo_server": expo.status(),
            "port": expo.port if expo.running else None,
            "device": device,
            "app_installed": app_installed,
        }


class LaunchExpoTool(_LifecycleTool):
    @property
    def name(self) -> str:
        return "launch_expo"

    @property
    def description(self) -> str:
        return "Launch the Expo development server for the mobile app"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "port": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 65535,
                    "description": "Port number for Expo server (default: 8081)",
                },
                "platform": {**_PLATFORM, "description": "Open the app on this platform once started"},
                "wait_for_ready": {
                    "type": "boolean",
                    "description": "Wait for server to be ready (default: true)",
                },
                "timeout_secs": {
                    "type": "number",
                    "minimum": 1,
                    "description": "Readiness timeout in seconds (default: 120)",
                },
            },
        }

    async def execute(
        self,
        port: int | None = None,
        platform: str | None = None,
        wait_for_ready: bool = True,
        timeout_secs: float | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        return await self.devices.expo.launch(
            port=port,
            platform=platform,
            wait_for_ready=wait_for_ready is not False,
            timeout_secs=timeout_secs,
        )


class StopExpoTool(_LifecycleTool):
    @property
    def name(self) -> str:
        return "stop_expo"

    @property
    def description(self) -> str:
        return "Stop the running Expo development server"

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> str:
        await self.devices.expo.stop()
        return "Expo server stopped"


class StartSimulatorTool(_LifecycleTool):
    @property
    def name(self) -> str:
        return "start_simulator"

    @property
    def description(self) -> str:
        return "Start an iOS Simulator"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "device_name": {
                    "type": "string",
                    "description": (
                        'Specific simulator name (e.g., "iPhone 15 Pro"). '
                        "If not specified, uses the newest available iPhone."
                    ),
                },
                **_BOOT_PROPERTIES,
            },
        }

    async def execute(
        self,
        device_name: str | None = None,
        wait_for_boot: bool = True,
        timeout_secs: float | None = None,
        **kwargs: Any,
    ) -> dict[str, str]:
        return await self.devices.simulator.boot(
            device_name,
            wait_for_boot=wait_for_boot is not False,
            timeout_secs=timeout_secs or self.devices.boot_timeout_seconds,
        )


class StartEmulatorTool(_LifecycleTool):
    @property
    def name(self) -> str:
        return "start_emulator"

    @property
    def description(self) -> str:
        return "Start an Android Emulator"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "device_name": {
                    "type": "string",
                    "description": (
                        'Specific emulator AVD name (e.g., "Pixel_7_API_34"). '
                        "If not specified, uses the first available."
                    ),
                },
                **_BOOT_PROPERTIES,
            },
        }

    async def execute(
        self,
        device_name: str | None = None,
        wait_for_boot: bool = True,
        timeout_secs: float | None = None,
        **kwargs: Any,
    ) -> dict[str, str]:
        name = await self.devices.emulator.start(
            device_name,
            wait_for_boot=wait_for_boot is not False,
            timeout_secs=timeout_secs or self.devices.boot_timeout_seconds,
        )
        return {"name": name}


class StopDeviceTool(_LifecycleTool):
    @property
    def name(self) -> str:
        return "stop_device"

    @property
    def description(self) -> str:
        return "Stop running simulator or emulator"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "platform": {
                    **_PLATFORM,
                    "description": "Platform to stop. If not specified, stops all running devices.",
                },
            },
        }

    async def execute(self, platform: str | None = None, **kwargs: Any) -> str:
        if platform in (None, "ios"):
            try:
                await self.devices.simulator.shutdown()
            except ExpoMcpError as exc:
                logger.warning("Failed to stop iOS simulator: {}", exc.message)
        if platform in (None, "android"):
            try:
                await self.devices.emulator.stop()
            except ExpoMcpError as exc:
                logger.warning("Failed to stop Android emulator: {}", exc.message)
        return f"Stopped {platform or 'all'} device(s)"


class InstallAppTool(_LifecycleTool):
    @property
    def name(self) -> str:
        return "install_app"

    @property
    def description(self) -> str:
        return "Install the Expo Go app on the running simulator or emulator"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"platform": {**_PLATFORM, "description": "Platform to install on"}},
            "required": ["platform"],
        }

    async def execute(self, platform: str, **kwargs: Any) -> dict[str, Any]:
        if platform == "ios":
            return await self.devices.simulator.install_expo_go()
        return await self.devices.emulator.install_expo_go()


class LaunchAppTool(_LifecycleTool):
    @property
    def name(self) -> str:
        return "launch_app"

    @property
    def description(self) -> str:
        return (
            "Launch Expo Go on the running device and open the app. Uses the given URL, "
            "or the running Expo server when no URL is given."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "platform": {**_PLATFORM, "description": "Platform to launch on"},
                "url": {
                    "type": "string",
                    "description": "URL to open (http(s):// is rewritten to exp://)",
                },
            },
            "required": ["platform"],
        }

    async def execute(self, platform: str, url: str | None = None, **kwargs: Any) -> dict[str, Any]:
        target = self.devices.simulator if platform == "ios" else self.devices.emulator
        if not url and self.devices.expo.running:
            url = self.devices.expo.url
        if url:
            return await target.open_in_expo_go(url)
        return await target.launch_expo_go()


def lifecycle_tools(devices: Devices) -> list[Tool]:
    return [
        AppStatusTool(devices),
        LaunchExpoTool(devices),
        StopExpoTool(devices),
        StartSimulatorTool(devices),
        StartEmulatorTool(devices),
        StopDeviceTool(devices),
        InstallAppTool(devices),
        LaunchAppTool(devices),
    ]


def build_lifecycle_registry(devices: Devices) -> ToolRegistry:
    """Registry holding every lifecycle operation."""
    registry = ToolRegistry()
    for tool in lifecycle_tools(devices):
        registry.register(tool)
    return registry
