"""Collaborators behind the local lifecycle operations."""

from expo_mcp.managers.downloads import DownloadCache, DownloadError
from expo_mcp.managers.emulator import EmulatorManager
from expo_mcp.managers.expo import ExpoManager, to_expo_url
from expo_mcp.managers.simulator import SimulatorManager

__all__ = [
    "DownloadCache",
    "DownloadError",
    "EmulatorManager",
    "ExpoManager",
    "SimulatorManager",
    "to_expo_url",
]
