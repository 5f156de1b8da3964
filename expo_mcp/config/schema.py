"""Configuration schema using Pydantic.

Persisted to ~/.expo-mcp/config.json; every field can also be set through
EXPO_MCP_* environment variables (nested with "__", e.g. EXPO_MCP_MAESTRO__COMMAND).
"""

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class MaestroConfig(BaseModel):
    """UI-automation peer (Maestro MCP over stdio)."""
    enabled: bool = True
    command: str = "maestro"  # Resolved via PATH, then ~/.maestro/bin/maestro
    args: list[str] = Field(default_factory=lambda: ["mcp"])
    env: dict[str, str] = Field(default_factory=dict)  # Extra env vars for the peer process
    request_timeout_seconds: float = 30.0
    shutdown_grace_seconds: float = 1.0  # SIGTERM -> SIGKILL delay
    protocol_version: str = "2024-11-05"
    tool_prefix: str = "maestro_"  # Inbound names with this prefix are forwarded


class ExpoConfig(BaseModel):
    """Expo development server."""
    port: int = 8081
    ready_timeout_seconds: float = 120.0
    poll_interval_seconds: float = 1.0
    stop_grace_seconds: float = 5.0


class DevicesConfig(BaseModel):
    """Simulator / emulator handling and the Expo Go companion app."""
    boot_timeout_seconds: float = 120.0
    expo_go_version: str = "2.32.13"
    ios_download_base: str = "https://dpq5q02fu5f55.cloudfront.net/Exponent"
    android_apk_url: str = "https://d1ahtucjixef4r.cloudfront.net/Exponent-2.32.13.apk"
    download_dir: str = ""  # Empty: <tmp>/expo-mcp-downloads


class Config(BaseSettings):
    """Root configuration for expo-mcp."""
    app_dir: str = ""  # Empty: $EXPO_APP_DIR, then the current directory
    maestro: MaestroConfig = Field(default_factory=MaestroConfig)
    expo: ExpoConfig = Field(default_factory=ExpoConfig)
    devices: DevicesConfig = Field(default_factory=DevicesConfig)

    model_config = ConfigDict(
        env_prefix="EXPO_MCP_",
        env_nested_delimiter="__",
    )

    @property
    def app_path(self) -> Path:
        """Resolved Expo project directory."""
        raw = self.app_dir.strip() or os.environ.get("EXPO_APP_DIR", "").strip()
        return Path(raw).expanduser() if raw else Path.cwd()
