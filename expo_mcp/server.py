"""MCP stdio server exposing the lifecycle operations and the forwarded Maestro tools."""

from __future__ import annotations

import json
from typing import Any

import mcp.types as types
from loguru import logger
from mcp.server import Server
from mcp.server.stdio import stdio_server

from expo_mcp import __version__
from expo_mcp.bridge.session import PeerSession
from expo_mcp.config.schema import Config
from expo_mcp.managers.downloads import DownloadCache
from expo_mcp.managers.emulator import EmulatorManager
from expo_mcp.managers.expo import ExpoManager
from expo_mcp.managers.simulator import SimulatorManager
from expo_mcp.tools.lifecycle import Devices, build_lifecycle_registry
from expo_mcp.tools.router import CallRouter
from expo_mcp.utils.exceptions import ExpoMcpError, ToolError
from expo_mcp.utils.helpers import get_download_path

SERVER_NAME = "expo-mcp"

Content = types.TextContent | types.ImageContent


def to_content(value: Any) -> list[Content]:
    """Render an operation result as MCP content blocks."""
    if isinstance(value, dict) and isinstance(value.get("content"), list):
        return [_content_block(item) for item in value["content"]]
    if isinstance(value, str):
        return [types.TextContent(type="text", text=value)]
    return [types.TextContent(type="text", text=json.dumps(value, indent=2, ensure_ascii=False))]


def _content_block(item: Any) -> Content:
    if isinstance(item, dict):
        if item.get("type") == "text" and isinstance(item.get("text"), str):
            return types.TextContent(type="text", text=item["text"])
        if item.get("type") == "image" and item.get("data"):
            return types.ImageContent(
                type="image",
                data=item["data"],
                mimeType=item.get("mimeType") or "image/png",
            )
    return types.TextContent(type="text", text=json.dumps(item, ensure_ascii=False))


def error_text(value: Any) -> str:
    """Text of a peer result flagged with ``isError``."""
    blocks = value.get("content") if isinstance(value, dict) else None
    if isinstance(blocks, list):
        texts = [b["text"] for b in blocks if isinstance(b, dict) and isinstance(b.get("text"), str)]
        if texts:
            return "\n".join(texts)
    return json.dumps(value, ensure_ascii=False)


class ExpoMcpServer:
    """
    Wires the router into an MCP ``Server``.

    Failures are raised out of the ``call_tool`` handler so the MCP library turns
    them into ``isError`` results.
    """

    def __init__(
        self,
        router: CallRouter,
        *,
        peer: PeerSession | None = None,
        expo: ExpoManager | None = None,
        name: str = SERVER_NAME,
    ):
        self.router = router
        self.peer = peer
        self.expo = expo
        self.server = Server(name, version=__version__)
        self._stopped = False
        self._setup_handlers()

    @classmethod
    def from_config(cls, config: Config) -> "ExpoMcpServer":
        downloads = DownloadCache(get_download_path(config.devices.download_dir))
        expo = ExpoManager.from_config(config)
        devices = Devices(
            expo=expo,
            simulator=SimulatorManager(
                downloads,
                expo_go_version=config.devices.expo_go_version,
                download_base=config.devices.ios_download_base,
            ),
            emulator=EmulatorManager(
                downloads,
                expo_go_version=config.devices.expo_go_version,
                apk_url=config.devices.android_apk_url,
            ),
            boot_timeout_seconds=config.devices.boot_timeout_seconds,
        )
        peer = PeerSession.from_config(config.maestro) if config.maestro.enabled else None
        router = CallRouter(
            build_lifecycle_registry(devices),
            peer,
            forward_prefix=config.maestro.tool_prefix,
        )
        return cls(router, peer=peer, expo=expo)

    def _setup_handlers(self) -> None:
        @self.server.list_tools()
        async def handle_list_tools() -> list[types.Tool]:
            return [
                types.Tool(
                    name=op["name"],
                    description=op.get("description") or "",
                    inputSchema=op.get("inputSchema") or {"type": "object", "properties": {}},
                )
                for op in self.router.list_operations()
            ]

        @self.server.call_tool()
        async def handle_call_tool(name: str, arguments: dict[str, Any] | None) -> list[Content]:
            return await self.call(name, arguments or {})

    async def call(self, name: str, arguments: dict[str, Any]) -> list[Content]:
        envelope = await self.router.dispatch(name, arguments)
        if not envelope["success"]:
            raise ToolError(name, envelope["error"])
        value = envelope["value"]
        if isinstance(value, dict) and value.get("isError") is True:
            raise ToolError(name, error_text(value))
        return to_content(value)

    async def start(self) -> None:
        """Start the peer session; the server keeps serving local operations if it fails."""
        if self.peer is None:
            logger.info("Maestro forwarding disabled")
            return
        try:
            await self.peer.start()
            logger.info("Maestro MCP initialized with {} tools", len(self.peer.capabilities))
        except ExpoMcpError as exc:
            logger.error("Failed to initialize Maestro MCP: {}", exc.message)
            logger.warning("Maestro tools will not be available")

    async def run(self) -> None:
        await self.start()
        try:
            async with stdio_server() as (read_stream, write_stream):
                logger.info("{} {} serving on stdio", SERVER_NAME, __version__)
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the dev server and shut the peer down. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        if self.expo is not None:
            try:
                await self.expo.stop()
            except Exception:
                logger.exception("Failed to stop Expo dev server")
        if self.peer is not None:
            await self.peer.shutdown()
        logger.info("{} stopped", SERVER_NAME)
