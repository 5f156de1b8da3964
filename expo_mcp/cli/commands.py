"""CLI commands for expo-mcp.

``serve`` runs the MCP stdio server; ``status``, ``tools`` and ``call`` are
diagnostics that exercise the same components from a terminal.
"""

import asyncio
import json
import signal
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from expo_mcp import __logo__, __version__
from expo_mcp.cli.shared.logging_utils import configure_stderr_logging, ensure_rotating_log_file

app = typer.Typer(
    name="expo-mcp",
    help=f"{__logo__} expo-mcp - Expo app lifecycle and Maestro UI automation over MCP",
    no_args_is_help=True,
)

console = Console(stderr=True)


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} expo-mcp v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
):
    """expo-mcp - mobile app development over MCP."""
    pass


def _load(app_dir: Path | None = None):
    from expo_mcp.config.loader import get_config

    config = get_config()
    if app_dir is not None:
        config = config.model_copy(update={"app_dir": str(app_dir)})
    return config


@app.command()
def serve(
    app_dir: Path = typer.Option(None, "--app-dir", "-a", help="Expo project directory (default: $EXPO_APP_DIR or cwd)"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging on stderr"),
):
    """Run the MCP server on stdio."""
    from expo_mcp.server import ExpoMcpServer

    configure_stderr_logging(verbose)
    ensure_rotating_log_file("serve", level="DEBUG" if verbose else "INFO")
    config = _load(app_dir)

    async def run_server():
        server = ExpoMcpServer.from_config(config)
        loop = asyncio.get_running_loop()
        task = asyncio.current_task()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, task.cancel)
        try:
            await server.run()
        except asyncio.CancelledError:
            logger.info("Shutdown signal received")
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

    asyncio.run(run_server())


@app.command()
def status():
    """Show configuration and tool availability."""
    from expo_mcp.bridge.session import resolve_peer_command
    from expo_mcp.config.loader import get_config_path
    from expo_mcp.utils.process import which

    config_path = get_config_path()
    config = _load()

    console.print(f"{__logo__} expo-mcp Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[dim]defaults[/dim]'}")
    app_path = config.app_path
    console.print(f"App dir: {app_path} {'[green]✓[/green]' if app_path.exists() else '[red]✗[/red]'}")

    for binary in ("npx", "xcrun", "emulator", "adb"):
        found = which(binary)
        console.print(f"{binary}: {f'[green]✓ {found}[/green]' if found else '[dim]not found[/dim]'}")

    if config.maestro.enabled:
        argv = resolve_peer_command(config.maestro.command, config.maestro.args)
        found = which(argv[0]) or (Path(argv[0]).exists() and argv[0])
        console.print(f"Maestro: {f'[green]✓ {found}[/green]' if found else '[red]✗ not installed[/red]'}")
    else:
        console.print("Maestro: [dim]disabled[/dim]")


@app.command()
def tools(
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging on stderr"),
):
    """Start the Maestro peer and list the capabilities it declares."""
    from expo_mcp.bridge.session import PeerSession
    from expo_mcp.utils.exceptions import ExpoMcpError

    configure_stderr_logging(verbose)
    config = _load()

    async def list_capabilities():
        session = PeerSession.from_config(config.maestro)
        try:
            await session.start()
            return session.capabilities
        finally:
            await session.shutdown()

    try:
        capabilities = asyncio.run(list_capabilities())
    except ExpoMcpError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Maestro tools ({len(capabilities)})")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    for capability in capabilities:
        table.add_row(f"{config.maestro.tool_prefix}{capability.name}", capability.description)
    console.print(table)


@app.command()
def call(
    name: str = typer.Argument(..., help="Operation name (local, or maestro_<tool>)"),
    args: str = typer.Option("{}", "--args", help="Arguments as a JSON object"),
    app_dir: Path = typer.Option(None, "--app-dir", "-a", help="Expo project directory"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging on stderr"),
):
    """Route one operation and print the result envelope."""
    from expo_mcp.server import ExpoMcpServer

    configure_stderr_logging(verbose)
    try:
        arguments = json.loads(args)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid --args JSON: {e}[/red]")
        raise typer.Exit(2)
    if not isinstance(arguments, dict):
        console.print("[red]--args must be a JSON object[/red]")
        raise typer.Exit(2)

    config = _load(app_dir)

    async def run_once():
        server = ExpoMcpServer.from_config(config)
        try:
            if server.router.is_forwarded(name):
                await server.start()
            return await server.router.dispatch(name, arguments)
        finally:
            await server.stop()

    envelope = asyncio.run(run_once())
    typer.echo(json.dumps(envelope, indent=2, ensure_ascii=False))
    if not envelope["success"]:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
