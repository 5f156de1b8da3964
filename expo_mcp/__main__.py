"""Entry point for ``python -m expo_mcp``."""

from expo_mcp.cli.commands import app

if __name__ == "__main__":
    app()
