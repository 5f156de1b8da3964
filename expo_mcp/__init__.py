"""expo-mcp - mobile app development lifecycle and UI automation over MCP."""

__version__ = "0.2.0"
__logo__ = "📱"
