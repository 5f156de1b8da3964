"""Command-line interface for expo-mcp."""
