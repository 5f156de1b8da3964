"""Filesystem helpers."""

import tempfile
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """~/.expo-mcp"""
    return ensure_dir(Path.home() / ".expo-mcp")


def get_download_path(override: str = "") -> Path:
    """Directory holding downloaded companion app bundles."""
    if override.strip():
        return ensure_dir(Path(override).expanduser())
    return ensure_dir(Path(tempfile.gettempdir()) / "expo-mcp-downloads")
