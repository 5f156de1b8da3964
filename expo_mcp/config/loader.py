"""Configuration loading utilities."""

import json
import threading
from pathlib import Path
from typing import Any

from expo_mcp.config.schema import Config

_cache_lock = threading.RLock()
_loaded: dict[Path, Config] = {}


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".expo-mcp" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("config root must be a JSON object")
            return Config.model_validate(convert_keys(data))
        except (json.JSONDecodeError, ValueError) as e:
            raise ValueError(
                f"Failed to load config from {path}: {e}. "
                "Fix the file or remove it to regenerate defaults."
            ) from e

    return Config()


def get_config(*, config_path: Path | None = None, force_reload: bool = False) -> Config:
    """
    Load a config file once per process and hand out the cached object afterwards.

    The server and the CLI diagnostics share one Config per resolved path;
    force_reload re-reads the file.
    """
    path = _resolved(config_path)
    with _cache_lock:
        config = None if force_reload else _loaded.get(path)
        if config is None:
            config = _loaded[path] = load_config(path)
        return config


def clear_config_cache(*, config_path: Path | None = None) -> None:
    """Forget one cached config, or all of them."""
    with _cache_lock:
        if config_path is None:
            _loaded.clear()
        else:
            _loaded.pop(_resolved(config_path), None)


def _resolved(config_path: Path | None) -> Path:
    return Path(config_path or get_config_path()).expanduser().resolve()


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """
    Save configuration to file (camelCase keys).

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    clear_config_cache(config_path=path)
    return path


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic.
    Keys under any "env" mapping are preserved (they are env var names)."""
    if isinstance(data, dict):
        result: dict[str, Any] = {}
        for k, v in data.items():
            new_k = camel_to_snake(k)
            if new_k == "env" and isinstance(v, dict):
                result["env"] = dict(v)
            else:
                result[new_k] = convert_keys(v)
        return result
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase (env var names untouched)."""
    if isinstance(data, dict):
        result: dict[str, Any] = {}
        for k, v in data.items():
            new_k = snake_to_camel(k)
            if new_k == "env" and isinstance(v, dict):
                result["env"] = dict(v)
            else:
                result[new_k] = convert_to_camel(v)
        return result
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
