"""Configuration module for expo-mcp."""

from expo_mcp.config.loader import clear_config_cache, get_config, get_config_path, load_config, save_config
from expo_mcp.config.schema import Config, DevicesConfig, ExpoConfig, MaestroConfig

__all__ = [
    "Config",
    "MaestroConfig",
    "ExpoConfig",
    "DevicesConfig",
    "load_config",
    "save_config",
    "get_config_path",
    "get_config",
    "clear_config_cache",
]
