"""
Configuration module for the plugin runtime.

Exports the configuration models and loader functions for use throughout the application.
"""

from .loader import (
    GLOBAL_CONFIG_PATH,
    PROJECT_CONFIG_NAMES,
    get_config,
    load_config,
    load_config_file,
    merge_configs,
    strip_jsonc_comments,
)
from .runtime_config import (
    CommandsConfig,
    EffectsConfig,
    MiddlewareConfig,
    NavigationConfig,
    RuntimeConfig,
    ServerConfig,
    StorageConfig,
)

__all__ = [
    # Config models
    "RuntimeConfig",
    "StorageConfig",
    "MiddlewareConfig",
    "EffectsConfig",
    "NavigationConfig",
    "CommandsConfig",
    "ServerConfig",
    # Loader functions
    "GLOBAL_CONFIG_PATH",
    "PROJECT_CONFIG_NAMES",
    "load_config",
    "get_config",
    "load_config_file",
    "merge_configs",
    "strip_jsonc_comments",
]
