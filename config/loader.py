"""Configuration loading utilities."""

import json
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

from .runtime_config import RuntimeConfig

logger = logging.getLogger(__name__)

GLOBAL_CONFIG_PATH = Path.home() / ".plugin-runtime" / "config.jsonc"
PROJECT_CONFIG_NAMES = ("plugin-runtime.jsonc", "plugin-runtime.json")


def strip_jsonc_comments(content: str) -> str:
    """
    Strip comments from JSONC content to convert to valid JSON.

    Handles:
    - Single-line comments: // comment
    - Multi-line comments: /* comment */

    Args:
        content: JSONC content string

    Returns:
        JSON string with comments removed
    """
    # Remove single-line comments, leaving "//" inside strings (URLs) alone
    content = re.sub(r'("(?:\\.|[^"\\])*")|//.*?$', lambda m: m.group(1) or "", content, flags=re.MULTILINE)
    # Remove multi-line comments
    content = re.sub(r"/\*.*?\*/", "", content, flags=re.DOTALL)
    return content


def load_config_file(path: Path) -> dict[str, Any] | None:
    """
    Load a config file from the given path.

    Supports both .json and .jsonc files with comment stripping.

    Args:
        path: Path to the config file

    Returns:
        Parsed config dictionary or None if file doesn't exist or is invalid
    """
    if not path.exists():
        return None

    try:
        content = path.read_text()
        if path.suffix == ".jsonc":
            content = strip_jsonc_comments(content)
        return json.loads(content)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load config from %s: %s", path, e)
        return None


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two configuration dictionaries.

    Args:
        base: Base configuration
        override: Override configuration (takes precedence)

    Returns:
        Merged configuration dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def load_config(
    project_root: Path | None = None, global_path: Path | None = None
) -> RuntimeConfig:
    """
    Load configuration from multiple sources with precedence.

    Looks for config files in the following order:
    1. Global: ~/.plugin-runtime/config.jsonc
    2. Project-level: plugin-runtime.jsonc, then plugin-runtime.json

    Project config is merged with and takes precedence over global config.
    Relative plugin paths are resolved against the project root.

    Args:
        project_root: Project root directory (defaults to current working directory)
        global_path: Override for the global config path

    Returns:
        Loaded and merged RuntimeConfig model
    """
    if project_root is None:
        project_root = Path.cwd()

    config_data = load_config_file(global_path or GLOBAL_CONFIG_PATH) or {}

    for name in PROJECT_CONFIG_NAMES:
        project_config = load_config_file(project_root / name)
        if project_config:
            config_data = merge_configs(config_data, project_config)
            break

    config = RuntimeConfig(**config_data)
    config.plugins = [
        str(path if Path(path).is_absolute() else project_root / path)
        for path in config.plugins
    ]
    return config


@lru_cache(maxsize=1)
def get_config(project_root: Path | None = None) -> RuntimeConfig:
    """
    Get cached configuration.

    This function caches the config to avoid repeated file I/O.
    To reload the config, clear the cache with get_config.cache_clear().

    Args:
        project_root: Project root directory (defaults to current working directory)

    Returns:
        Cached RuntimeConfig model
    """
    return load_config(project_root or Path.cwd())
