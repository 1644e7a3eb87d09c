"""
Core constants for the plugin runtime.

This module defines system-wide constants used across the codebase.
Following the style guide: no magic constants in code.
"""

# Plugin script API
PLUGIN_API_VERSION = "1.0"

# Middleware limits
DEFAULT_HOOK_TIMEOUT_S = 5.0  # per-hook limit for async hooks
STALL_POLICY_HALT = "halt"
STALL_POLICY_CONTINUE = "continue"

# Effect limits
DEFAULT_MAX_EFFECT_PASSES = 100  # feedback loops between effects stop here

# Paths the UI client is willing to navigate to when a plugin asks
DEFAULT_ALLOWED_NAVIGATION_PREFIXES = (
    "/entry",
    "/anilist",
    "/search",
    "/manga",
    "/settings",
    "/auto-downloader",
    "/debrid",
    "/torrent-list",
    "/schedule",
    "/extensions",
    "/sync",
    "/discover",
    "/scan-summaries",
)
