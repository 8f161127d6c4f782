"""Shared constants for the SillyRPC presence bridge.

Import-safe module with no dependencies, so it can be imported from anywhere
without risk of circular imports.
"""

import os
from pathlib import Path

SILLYRPC_HOME = Path(os.getenv("SILLYRPC_HOME", Path.home() / ".sillyrpc"))

PLUGIN_API_PREFIX = "/api/plugins/sillyrpc"
SETTINGS_PATH = f"{PLUGIN_API_PREFIX}/settings"
UPDATE_PATH = f"{PLUGIN_API_PREFIX}/update"
UPLOAD_AVATAR_PATH = f"{PLUGIN_API_PREFIX}/upload-avatar"

DEFAULT_MODE = "local"
DEFAULT_AGENT_HOST = "localhost"
DEFAULT_AGENT_PORT = 6472

# Fallback re-sync period for updates missed by event delivery gaps
FALLBACK_INTERVAL_SECONDS = 30
