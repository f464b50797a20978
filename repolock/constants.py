"""Global constants for repolock."""

import os
from pathlib import Path

# Config and data locations (overridable from the environment / .env)
CONFIG_FILE = Path(
    os.getenv("REPOLOCK_CONFIG", "~/.config/repolock/config.json")
).expanduser()
DATA_DIR = Path(os.getenv("REPOLOCK_DATA_DIR", "~/.local/share/repolock")).expanduser()

# Used when the config file names no repositories
DEFAULT_REPOSITORY = Path(os.getenv("REPOLOCK_DEFAULT_REPO", "~/.config/nvim")).expanduser()

LOCKFILE_NAME = "lazy-lock.json"
DECLARATIONS_DIR = "plugins"
DECLARATION_GLOB = "*.lua"
RECIPE_FILE = "lazy.lua"

# The plugin manager's own bootstrap plugin always belongs to the first repository
BOOTSTRAP_PLUGIN = "lazy.nvim"

SOURCE_CACHE_FILE = "source_cache.json"
HISTORICAL_CACHE_FILE = "original_lockfile.json"

# Seconds before a git subprocess is abandoned
GIT_TIMEOUT = int(os.getenv("REPOLOCK_GIT_TIMEOUT", "10"))
