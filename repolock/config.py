"""Repolock configuration service - manages the repolock config.json file."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from repolock.constants import (
    BOOTSTRAP_PLUGIN,
    DATA_DIR,
    DECLARATION_GLOB,
    DECLARATIONS_DIR,
    DEFAULT_REPOSITORY,
    LOCKFILE_NAME,
    RECIPE_FILE,
)

logger = logging.getLogger(__name__)


class RepoLockSettings(BaseModel):
    """Settings loaded from config.json."""

    repositories: List[str] = Field(
        default_factory=lambda: [str(DEFAULT_REPOSITORY)],
        description="Configuration repositories in priority order",
    )
    lockfile_name: str = Field(default=LOCKFILE_NAME, description="Lock file name at each repository root")
    declarations_dir: str = Field(default=DECLARATIONS_DIR, description="Directory holding plugin declarations")
    declaration_glob: str = Field(default=DECLARATION_GLOB, description="Glob for declaration files")
    recipe_file: str = Field(default=RECIPE_FILE, description="A plugin's own declaration file")
    bootstrap_plugin: str = Field(default=BOOTSTRAP_PLUGIN, description="Plugin manager's own plugin")
    host_lockfile: Optional[str] = Field(default=None, description="Lock file the host plugin manager owns")
    plugins_dir: Optional[str] = Field(default=None, description="Where the host installs plugins")
    local_plugins: List[str] = Field(default_factory=list, description="Unmanaged plugins, never locked")
    disabled_plugins: List[str] = Field(default_factory=list, description="Declared but disabled plugins")

    @field_validator("repositories")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        seen = set()
        unique = []
        for repo in value:
            if repo not in seen:
                seen.add(repo)
                unique.append(repo)
        return unique


class ConfigService:
    """Manages the repolock config file and the resolved repository list.

    Config format:
    {
        "repositories": ["~/.config/nvim", "~/dotfiles-work/nvim"],
        "lockfile_name": "lazy-lock.json",
        "local_plugins": ["my-dev-plugin"]
    }
    """

    def __init__(self, config_file: Optional[Path] = None, settings: Optional[RepoLockSettings] = None):
        self.config_file = config_file
        self.settings = settings if settings is not None else self._load()
        self._repository_paths: Optional[List[Path]] = None

    def _load(self) -> RepoLockSettings:
        """Load settings from file, falling back to defaults."""
        if self.config_file and self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                return RepoLockSettings(**data)
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Error loading repolock config: {e}")
            except (TypeError, ValidationError) as e:
                logger.error(f"Invalid repolock config in {self.config_file}: {e}")

        return RepoLockSettings()

    def _save(self) -> None:
        """Save settings to file."""
        if not self.config_file:
            return
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self.settings.model_dump(exclude_none=True), f, indent=2, ensure_ascii=False)
        logger.debug(f"Saved repolock config to {self.config_file}")

    def repository_paths(self) -> List[Path]:
        """Resolved repository roots in priority order.

        Symlinks are followed once and the result is cached until
        ``clear_cache()``. Entries that are not directories are skipped.
        """
        if self._repository_paths is not None:
            return self._repository_paths

        paths: List[Path] = []
        for entry in self.settings.repositories:
            real_path = Path(entry).expanduser().resolve()
            if not real_path.is_dir():
                logger.warning(f"Repository entry is not a valid directory: {entry}")
                continue
            if real_path not in paths:
                paths.append(real_path)

        self._repository_paths = paths
        return paths

    def lockfile_for(self, repo: Path) -> Path:
        """Path of a repository's own lock file."""
        return repo / self.settings.lockfile_name

    def host_lockfile(self) -> Path:
        """Lock file the host plugin manager reads and writes."""
        if self.settings.host_lockfile:
            return Path(self.settings.host_lockfile).expanduser()
        repos = self.repository_paths()
        root = repos[0] if repos else DEFAULT_REPOSITORY
        return root / self.settings.lockfile_name

    def plugins_dir(self) -> Path:
        """Directory holding installed plugins."""
        if self.settings.plugins_dir:
            return Path(self.settings.plugins_dir).expanduser()
        return DATA_DIR / "lazy"

    def set_repositories(self, repositories: List[str]) -> None:
        """Replace the configured repositories and persist."""
        data = self.settings.model_dump()
        data["repositories"] = list(repositories)
        self.settings = RepoLockSettings(**data)
        self.clear_cache()
        self._save()
        logger.info(f"Configured {len(self.settings.repositories)} repositories")

    def as_dict(self) -> Dict[str, Any]:
        return self.settings.model_dump()

    def clear_cache(self) -> None:
        """Forget resolved repository paths."""
        self._repository_paths = None

    def reload(self) -> None:
        """Reload config from disk."""
        self.settings = self._load()
        self.clear_cache()
