"""Host plugin manager contract and a directory-backed implementation."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from repolock import git
from repolock.lockfile import read_lockfile
from repolock.models import GitInfo, HostPlugin

logger = logging.getLogger(__name__)


@runtime_checkable
class HostPluginManager(Protocol):
    """What repolock needs from the plugin manager it extends."""

    @property
    def lockfile(self) -> Path:
        """The single lock file the host itself reads and writes."""
        ...

    def plugins(self) -> Iterable[HostPlugin]:
        """Every plugin the host knows about: installed, disabled and declared."""
        ...

    def plugin_dir(self, name: str) -> Optional[Path]:
        """Install directory of ``name`` if it is installed."""
        ...

    def git_info(self, plugin: HostPlugin) -> Optional[GitInfo]:
        """Live branch/commit of an installed plugin."""
        ...


class DirectoryHost:
    """Host backed by a directory of plugin checkouts.

    Every subdirectory of ``plugins_dir`` is an installed plugin. Plugins in
    the host lock file or in ``disabled`` that are not installed are known
    but inactive. Names in ``local`` (and symlinked checkouts) are unmanaged.
    """

    def __init__(
        self,
        plugins_dir: Path,
        lockfile: Path,
        disabled: Iterable[str] = (),
        local: Iterable[str] = (),
    ):
        self.plugins_dir = plugins_dir
        self._lockfile = lockfile
        self.disabled = list(disabled)
        self.local = set(local)
        self._git_info: Dict[Path, Optional[GitInfo]] = {}

    @property
    def lockfile(self) -> Path:
        return self._lockfile

    def _installed(self) -> List[Path]:
        if not self.plugins_dir.is_dir():
            return []
        return sorted(p for p in self.plugins_dir.iterdir() if p.is_dir() and not p.name.startswith("."))

    def plugins(self) -> List[HostPlugin]:
        plugins = []
        seen = set()

        for path in self._installed():
            seen.add(path.name)
            plugins.append(
                HostPlugin(
                    name=path.name,
                    dir=path,
                    installed=True,
                    is_local=path.name in self.local or path.is_symlink(),
                )
            )

        inactive = list(read_lockfile(self.lockfile)) + self.disabled
        for name in inactive:
            if name in seen:
                continue
            seen.add(name)
            plugins.append(
                HostPlugin(
                    name=name,
                    dir=self.plugins_dir / name,
                    installed=False,
                    is_local=name in self.local,
                )
            )

        return plugins

    def plugin_dir(self, name: str) -> Optional[Path]:
        path = self.plugins_dir / name
        return path if path.is_dir() else None

    def git_info(self, plugin: HostPlugin) -> Optional[GitInfo]:
        """Git state of a plugin checkout, cached per directory (misses too)."""
        if plugin.dir is None:
            return None
        if plugin.dir in self._git_info:
            return self._git_info[plugin.dir]

        info = git.get_info(plugin.dir)
        if info is None:
            logger.debug(f"No git info for {plugin.name} at {plugin.dir}")
        self._git_info[plugin.dir] = info
        return info

    def clear_cache(self) -> None:
        self._git_info = {}
