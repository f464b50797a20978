"""Lockfile reconciliation - splits the host lock file into per-repository lock files."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from repolock.builder import IndexBuilder
from repolock.config import ConfigService
from repolock.driver import TaskDriver
from repolock.host import HostPluginManager
from repolock.index import SourceIndex
from repolock.lockfile import HistoricalLockfile, Lockfile, read_lockfile, write_lockfile
from repolock.models import HostPlugin, LockEntry, SyncResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]
Grouped = Dict[Path, Dict[str, LockEntry]]


@dataclass
class _Resolved:
    repo: Path
    entry: Optional[LockEntry]


class Reconciler:
    """Computes and writes one lock file per repository.

    Each plugin's entry comes from live git state when installed, otherwise
    from the host lock file, otherwise from the host lock file at git HEAD.
    Two cascades then re-admit recipe children whose parent survived.
    """

    def __init__(
        self,
        config: ConfigService,
        index: SourceIndex,
        builder: IndexBuilder,
        host: HostPluginManager,
        historical: Optional[HistoricalLockfile] = None,
        driver: Optional[TaskDriver] = None,
    ):
        self.config = config
        self.index = index
        self.builder = builder
        self.host = host
        self.historical = historical
        self.driver = driver or builder.driver

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def collect_plugins(self) -> List[HostPlugin]:
        """Known plugins, first occurrence of each name, minus local overrides."""
        plugins: Dict[str, HostPlugin] = {}
        for plugin in self.host.plugins():
            if not plugin.name or plugin.name in plugins:
                continue
            if plugin.is_local or plugin.name in self.config.settings.local_plugins:
                continue
            plugins[plugin.name] = plugin
        return list(plugins.values())

    def load_sources(self) -> Tuple[Lockfile, Optional[Lockfile]]:
        """Current host lock file and the one committed at HEAD."""
        current = read_lockfile(self.host.lockfile)
        original = self.historical.get() if self.historical else None
        return current, original

    # ------------------------------------------------------------------
    # Per-plugin resolution
    # ------------------------------------------------------------------

    def resolve_plugin(
        self,
        plugin: HostPlugin,
        current: Lockfile,
        original: Optional[Lockfile],
    ) -> Optional[_Resolved]:
        """Owning repository and lock entry for one plugin.

        Returns None when the plugin is not declared in any repository. The
        entry is None when no source has data for it this pass.
        """
        source = self.index.resolve(plugin.name, self.config.repository_paths())
        if source is None:
            logger.debug(f"No source repository for {plugin.name}")
            return None

        entry: Optional[LockEntry] = None
        if plugin.installed:
            info = self.host.git_info(plugin)
            if info is not None:
                entry = LockEntry(branch=info.branch, commit=info.commit, source=source.parent)
        else:
            entry = current.get(plugin.name)
            if entry is None and original:
                entry = original.get(plugin.name)

        return _Resolved(source.repo, entry)

    @staticmethod
    def group(resolved: Dict[str, Optional[_Resolved]]) -> Grouped:
        grouped: Grouped = {}
        for name, result in resolved.items():
            if result is None or result.entry is None:
                continue
            grouped.setdefault(result.repo, {})[name] = result.entry
        return grouped

    # ------------------------------------------------------------------
    # Cascades
    # ------------------------------------------------------------------

    def cascade_from_repo_lockfiles(self, grouped: Grouped) -> None:
        """Re-admit children from each repository's previous lock file whose parent is present."""
        for repo, plugins in grouped.items():
            previous = read_lockfile(self.config.lockfile_for(repo))
            for name, entry in previous.items():
                if name not in plugins and entry.source and entry.source in plugins:
                    plugins[name] = entry

    @staticmethod
    def cascade_from_history(grouped: Grouped, original: Optional[Lockfile]) -> None:
        """Admit children from the HEAD lock file whose parent is present somewhere."""
        if not original:
            return
        for name in sorted(original):
            entry = original[name]
            if not entry.source:
                continue
            if any(name in plugins for plugins in grouped.values()):
                continue
            for plugins in grouped.values():
                if entry.source in plugins:
                    plugins[name] = entry
                    break

    def finalize(self, grouped: Grouped, original: Optional[Lockfile]) -> Grouped:
        self.cascade_from_repo_lockfiles(grouped)
        self.cascade_from_history(grouped, original)
        return grouped

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def write(self, grouped: Grouped) -> SyncResult:
        """Overwrite each repository's lock file; one failure does not stop the rest."""
        result = SyncResult(lockfiles=grouped)
        for repo in sorted(grouped):
            path = self.config.lockfile_for(repo)
            try:
                write_lockfile(path, grouped[repo])
                result.written.append(path)
            except OSError as e:
                logger.error(f"Error writing lockfile {path}: {e}")
                result.failed[path] = str(e)
        self.index.cache.flush()
        return result

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def reconcile(
        self,
        progress: Optional[ProgressCallback] = None,
        targets: Optional[List[str]] = None,
    ) -> SyncResult:
        """Rebuild the index, compute every repository's lock file and write them."""
        self.builder.build(progress=progress, targets=targets)
        plugins = self.collect_plugins()
        current, original = self.load_sources()

        resolved = {plugin.name: self.resolve_plugin(plugin, current, original) for plugin in plugins}
        grouped = self.finalize(self.group(resolved), original)

        if progress:
            progress(1, 1, "Writing lockfiles...")
        return self.write(grouped)

    async def reconcile_async(
        self,
        progress: Optional[ProgressCallback] = None,
        targets: Optional[List[str]] = None,
    ) -> SyncResult:
        """Same as ``reconcile`` with the index build and per-plugin work spread over loop ticks.

        Raises:
            BatchCancelled: if a newer operation superseded this one
        """
        await self.builder.build_async(progress=progress, targets=targets)

        plugins = self.collect_plugins()
        current, original = self.load_sources()

        resolved = await self.driver.process(
            plugins,
            lambda plugin: self.resolve_plugin(plugin, current, original),
            title="Resolving plugin sources",
            get_item_name=lambda plugin: plugin.name,
        )
        grouped = self.finalize(self.group(resolved), original)

        if progress:
            progress(1, 1, "Writing lockfiles...")
        return self.write(grouped)
