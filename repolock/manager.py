"""Lock manager - top-level orchestrator wiring repolock into a host plugin manager."""

import logging
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional

from repolock.builder import IndexBuilder
from repolock.config import ConfigService
from repolock.constants import CONFIG_FILE, DATA_DIR, HISTORICAL_CACHE_FILE, SOURCE_CACHE_FILE
from repolock.driver import TaskDriver
from repolock.errors import BatchCancelled
from repolock.host import DirectoryHost, HostPluginManager
from repolock.index import SourceCache, SourceIndex
from repolock.lockfile import HistoricalLockfile
from repolock.models import RefreshReport, RefreshStatus, SourceEntry, SyncResult
from repolock.reconcile import Reconciler
from repolock.restore import Snapshot, capture_snapshot, restore_removed
from repolock.utils import format_path

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class LockManager:
    """Top-level repolock orchestrator.

    Owns the index, caches and driver, and exposes the hooks an embedding
    layer connects to the host: ``on_clean_pre`` before a bulk uninstall and
    ``on_update`` around the host's own lock file update. Nothing here ever
    stops the host's own operation.
    """

    def __init__(
        self,
        config: ConfigService,
        host: HostPluginManager,
        data_dir: Path = DATA_DIR,
        driver: Optional[TaskDriver] = None,
    ):
        self.config = config
        self.host = host
        self.data_dir = data_dir
        self.driver = driver or TaskDriver()

        self.cache = SourceCache(data_dir / SOURCE_CACHE_FILE)
        self.index = SourceIndex(self.cache, config.settings.bootstrap_plugin)
        self.builder = IndexBuilder(config, self.index, host, driver=self.driver)
        self.historical = HistoricalLockfile(host.lockfile, data_dir / HISTORICAL_CACHE_FILE)
        self.reconciler = Reconciler(
            config, self.index, self.builder, host, self.historical, driver=self.driver
        )

        self._pre_clean: Snapshot = {}

    @classmethod
    def from_config(cls, config_file: Path = CONFIG_FILE, data_dir: Path = DATA_DIR) -> "LockManager":
        """Manager over a DirectoryHost described by the config file."""
        config = ConfigService(config_file)
        host = DirectoryHost(
            plugins_dir=config.plugins_dir(),
            lockfile=config.host_lockfile(),
            disabled=config.settings.disabled_plugins,
            local=config.settings.local_plugins,
        )
        return cls(config, host, data_dir=data_dir)

    def _clear_host_cache(self) -> None:
        clear = getattr(self.host, "clear_cache", None)
        if callable(clear):
            clear()

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync(
        self,
        progress: Optional[ProgressCallback] = None,
        targets: Optional[List[str]] = None,
    ) -> Optional[SyncResult]:
        """Reconcile and write every repository's lock file (blocking).

        Returns:
            SyncResult, or None if the pass failed
        """
        self._clear_host_cache()
        try:
            result = self.reconciler.reconcile(progress=progress, targets=targets)
        except Exception as e:
            logger.error(f"Error managing lockfiles: {e}")
            return None
        logger.info(f"Lockfiles synced ({len(result.written)} written)")
        return result

    async def sync_async(
        self,
        progress: Optional[ProgressCallback] = None,
        targets: Optional[List[str]] = None,
    ) -> Optional[SyncResult]:
        """Reconcile without blocking the event loop.

        A newer sync supersedes this one, in which case None is returned and
        nothing is written.
        """
        self._clear_host_cache()
        try:
            result = await self.reconciler.reconcile_async(progress=progress, targets=targets)
        except BatchCancelled:
            logger.debug("Lockfile sync superseded by a newer operation")
            return None
        except Exception as e:
            logger.error(f"Error managing lockfiles: {e}")
            return None
        logger.info(f"Lockfiles synced ({len(result.written)} written)")
        return result

    def ensure_lockfiles_updated(self) -> Optional[SyncResult]:
        """Sync once after wiring, for plugins installed before the hooks existed."""
        try:
            return self.sync()
        except Exception as e:
            logger.error(f"Error updating lockfiles after setup: {e}")
            return None

    # ------------------------------------------------------------------
    # Host hooks
    # ------------------------------------------------------------------

    def on_clean_pre(self) -> None:
        """Snapshot every repository lock file before the host uninstalls plugins."""
        try:
            self._pre_clean = capture_snapshot(self.config)
        except Exception as e:
            logger.warning(f"Could not capture lockfiles before clean: {e}")
            self._pre_clean = {}

    def _restore_after_clean(self) -> None:
        if not self._pre_clean:
            return
        try:
            restore_removed(self._pre_clean, self.config, self.index)
        except Exception as e:
            logger.error(f"Error restoring cleaned plugins: {e}")
        finally:
            self._pre_clean = {}

    def on_update(self, update: Callable[[], Any]) -> bool:
        """Run the host's lock file update, then split it into repository lock files.

        If the host update raises, the error is logged and repolock does
        nothing further.

        Returns:
            True if the repository lock files were written
        """
        try:
            update()
        except Exception as e:
            logger.error(f"Error in host lockfile update: {e}")
            return False

        result = self.sync()
        self._restore_after_clean()
        return result is not None and result.ok

    async def on_update_async(self, update: Callable[[], Any]) -> bool:
        """Async ``on_update``; a superseded pass keeps the clean snapshot for the next one."""
        try:
            update()
        except Exception as e:
            logger.error(f"Error in host lockfile update: {e}")
            return False

        result = await self.sync_async()
        if result is None:
            return False
        self._restore_after_clean()
        return result.ok

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        """Forget the index and every cache."""
        self.driver.cancel_current()
        self.index.clear()
        self.cache.clear()
        self.historical.clear()
        self.config.clear_cache()
        self._clear_host_cache()
        logger.info("Cleared plugin source index")

    def _previous_sources(self, names: List[str]) -> dict:
        return {name: self.index.get(name) or self.cache.get(name) for name in names}

    def _report(self, names: List[str], previous: dict) -> List[RefreshReport]:
        reports = []
        for name in names:
            old = previous.get(name)
            old_repo = old.repo if old else None
            new = self.index.get(name)
            new_repo = new.repo if new else None

            if new_repo is None:
                status = RefreshStatus.NOT_FOUND
                logger.warning(f"Plugin '{name}' not found in any configured repository")
            elif old_repo is None:
                status = RefreshStatus.DETECTED
                logger.info(f"Detected {name} source: {format_path(new_repo)}")
            elif old_repo != new_repo:
                status = RefreshStatus.MOVED
                logger.info(f"Moved {name} from {format_path(old_repo)} to {format_path(new_repo)}")
            else:
                status = RefreshStatus.UNCHANGED
                logger.info(f"{name} source unchanged ({format_path(new_repo)})")

            reports.append(RefreshReport(name, status, old_repo, new_repo))
        return reports

    def refresh(
        self,
        names: Iterable[str] = (),
        progress: Optional[ProgressCallback] = None,
    ) -> List[RefreshReport]:
        """Re-derive plugin sources and regenerate lock files.

        With no names everything is rebuilt from scratch. With names, only
        those plugins are retargeted; the rest of the index and cache stay.

        Returns:
            One report per requested name
        """
        names = list(names)
        if not names:
            self.clear_all()
            self.sync(progress)
            logger.info("Refreshed plugin source index and regenerated lockfiles")
            return []

        previous = self._previous_sources(names)
        self.cache.forget(names)
        self.sync(progress, targets=names)
        return self._report(names, previous)

    async def refresh_async(
        self,
        names: Iterable[str] = (),
        progress: Optional[ProgressCallback] = None,
    ) -> List[RefreshReport]:
        """Async ``refresh``; reports nothing if superseded."""
        names = list(names)
        if not names:
            self.clear_all()
            if await self.sync_async(progress) is not None:
                logger.info("Refreshed plugin source index and regenerated lockfiles")
            return []

        previous = self._previous_sources(names)
        self.cache.forget(names)
        if await self.sync_async(progress, targets=names) is None:
            return []
        return self._report(names, previous)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def source_of(self, name: str) -> Optional[SourceEntry]:
        """Where ``name`` is declared, building the index if needed."""
        repositories = self.config.repository_paths()
        entry = self.index.resolve(name, repositories)
        if entry is None and not self.index.is_built:
            self.builder.build()
            entry = self.index.resolve(name, repositories)
        return entry
