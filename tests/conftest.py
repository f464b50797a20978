"""Shared fixtures for repolock tests."""

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from repolock.builder import IndexBuilder
from repolock.config import ConfigService, RepoLockSettings
from repolock.driver import TaskDriver
from repolock.index import SourceCache, SourceIndex
from repolock.models import GitInfo, HostPlugin
from repolock.reconcile import Reconciler


def write_file(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class FakeHost:
    """In-memory host plugin manager."""

    def __init__(self, root: Path):
        self.root = root
        self.plugins_dir = root / "lazy"
        self.plugins_dir.mkdir(parents=True, exist_ok=True)
        self._lockfile = root / "host" / "lazy-lock.json"
        self._plugins: List[HostPlugin] = []
        self.infos: Dict[str, GitInfo] = {}
        self.git_calls: List[str] = []

    @property
    def lockfile(self) -> Path:
        return self._lockfile

    def install(self, name: str, branch: str = "main", commit: Optional[str] = None, recipe: Optional[str] = None):
        """Add an installed plugin with live git info and an optional recipe file."""
        plugin_dir = self.plugins_dir / name
        plugin_dir.mkdir(parents=True, exist_ok=True)
        if recipe is not None:
            write_file(plugin_dir / "lazy.lua", recipe)
        self._plugins.append(HostPlugin(name=name, dir=plugin_dir, installed=True))
        self.infos[name] = GitInfo(branch=branch, commit=commit or f"{name}-sha")
        return plugin_dir

    def disable(self, name: str):
        """Add a known but inactive plugin."""
        self._plugins.append(HostPlugin(name=name, dir=self.plugins_dir / name, installed=False))

    def add_local(self, name: str):
        self._plugins.append(HostPlugin(name=name, dir=self.plugins_dir / name, installed=True, is_local=True))

    def uninstall(self, name: str):
        self._plugins = [p for p in self._plugins if p.name != name]
        self.infos.pop(name, None)
        plugin_dir = self.plugins_dir / name
        if plugin_dir.exists():
            for f in sorted(plugin_dir.rglob("*"), reverse=True):
                f.unlink() if f.is_file() else f.rmdir()
            plugin_dir.rmdir()

    def plugins(self) -> List[HostPlugin]:
        return list(self._plugins)

    def plugin_dir(self, name: str) -> Optional[Path]:
        path = self.plugins_dir / name
        return path if path.is_dir() else None

    def git_info(self, plugin: HostPlugin) -> Optional[GitInfo]:
        self.git_calls.append(plugin.name)
        return self.infos.get(plugin.name)


class FakeHistory:
    """Stands in for the lock file committed at HEAD."""

    def __init__(self, lockfile=None):
        self.lockfile = lockfile

    def get(self):
        return self.lockfile

    def clear(self):
        self.lockfile = None


@pytest.fixture
def host(tmp_path):
    return FakeHost(tmp_path)


@pytest.fixture
def repos(tmp_path):
    """Two empty repositories, R1 before R2."""
    r1 = tmp_path / "r1"
    r2 = tmp_path / "r2"
    r1.mkdir()
    r2.mkdir()
    return r1.resolve(), r2.resolve()


def make_config(*repositories: Path, **overrides) -> ConfigService:
    settings = RepoLockSettings(repositories=[str(r) for r in repositories], **overrides)
    return ConfigService(settings=settings)


@pytest.fixture
def engine(tmp_path, repos, host):
    """A wired builder/index/reconciler over the two repositories."""

    class Engine:
        pass

    e = Engine()
    e.config = make_config(*repos)
    e.driver = TaskDriver()
    e.index = SourceIndex(SourceCache(tmp_path / "data" / "source_cache.json"))
    e.builder = IndexBuilder(e.config, e.index, host, driver=e.driver)
    e.history = FakeHistory()
    e.reconciler = Reconciler(e.config, e.index, e.builder, host, e.history, driver=e.driver)
    return e
