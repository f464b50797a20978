"""Tests for the LockManager orchestrator."""

import asyncio

import pytest

from repolock.lockfile import read_lockfile, write_lockfile
from repolock.manager import LockManager
from repolock.models import LockEntry, RefreshStatus, SourceEntry

from conftest import FakeHistory, make_config, write_file


@pytest.fixture
def manager(tmp_path, repos, host):
    manager = LockManager(make_config(*repos), host, data_dir=tmp_path / "data")
    manager.historical = manager.reconciler.historical = FakeHistory()
    return manager


def lock_names(manager, repo):
    return set(read_lockfile(manager.config.lockfile_for(repo)))


class TestSync:
    """Tests for sync entry points."""

    def test_sync_writes_lockfiles(self, manager, repos, host):
        r1, r2 = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        write_file(r2 / "plugins" / "b.lua", 'return { "o/plugin-b" }')
        host.install("plugin-a")
        host.install("plugin-b")

        result = manager.sync()

        assert result.ok
        assert lock_names(manager, r1) == {"plugin-a"}
        assert lock_names(manager, r2) == {"plugin-b"}
        assert manager.cache.cache_file.is_file()

    def test_ensure_lockfiles_updated(self, manager, repos, host):
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        host.install("plugin-a")

        assert manager.ensure_lockfiles_updated().ok
        assert lock_names(manager, r1) == {"plugin-a"}

    def test_sync_error_returns_none(self, manager):
        def boom(*args, **kwargs):
            raise RuntimeError("broken")

        manager.reconciler.reconcile = boom

        assert manager.sync() is None

    def test_sync_async(self, manager, repos, host):
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        host.install("plugin-a")

        result = asyncio.run(manager.sync_async())

        assert result.ok
        assert lock_names(manager, r1) == {"plugin-a"}

    def test_newer_sync_supersedes_older(self, manager, repos, host):
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        host.install("plugin-a")

        async def main():
            return await asyncio.gather(manager.sync_async(), manager.sync_async())

        first, second = asyncio.run(main())

        assert first is None
        assert second.ok
        assert lock_names(manager, r1) == {"plugin-a"}


class TestHostHooks:
    """Tests for on_update / on_clean_pre."""

    def test_on_update_runs_host_update_first(self, manager, repos, host):
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        host.install("plugin-a")
        calls = []

        assert manager.on_update(lambda: calls.append("host"))
        assert calls == ["host"]
        assert lock_names(manager, r1) == {"plugin-a"}

    def test_host_update_failure_skips_sync(self, manager, repos, host):
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        host.install("plugin-a")

        def failing_update():
            raise RuntimeError("host failed")

        assert manager.on_update(failing_update) is False
        assert not manager.config.lockfile_for(r1).exists()

    def test_clean_keeps_declared_plugins(self, manager, repos, host):
        """Uninstalling a still-declared plugin keeps its entry."""
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a", "o/plugin-b" }')
        host.install("plugin-a")
        host.install("plugin-b", commit="bbb")
        manager.sync()

        manager.on_clean_pre()
        host.uninstall("plugin-b")
        assert manager.on_update(lambda: None)

        lock = read_lockfile(manager.config.lockfile_for(r1))
        assert set(lock) == {"plugin-a", "plugin-b"}
        assert lock["plugin-b"].commit == "bbb"

    def test_clean_drops_undeclared_plugins(self, manager, repos, host):
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        host.install("plugin-a")
        write_lockfile(
            manager.config.lockfile_for(r1),
            {"plugin-old": LockEntry(branch="main", commit="old")},
        )

        manager.on_clean_pre()
        manager.on_update(lambda: None)

        assert lock_names(manager, r1) == {"plugin-a"}

    def test_clean_drops_plugin_whose_declaration_was_removed(self, manager, repos, host):
        """A synced plugin removed from its declaration and uninstalled is not restored."""
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a", "o/plugin-b" }')
        host.install("plugin-a")
        host.install("plugin-b")
        manager.sync()

        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        manager.on_clean_pre()
        host.uninstall("plugin-b")
        assert manager.on_update(lambda: None)

        assert lock_names(manager, r1) == {"plugin-a"}

    def test_new_manager_ignores_stale_cached_source(self, tmp_path, repos, host):
        """A cache left by an earlier run does not keep an undeclared plugin locked."""
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a", "o/plugin-b" }')
        host.install("plugin-a")
        host.install("plugin-b")
        first = LockManager(make_config(*repos), host, data_dir=tmp_path / "data")
        first.historical = first.reconciler.historical = FakeHistory()
        first.sync()

        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        second = LockManager(make_config(*repos), host, data_dir=tmp_path / "data")
        second.historical = second.reconciler.historical = FakeHistory()
        second.sync()

        assert lock_names(second, r1) == {"plugin-a"}
        assert second.cache.get("plugin-b") is None

    def test_snapshot_consumed_after_update(self, manager, repos, host):
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        host.install("plugin-a")
        manager.sync()

        manager.on_clean_pre()
        assert manager._pre_clean
        manager.on_update(lambda: None)

        assert manager._pre_clean == {}

    def test_on_update_async(self, manager, repos, host):
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        host.install("plugin-a")

        assert asyncio.run(manager.on_update_async(lambda: None))
        assert lock_names(manager, r1) == {"plugin-a"}


class TestRefresh:
    """Tests for refresh, clear_all and source_of."""

    def test_targeted_refresh_reports(self, manager, repos, host):
        r1, r2 = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a", "o/plugin-u" }')
        host.install("plugin-a")
        host.install("plugin-u")
        manager.sync()

        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-u" }')
        write_file(r2 / "plugins" / "b.lua", 'return { "o/plugin-a", "o/plugin-n" }')

        reports = manager.refresh(["plugin-a", "plugin-n", "plugin-u", "ghost"])

        statuses = {r.name: r.status for r in reports}
        assert statuses == {
            "plugin-a": RefreshStatus.MOVED,
            "plugin-n": RefreshStatus.DETECTED,
            "plugin-u": RefreshStatus.UNCHANGED,
            "ghost": RefreshStatus.NOT_FOUND,
        }
        moved = reports[0]
        assert (moved.old_repo, moved.new_repo) == (r1, r2)
        assert "plugin-a" in lock_names(manager, r2)

    def test_targeted_refresh_leaves_other_plugins(self, manager, repos, host):
        r1, r2 = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a", "o/plugin-b" }')
        host.install("plugin-a")
        host.install("plugin-b")
        manager.sync()

        (r1 / "plugins" / "a.lua").unlink()
        write_file(r2 / "plugins" / "b.lua", 'return { "o/plugin-a", "o/plugin-b" }')
        manager.refresh(["plugin-a"])

        assert manager.index.get("plugin-a").repo == r2
        assert manager.index.get("plugin-b").repo == r1

    def test_full_refresh_rebuilds(self, manager, repos, host):
        r1, r2 = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        host.install("plugin-a")
        manager.sync()

        (r1 / "plugins" / "a.lua").unlink()
        write_file(r2 / "plugins" / "b.lua", 'return { "o/plugin-a" }')

        assert manager.refresh() == []
        assert manager.index.get("plugin-a").repo == r2
        assert lock_names(manager, r2) == {"plugin-a"}

    def test_clear_all(self, manager, repos, host):
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')
        host.install("plugin-a")
        manager.sync()

        manager.clear_all()

        assert not manager.index.is_built
        assert not manager.cache.cache_file.exists()
        assert manager.cache.get("plugin-a") is None

    def test_source_of_builds_lazily(self, manager, repos):
        r1, _ = repos
        write_file(r1 / "plugins" / "a.lua", 'return { "o/plugin-a" }')

        assert manager.source_of("plugin-a") == SourceEntry(r1)
        assert manager.index.is_built
        assert manager.source_of("missing") is None
