"""Tests for ConfigService."""

import json

from repolock.config import ConfigService, RepoLockSettings


class TestRepoLockSettings:
    """Tests for settings validation."""

    def test_repositories_deduplicated_in_order(self):
        settings = RepoLockSettings(repositories=["/b", "/a", "/b"])
        assert settings.repositories == ["/b", "/a"]

    def test_defaults(self):
        settings = RepoLockSettings()
        assert settings.lockfile_name == "lazy-lock.json"
        assert settings.recipe_file == "lazy.lua"
        assert settings.bootstrap_plugin == "lazy.nvim"
        assert len(settings.repositories) == 1


class TestConfigService:
    """Tests for loading, saving and repository resolution."""

    def test_load_from_file(self, tmp_path, repos):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"repositories": [str(r) for r in repos], "local_plugins": ["dev"]}))

        config = ConfigService(config_file)

        assert config.repository_paths() == list(repos)
        assert config.settings.local_plugins == ["dev"]

    def test_invalid_json_falls_back_to_defaults(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text("{ nope")

        config = ConfigService(config_file)

        assert config.settings == RepoLockSettings()

    def test_invalid_values_fall_back_to_defaults(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"repositories": "not-a-list"}))

        assert ConfigService(config_file).settings == RepoLockSettings()

    def test_missing_directories_are_skipped(self, tmp_path, repos):
        r1, _ = repos
        config = ConfigService(settings=RepoLockSettings(repositories=[str(tmp_path / "missing"), str(r1)]))
        assert config.repository_paths() == [r1]

    def test_symlinks_resolved_and_deduplicated(self, tmp_path, repos):
        r1, _ = repos
        link = tmp_path / "link"
        link.symlink_to(r1, target_is_directory=True)
        config = ConfigService(settings=RepoLockSettings(repositories=[str(link), str(r1)]))

        assert config.repository_paths() == [r1]

    def test_paths_cached_until_cleared(self, tmp_path):
        repo = tmp_path / "later"
        config = ConfigService(settings=RepoLockSettings(repositories=[str(repo)]))
        assert config.repository_paths() == []

        repo.mkdir()
        assert config.repository_paths() == []

        config.clear_cache()
        assert config.repository_paths() == [repo.resolve()]

    def test_set_repositories_persists(self, tmp_path, repos):
        config_file = tmp_path / "conf" / "config.json"
        config = ConfigService(config_file)

        config.set_repositories([str(r) for r in repos] + [str(repos[0])])

        saved = json.loads(config_file.read_text())
        assert saved["repositories"] == [str(r) for r in repos]
        assert ConfigService(config_file).repository_paths() == list(repos)

    def test_lockfile_locations(self, tmp_path, repos):
        r1, _ = repos
        config = ConfigService(settings=RepoLockSettings(repositories=[str(r) for r in repos]))

        assert config.lockfile_for(r1) == r1 / "lazy-lock.json"
        assert config.host_lockfile() == r1 / "lazy-lock.json"

        config.settings.host_lockfile = str(tmp_path / "host.json")
        assert config.host_lockfile() == tmp_path / "host.json"

    def test_reload(self, tmp_path, repos):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"repositories": [str(repos[0])]}))
        config = ConfigService(config_file)
        assert config.repository_paths() == [repos[0]]

        config_file.write_text(json.dumps({"repositories": [str(repos[1])]}))
        config.reload()

        assert config.repository_paths() == [repos[1]]
