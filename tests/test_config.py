"""
Tests for bkm/config.py configuration management.

Tests the layered configuration: defaults, config files, environment
variables and command-line overrides.
"""
import os
import pytest
import tomli
from pathlib import Path

from bkm import config as config_module
from bkm.config import BkmConfig, get_config, init_config


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Fresh home and working directory with no BKM_ variables set."""
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(work)
    for key in list(os.environ):
        if key.startswith("BKM_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr(config_module, "_config", None)
    return home, work


class TestBkmConfigDefaults:

    def test_defaults(self):
        config = BkmConfig()

        assert config.database == "bkm.db"
        assert config.database_url is None
        assert config.queue_maxsize == 256
        assert config.batch_saves is True
        assert config.stop_timeout == 30.0
        assert config.output_format == "table"
        assert config.log_level == "INFO"


class TestConfigLoading:

    def test_load_without_files_uses_defaults(self, isolated):
        assert BkmConfig.load() == BkmConfig()

    def test_user_config(self, isolated):
        home, _ = isolated
        user_config = home / ".config" / "bkm" / "config.toml"
        user_config.parent.mkdir(parents=True)
        user_config.write_text('output_format = "json"\nqueue_maxsize = 16\n')

        config = BkmConfig.load()

        assert config.output_format == "json"
        assert config.queue_maxsize == 16

    def test_local_config_overrides_user_config(self, isolated):
        home, work = isolated
        user_config = home / ".config" / "bkm" / "config.toml"
        user_config.parent.mkdir(parents=True)
        user_config.write_text('output_format = "json"\n')
        (work / "bkm.toml").write_text('output_format = "plain"\n')

        assert BkmConfig.load().output_format == "plain"

    def test_explicit_file_wins_over_local(self, isolated, tmp_path):
        _, work = isolated
        (work / "bkm.toml").write_text("batch_saves = true\n")
        explicit = tmp_path / "explicit.toml"
        explicit.write_text("batch_saves = false\n")

        assert BkmConfig.load(explicit).batch_saves is False

    def test_unknown_keys_are_ignored(self, isolated):
        _, work = isolated
        (work / "bkm.toml").write_text('unknown_option = "x"\n')

        config = BkmConfig.load()

        assert not hasattr(config, "unknown_option")


class TestEnvironment:

    def test_env_vars_are_typed(self, isolated, monkeypatch):
        monkeypatch.setenv("BKM_BATCH_SAVES", "no")
        monkeypatch.setenv("BKM_QUEUE_MAXSIZE", "8")
        monkeypatch.setenv("BKM_STOP_TIMEOUT", "2.5")
        monkeypatch.setenv("BKM_LOG_LEVEL", "debug")

        config = BkmConfig.load()

        assert config.batch_saves is False
        assert config.queue_maxsize == 8
        assert config.stop_timeout == 2.5
        assert config.log_level == "debug"

    def test_env_overrides_files(self, isolated, monkeypatch):
        _, work = isolated
        (work / "bkm.toml").write_text('database = "from_file.db"\n')
        monkeypatch.setenv("BKM_DATABASE", "from_env.db")

        assert BkmConfig.load().database == "from_env.db"

    def test_database_path_expands_home(self, isolated, monkeypatch):
        home, _ = isolated
        monkeypatch.setenv("BKM_DATABASE", "~/bookmarks.db")

        config = BkmConfig.load()

        assert config.get_database_path() == Path(str(home)) / "bookmarks.db"


class TestSaveAndGlobals:

    def test_save_skips_none_values(self, isolated, tmp_path):
        path = tmp_path / "out" / "config.toml"

        BkmConfig(output_format="json").save(path)

        with open(path, "rb") as f:
            data = tomli.load(f)
        assert data["output_format"] == "json"
        assert "database_url" not in data

    def test_saved_config_loads_back(self, isolated, tmp_path):
        path = tmp_path / "config.toml"
        BkmConfig(queue_maxsize=4, export_pretty=False).save(path)

        config = BkmConfig.load(path)

        assert config.queue_maxsize == 4
        assert config.export_pretty is False

    def test_relative_database_path_resolves_against_cwd(self, isolated):
        _, work = isolated
        assert BkmConfig(database="x.db").get_database_path() == Path.cwd() / "x.db"

    def test_get_config_is_cached(self, isolated):
        assert get_config() is get_config()

    def test_init_config_applies_overrides(self, isolated):
        config = init_config(database="cli.db", output_format="json", batch_saves=None)

        assert config.database == "cli.db"
        assert config.output_format == "json"
        assert config.batch_saves is True


class TestSet:

    def test_set_converts_to_setting_type(self):
        config = BkmConfig()

        config.set("color_output", "false")
        config.set("queue_maxsize", "12")
        config.set("database_url", "sqlite:///elsewhere.db")

        assert config.color_output is False
        assert config.queue_maxsize == 12
        assert config.database_url == "sqlite:///elsewhere.db"

    def test_set_unknown_key_raises(self):
        with pytest.raises(KeyError):
            BkmConfig().set("no_such_setting", "1")

    def test_save_defaults_to_user_file(self, isolated):
        home, _ = isolated

        path = BkmConfig(log_level="DEBUG").save()

        assert path == home / ".config" / "bkm" / "config.toml"
        assert BkmConfig.load().log_level == "DEBUG"
