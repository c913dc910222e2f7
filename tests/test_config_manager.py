"""Tests for config/config_manager.py: defaults, YAML overrides and dotted keys."""

import os

import pytest
import yaml

from corpusview.config.config_manager import DEFAULT_CONFIG, ConfigManager


class TestConfigManager:
    def test_first_run_writes_defaults(self, tmp_path):
        path = tmp_path / "cfg" / "config.yaml"
        config = ConfigManager(str(path))
        assert path.exists()
        assert config.get("view.page_size") == 100
        assert config.page_size == 100

    def test_user_values_are_deep_merged(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"view": {"page_size": 25}, "system": {"pool_size": 1}}))
        config = ConfigManager(str(path))
        assert config.page_size == 25
        assert config.get("system.pool_size") == 1
        assert config.socket_path == DEFAULT_CONFIG["system"]["socket_path"]

    def test_set_persists(self, tmp_path):
        path = str(tmp_path / "config.yaml")
        ConfigManager(path).set("logging_level", "DEBUG")
        assert ConfigManager(path).logging_level == "DEBUG"

    def test_set_does_not_leak_into_defaults(self, tmp_path):
        ConfigManager(str(tmp_path / "config.yaml")).set("view.page_size", 5)
        assert DEFAULT_CONFIG["view"]["page_size"] == 100

    def test_missing_key_returns_default(self, tmp_path):
        config = ConfigManager(str(tmp_path / "config.yaml"))
        assert config.get("view.nope", 7) == 7
        assert config.get("view.page_size.deeper", "x") == "x"

    def test_database_path_is_expanded(self, tmp_path):
        config = ConfigManager(str(tmp_path / "config.yaml"))
        assert config.database_path == os.path.expanduser("~/.corpusview/files.db")

    def test_malformed_yaml_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("view: [unclosed\n")
        with pytest.raises(ValueError, match="Malformed"):
            ConfigManager(str(path))

    def test_invalid_page_size_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"view": {"page_size": 0}}))
        with pytest.raises(ValueError):
            ConfigManager(str(path)).page_size

    def test_default_path_follows_xdg(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        config = ConfigManager()
        assert config.config_path == str(tmp_path / "corpusview" / "config.yaml")
