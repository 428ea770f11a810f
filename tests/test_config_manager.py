"""Tests for configuration persistence."""

import json
import os
import stat

import pytest

from config_manager import (
    DEFAULT_APP_SETTINGS,
    ENV_CONFIG_DIR,
    ConfigManager,
    get_default_registry_from_env,
)


@pytest.fixture
def config_manager(tmp_path):
    return ConfigManager(config_dir=tmp_path)


class TestLoadConfig:
    """Tests for reading the config file."""

    def test_defaults_without_file(self, config_manager):
        config = config_manager.load_config()

        assert config["registries"] == []
        assert config["app_settings"] == DEFAULT_APP_SETTINGS
        assert not config_manager.has_config()

    def test_corrupted_json_falls_back_to_defaults(self, config_manager):
        config_manager.config_file.write_text("{not json")
        assert config_manager.load_config()["registries"] == []

    def test_invalid_structure_falls_back_to_defaults(self, config_manager):
        config_manager.config_file.write_text(json.dumps({"registries": "nope"}))
        assert config_manager.load_config()["registries"] == []

    def test_invalid_entries_are_skipped(self, config_manager):
        config_manager.config_file.write_text(json.dumps({"registries": [
            {"id": "a", "url": "https://a.test", "username": None, "password": None},
            {"url": "https://missing-id.test"},
            "not-a-dict",
        ]}))

        registries = config_manager.load_registries()
        assert registries == [{"id": "a", "url": "https://a.test", "username": None, "password": None}]


class TestSaveConfig:
    """Tests for writing the config file."""

    def test_file_is_private(self, config_manager):
        assert config_manager.save_registries([{"id": "a", "url": "https://a.test"}])

        mode = stat.S_IMODE(os.stat(config_manager.config_file).st_mode)
        assert mode == 0o600

    def test_previous_config_is_backed_up(self, config_manager):
        config_manager.save_registries([{"id": "a", "url": "https://a.test"}])
        config_manager.save_registries([{"id": "b", "url": "https://b.test"}])

        backup = json.loads(config_manager.backup_file.read_text())
        assert [entry["id"] for entry in backup["registries"]] == ["a"]
        assert [entry["id"] for entry in config_manager.load_registries()] == ["b"]

    def test_unknown_fields_are_not_stored(self, config_manager):
        config_manager.save_registries([{"id": "a", "url": "https://a.test", "connected": True}])

        stored = json.loads(config_manager.config_file.read_text())
        assert stored["registries"] == [{"id": "a", "url": "https://a.test", "username": None, "password": None}]


class TestAppSettings:
    def test_stored_settings_override_defaults(self, config_manager):
        config = config_manager.load_config()
        config["app_settings"] = {"request_timeout": 5, "unknown": "ignored"}
        config_manager.save_config(config)

        settings = config_manager.get_app_settings()
        assert settings["request_timeout"] == 5
        assert settings["verify_tls"] is True
        assert "unknown" not in settings

    def test_config_info(self, config_manager):
        config_manager.save_registries([{"id": "a", "url": "https://a.test"}])
        info = config_manager.get_config_info()

        assert info["config_exists"] is True
        assert info["registry_count"] == 1
        assert info["config_dir"] == str(config_manager.config_dir)


class TestEnvironment:
    """Tests for environment driven configuration."""

    def test_config_dir_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv(ENV_CONFIG_DIR, str(tmp_path / "from-env"))
        config_manager = ConfigManager()
        assert config_manager.config_dir == tmp_path / "from-env"
        assert config_manager.config_dir.is_dir()

    def test_default_registry_from_environment(self):
        default = get_default_registry_from_env({
            "WHARF_REGISTRY_URL": " https://registry.test/ ",
            "WHARF_REGISTRY_USERNAME": "admin",
            "WHARF_REGISTRY_PASSWORD": "",
        })
        assert default == {"url": "https://registry.test", "username": "admin", "password": None}

    def test_no_default_without_url(self):
        assert get_default_registry_from_env({"WHARF_REGISTRY_USERNAME": "admin"}) is None
