"""Tests for settings loading."""

import json
from pathlib import Path

from burrow.config import (
    CONFIG_ENV_VAR,
    MIB,
    Settings,
    config_path,
    expand_path,
    load_settings,
)


class TestDefaults:
    def test_timeouts(self):
        settings = Settings()
        assert settings.du_timeout == 30
        assert settings.metadata_timeout == 5
        assert settings.open_timeout == 10

    def test_cache_windows(self):
        settings = Settings()
        assert settings.cache_ttl_seconds == 7 * 24 * 3600
        assert settings.cache_grace_seconds == 30 * 60

    def test_large_file_limits(self):
        settings = Settings()
        assert settings.large_file_min_size == 100 * MIB
        assert settings.large_file_prefilter == MIB
        assert settings.max_large_files == 20

    def test_cache_path_under_cache_dir(self, tmp_path):
        settings = Settings(cache_dir=str(tmp_path))
        assert settings.cache_path == tmp_path / "overview_sizes.json"
        assert settings.log_path == tmp_path / "burrow.log"


class TestConfigPath:
    def test_override_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.json"))
        assert config_path(str(tmp_path / "cli.json")) == tmp_path / "cli.json"

    def test_environment_variable(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.json"))
        assert config_path() == tmp_path / "env.json"

    def test_default(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert config_path() == Path.home() / ".burrow" / "config.json"

    def test_expand_path(self):
        assert str(expand_path("~/x")).startswith(str(Path.home()))


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "missing.json")
        assert settings == Settings()

    def test_reads_values(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"max_large_files": 5, "protected_paths": ["~/Work"]}))
        settings = load_settings(path)
        assert settings.max_large_files == 5
        assert settings.protected_paths == ["~/Work"]

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"colour": "purple", "batch_size": 7}))
        assert load_settings(path).batch_size == 7

    def test_malformed_json_falls_back(self, tmp_path, caplog):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        settings = load_settings(path)
        assert settings == Settings()
        assert "Ignoring unreadable config" in caplog.text

    def test_invalid_values_fall_back(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"max_large_files": "many"}))
        assert load_settings(path) == Settings()
