"""Unit tests for environment-driven configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from cuebridge.src.services.config import DEFAULT_PLATFORMS, AppConfig, get_config, reload_config


ENV_KEYS = (
    "CUEBRIDGE_BASE_DIR",
    "CUEBRIDGE_RULES_DIR",
    "CUEBRIDGE_PLUGINS_DIR",
    "CUEBRIDGE_DATA_DIR",
    "CUEBRIDGE_PLATFORMS",
    "CUEBRIDGE_PLUGIN_LOAD_TIMEOUT",
    "CUEBRIDGE_ACTION_TIMEOUT",
    "CUEBRIDGE_STRICT_ACTIONS",
    "CUEBRIDGE_RELOAD_DEBOUNCE_MS",
    "CUEBRIDGE_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CUEBRIDGE_BASE_DIR", str(tmp_path))
    yield monkeypatch
    get_config.cache_clear()


class TestGetConfig:
    def test_defaults_resolve_under_base_dir(self, clean_env, tmp_path):
        config = reload_config()

        assert config.base_dir == tmp_path.resolve()
        assert config.rules_dir == (tmp_path / "rules").resolve()
        assert config.plugins_dir == (tmp_path / "plugins").resolve()
        assert config.data_dir == (tmp_path / "data").resolve()
        assert config.platforms == DEFAULT_PLATFORMS
        assert config.action_timeout is None
        assert config.strict_actions is False
        assert config.log_level == "INFO"

    def test_creates_rules_and_data_dirs(self, clean_env, tmp_path):
        reload_config()

        assert (tmp_path / "rules").is_dir()
        assert (tmp_path / "data").is_dir()

    def test_overrides(self, clean_env, tmp_path):
        rules = tmp_path / "elsewhere"
        clean_env.setenv("CUEBRIDGE_RULES_DIR", str(rules))
        clean_env.setenv("CUEBRIDGE_PLATFORMS", " TikTok, twitch ,,")
        clean_env.setenv("CUEBRIDGE_ACTION_TIMEOUT", "2.5")
        clean_env.setenv("CUEBRIDGE_STRICT_ACTIONS", "yes")
        clean_env.setenv("CUEBRIDGE_RELOAD_DEBOUNCE_MS", "50")
        clean_env.setenv("CUEBRIDGE_LOG_LEVEL", "debug")

        config = reload_config()

        assert config.rules_dir == rules.resolve()
        assert config.platforms == ("tiktok", "twitch")
        assert config.action_timeout == 2.5
        assert config.strict_actions is True
        assert config.reload_debounce_ms == 50
        assert config.log_level == "DEBUG"

    def test_unparseable_numbers_fall_back(self, clean_env):
        clean_env.setenv("CUEBRIDGE_PLUGIN_LOAD_TIMEOUT", "soon")
        clean_env.setenv("CUEBRIDGE_RELOAD_DEBOUNCE_MS", "fast")

        config = reload_config()

        assert config.plugin_load_timeout == 30.0
        assert config.reload_debounce_ms == 200

    def test_is_cached(self, clean_env):
        assert reload_config() is get_config()

    def test_invalid_log_level(self, clean_env):
        clean_env.setenv("CUEBRIDGE_LOG_LEVEL", "chatty")

        with pytest.raises(ValidationError, match="CUEBRIDGE_LOG_LEVEL"):
            reload_config()


class TestAppConfigValidation:
    def _config(self, tmp_path: Path, **overrides) -> AppConfig:
        values = dict(
            rules_dir=tmp_path / "rules",
            plugins_dir=tmp_path / "plugins",
            data_dir=tmp_path / "data",
        )
        values.update(overrides)
        return AppConfig(**values)

    def test_empty_platform_list_rejected(self, tmp_path):
        with pytest.raises(ValidationError, match="at least one platform"):
            self._config(tmp_path, platforms=" , ")

    def test_non_positive_action_timeout_rejected(self, tmp_path):
        with pytest.raises(ValidationError, match="must be positive"):
            self._config(tmp_path, action_timeout="0")

    def test_empty_directory_rejected(self, tmp_path):
        with pytest.raises(ValidationError, match="cannot be empty"):
            self._config(tmp_path, rules_dir="")

    def test_debounce_bounds(self, tmp_path):
        with pytest.raises(ValidationError):
            self._config(tmp_path, reload_debounce_ms=-1)

    def test_frozen(self, tmp_path):
        config = self._config(tmp_path)

        with pytest.raises(ValidationError):
            config.log_level = "DEBUG"
