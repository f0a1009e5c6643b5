"""
Tests for warden/core/config.py

Covers environment loading, defaults, clamping and validation.
"""

from pathlib import Path

import pytest

from warden.core.config import Config, ConfigValidationError, is_operator, load_config


ENV_VARS = [
    "OPERATOR_ID", "DEFAULT_NICKNAME", "DATA_DIR", "BRIDGE_URL", "PORT",
    "TITLE_POLL_INTERVAL", "TITLE_REVERT_DELAY", "MAX_TITLE_CHECKS_PER_TICK",
    "FAST_DELAY_MIN_MS", "FAST_DELAY_MAX_MS", "SLOW_DELAY_MIN_MS", "SLOW_DELAY_MAX_MS",
    "NICKNAME_CHANGE_LIMIT", "NICKNAME_COOLDOWN", "GLOBAL_MAX_CONCURRENT",
    "QUEUE_PACING_MS", "ERROR_WEBHOOK_URL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    """Tests for load_config()."""

    def test_operator_required(self):
        with pytest.raises(ConfigValidationError, match="OPERATOR_ID"):
            load_config()

    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("OPERATOR_ID", "1000")
        config = load_config()

        assert config.operator_id == "1000"
        assert config.default_nickname == "Locked"
        assert config.data_dir == Path("data")
        assert config.port == 10000
        assert config.title_revert_delay == 47
        assert config.max_title_checks_per_tick == 5
        assert (config.fast_delay_min_ms, config.fast_delay_max_ms) == (5000, 7000)
        assert (config.slow_delay_min_ms, config.slow_delay_max_ms) == (12000, 13000)
        assert config.nickname_change_limit == 50
        assert config.nickname_cooldown == 300
        assert config.global_max_concurrent == 1
        assert config.error_webhook_url is None
        assert config.store_path == Path("data") / "groupData.json"
        assert config.credential_path == Path("data") / "appstate.json"

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("OPERATOR_ID", "1000")
        monkeypatch.setenv("DEFAULT_NICKNAME", "Guard")
        monkeypatch.setenv("TITLE_REVERT_DELAY", "30")
        monkeypatch.setenv("BRIDGE_URL", "http://bridge:4000/")
        config = load_config()

        assert config.default_nickname == "Guard"
        assert config.title_revert_delay == 30
        assert config.bridge_url == "http://bridge:4000"

    def test_invalid_integer_uses_default(self, monkeypatch):
        monkeypatch.setenv("OPERATOR_ID", "1000")
        monkeypatch.setenv("NICKNAME_CHANGE_LIMIT", "many")
        assert load_config().nickname_change_limit == 50

    def test_out_of_range_clamped(self, monkeypatch):
        monkeypatch.setenv("OPERATOR_ID", "1000")
        monkeypatch.setenv("GLOBAL_MAX_CONCURRENT", "0")
        monkeypatch.setenv("PORT", "99999")
        config = load_config()
        assert config.global_max_concurrent == 1
        assert config.port == 65535

    def test_inverted_band_rejected(self, monkeypatch):
        monkeypatch.setenv("OPERATOR_ID", "1000")
        monkeypatch.setenv("FAST_DELAY_MIN_MS", "9000")
        with pytest.raises(ConfigValidationError, match="FAST_DELAY"):
            load_config()

    def test_bad_webhook_url_ignored(self, monkeypatch):
        monkeypatch.setenv("OPERATOR_ID", "1000")
        monkeypatch.setenv("ERROR_WEBHOOK_URL", "ftp://nope")
        assert load_config().error_webhook_url is None


class TestIsOperator:
    """Tests for the operator check."""

    def test_matches_only_operator(self):
        config = Config(operator_id="1000")
        assert is_operator("1000", config)
        assert is_operator(1000, config)
        assert not is_operator("2000", config)
        assert not is_operator(None, config)
