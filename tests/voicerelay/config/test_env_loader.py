"""Tests for environment-based configuration loading."""

from pathlib import Path

import pytest

from voicerelay.config import env_loader, settings
from voicerelay.config.models import Environment, LogLevel


@pytest.fixture
def loaded_env(monkeypatch):
    """Mark the environment as loaded without reading a .env file."""
    monkeypatch.setattr(env_loader, "_env_loaded", True)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("VOICERELAY_USE_MOCK", raising=False)
    yield
    settings.set_config(None)


class TestSafeConvert:
    def test_none_returns_default(self):
        assert env_loader.safe_convert(None, int, 7) == 7

    def test_bool(self):
        assert env_loader.safe_convert("TRUE", bool, False) is True
        assert env_loader.safe_convert("no", bool, True) is False

    def test_numbers(self):
        assert env_loader.safe_convert("8080", int, 0) == 8080
        assert env_loader.safe_convert("1.5", float, 0.0) == 1.5

    def test_invalid_value_returns_default(self):
        assert env_loader.safe_convert("abc", int, 3) == 3

    def test_path_and_enum(self):
        assert env_loader.safe_convert("/tmp/x", Path, Path(".")) == Path("/tmp/x")
        assert env_loader.safe_convert("DEBUG", LogLevel, LogLevel.INFO) == LogLevel.DEBUG
        assert env_loader.safe_convert("LOUD", LogLevel, LogLevel.INFO) == LogLevel.INFO


class TestLoaders:
    def test_access_before_load_raises(self, monkeypatch):
        monkeypatch.setattr(env_loader, "_env_loaded", False)
        with pytest.raises(RuntimeError):
            env_loader.load_relay_config()

    def test_relay_config_from_env(self, loaded_env, monkeypatch):
        monkeypatch.setenv("RELAY_CONNECT_TIMEOUT", "2.5")
        monkeypatch.setenv("RELAY_INSTRUCTIONS", "Answer as the front desk.")

        config = env_loader.load_relay_config()

        assert config.connect_timeout == 2.5
        assert config.instructions == "Answer as the front desk."

    def test_endpointer_config_from_env(self, loaded_env, monkeypatch):
        monkeypatch.setenv("ENDPOINTER_SILENCE_THRESHOLD", "12")
        monkeypatch.setenv("ENDPOINTER_QUIET_DURATION", "0.8")
        monkeypatch.setenv("ENDPOINTER_SMOOTHING_WINDOW", "3")

        config = env_loader.load_endpointer_config()

        assert (config.silence_threshold, config.quiet_duration, config.smoothing_window) == (
            12.0,
            0.8,
            3,
        )

    def test_client_config_defaults(self, loaded_env, monkeypatch):
        for name in ("CLIENT_RELAY_URL", "CLIENT_POLL_INTERVAL", "CLIENT_REQUEST_TIMEOUT"):
            monkeypatch.delenv(name, raising=False)

        config = env_loader.load_client_config()

        assert config.relay_url.endswith("/api/ws")
        assert config.poll_interval == 1.0

    def test_server_config_testing_env(self, loaded_env, monkeypatch):
        monkeypatch.setenv("ENV", "testing")
        monkeypatch.setenv("PORT", "9001")

        config = env_loader.load_server_config()

        assert config.environment == Environment.TESTING
        assert config.port == 9001

    def test_security_origins_list(self, loaded_env, monkeypatch):
        monkeypatch.setenv("ALLOWED_ORIGINS", "http://a.test, http://b.test")

        config = env_loader.load_security_config()

        assert config.allowed_origins == ["http://a.test", "http://b.test"]

    def test_application_config_requires_key_without_mock(self, loaded_env, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY")

        with pytest.raises(ValueError, match="OPENAI_API_KEY"):
            env_loader.load_application_config()

    def test_application_config_mock_mode_needs_no_key(self, loaded_env, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY")
        monkeypatch.setenv("VOICERELAY_USE_MOCK", "true")

        config = env_loader.load_application_config()

        assert config.mock.enabled is True
        assert config.openai.api_key is None

    def test_get_config_is_cached(self, loaded_env):
        first = settings.get_config()
        assert settings.get_config() is first
        assert settings.reload_config() is not first
