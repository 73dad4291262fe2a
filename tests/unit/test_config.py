"""Tests for settings loading."""
import lifesprint.config as config
from lifesprint.config import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SYNC_INTERVAL_MINUTES", raising=False)
        settings = Settings(_env_file=None)
        assert settings.sync_interval_minutes == 5
        assert settings.max_retries == 3
        assert settings.direct_write_attempts == 3
        assert settings.backoff_base_seconds == 1.0
        assert settings.remote_api_token == ""

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SYNC_INTERVAL_MINUTES", "10")
        monkeypatch.setenv("REMOTE_BASE_URL", "https://sync.example.com")
        settings = Settings(_env_file=None)
        assert settings.sync_interval_minutes == 10
        assert settings.remote_base_url == "https://sync.example.com"

    def test_get_settings_is_cached(self, monkeypatch):
        monkeypatch.setattr(config, "_settings", None)
        assert get_settings() is get_settings()
