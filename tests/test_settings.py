"""Tests for MetadataSettings."""

from pathlib import Path

import pytest

from spotmeta.ratelimit import RateLimiterConfig
from spotmeta.settings import MetadataSettings


def test_defaults() -> None:
    """Settings have sensible defaults."""
    settings = MetadataSettings()
    assert settings.REQUEST_TIMEOUT_SECONDS == 15
    assert settings.API_MAX_RATE_LIMIT_RETRIES == 2
    assert settings.TOKEN_RATE_LIMIT_MAX_WAIT_SECONDS == 10
    assert settings.MAX_BACKOFF_SECONDS == 600
    assert settings.RESPONSE_CACHE_TTL_SECONDS == 600
    assert settings.TOKEN_EXPIRY_BUFFER_SECONDS == 30
    assert settings.SECRETS_CACHE_PATH.name == "secretBytes.json"
    assert settings.OAUTH_TOKEN_PATH.name == "spotify_oauth.json"
    assert settings.SPOTIFY_DEBUG is False


def test_env_override(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Settings can be overridden via environment variables."""
    monkeypatch.setenv("MIN_REQUEST_INTERVAL_SECONDS", "0.5")
    monkeypatch.setenv("OAUTH_ENABLED", "false")
    monkeypatch.setenv("SPOTIFY_DEBUG", "1")
    monkeypatch.setenv("SECRETS_CACHE_PATH", str(tmp_path / "s.json"))

    settings = MetadataSettings()
    assert settings.MIN_REQUEST_INTERVAL_SECONDS == 0.5
    assert settings.OAUTH_ENABLED is False
    assert settings.SPOTIFY_DEBUG is True
    assert settings.SECRETS_CACHE_PATH == tmp_path / "s.json"


def test_rate_limiter_config_from_settings() -> None:
    settings = MetadataSettings(MAX_BACKOFF_SECONDS=60, INLINE_COOLDOWN_WAIT_SECONDS=1)
    config = RateLimiterConfig.from_settings(settings)
    assert config.max_backoff == 60
    assert config.inline_wait == 1
