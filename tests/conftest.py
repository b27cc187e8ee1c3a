"""Shared test configuration and fixtures."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from spotmeta.ratelimit import HostRateLimiter, RateLimiterConfig
from spotmeta.settings import MetadataSettings
from spotmeta.spotify.client import SpotifyMetadataClient
from spotmeta.spotify.transport import SpotifyTransport


@pytest.fixture
def settings(tmp_path: Path) -> MetadataSettings:
    """Settings with no pacing, short retry delays and temp file paths."""
    return MetadataSettings(
        MIN_REQUEST_INTERVAL_SECONDS=0,
        NETWORK_RETRY_DELAY_SECONDS=0,
        API_SERVER_RETRY_DELAY_SECONDS=0,
        TOKEN_SERVER_RETRY_DELAY_SECONDS=0,
        COOLDOWN_BUFFER_SECONDS=0,
        SECRETS_CACHE_PATH=tmp_path / "secrets" / "secretBytes.json",
        OAUTH_ENABLED=False,
        OAUTH_TOKEN_PATH=tmp_path / "oauth" / "spotify_oauth.json",
    )


@pytest.fixture
def limiter(settings: MetadataSettings) -> HostRateLimiter:
    return HostRateLimiter(RateLimiterConfig.from_settings(settings))


@pytest.fixture
async def transport(settings: MetadataSettings, limiter: HostRateLimiter) -> AsyncIterator[SpotifyTransport]:
    t = SpotifyTransport(settings, limiter)
    yield t
    await t.aclose()


@pytest.fixture
async def client(settings: MetadataSettings) -> AsyncIterator[SpotifyMetadataClient]:
    async with SpotifyMetadataClient(settings) as c:
        yield c
