"""Client configuration loaded from environment variables."""

import functools
from pathlib import Path

from pydantic_settings import BaseSettings

from spotmeta.constants import (
    DEFAULT_API_MAX_ATTEMPTS,
    DEFAULT_API_MAX_RATE_LIMIT_RETRIES,
    DEFAULT_API_SERVER_RETRY_DELAY,
    DEFAULT_COOLDOWN_BUFFER,
    DEFAULT_DEADLINE_SAFETY_MARGIN,
    DEFAULT_DISCOGRAPHY_CONCURRENCY,
    DEFAULT_INLINE_COOLDOWN_WAIT,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_MAX_WAIT_CAP,
    DEFAULT_MIN_REQUEST_INTERVAL,
    DEFAULT_NETWORK_RETRY_DELAY,
    DEFAULT_OAUTH_REFRESH_MARGIN,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RESPONSE_CACHE_TTL,
    DEFAULT_RETRY_AFTER,
    DEFAULT_SECRETS_TTL,
    DEFAULT_SERVER_TIME_TTL,
    DEFAULT_TOKEN_EXPIRY_BUFFER,
    DEFAULT_TOKEN_LIFETIME,
    DEFAULT_TOKEN_MAX_ATTEMPTS,
    DEFAULT_TOKEN_RATE_LIMIT_MAX_WAIT,
    DEFAULT_TOKEN_SERVER_RETRY_DELAY,
    SECRETS_URL,
)


class MetadataSettings(BaseSettings):
    """Metadata client configuration."""

    # HTTP
    REQUEST_TIMEOUT_SECONDS: float = DEFAULT_REQUEST_TIMEOUT

    # API retries
    API_MAX_ATTEMPTS: int = DEFAULT_API_MAX_ATTEMPTS
    API_MAX_RATE_LIMIT_RETRIES: int = DEFAULT_API_MAX_RATE_LIMIT_RETRIES
    API_SERVER_RETRY_DELAY_SECONDS: float = DEFAULT_API_SERVER_RETRY_DELAY
    NETWORK_RETRY_DELAY_SECONDS: float = DEFAULT_NETWORK_RETRY_DELAY

    # Token retries
    TOKEN_MAX_ATTEMPTS: int = DEFAULT_TOKEN_MAX_ATTEMPTS
    TOKEN_RATE_LIMIT_MAX_WAIT_SECONDS: float = DEFAULT_TOKEN_RATE_LIMIT_MAX_WAIT
    TOKEN_SERVER_RETRY_DELAY_SECONDS: float = DEFAULT_TOKEN_SERVER_RETRY_DELAY
    TOKEN_EXPIRY_BUFFER_SECONDS: float = DEFAULT_TOKEN_EXPIRY_BUFFER
    TOKEN_DEFAULT_LIFETIME_SECONDS: float = DEFAULT_TOKEN_LIFETIME

    # Rate limiting
    MIN_REQUEST_INTERVAL_SECONDS: float = DEFAULT_MIN_REQUEST_INTERVAL
    MAX_BACKOFF_SECONDS: float = DEFAULT_MAX_BACKOFF
    COOLDOWN_BUFFER_SECONDS: float = DEFAULT_COOLDOWN_BUFFER
    DEFAULT_RETRY_AFTER_SECONDS: float = DEFAULT_RETRY_AFTER
    INLINE_COOLDOWN_WAIT_SECONDS: float = DEFAULT_INLINE_COOLDOWN_WAIT
    DEADLINE_SAFETY_MARGIN_SECONDS: float = DEFAULT_DEADLINE_SAFETY_MARGIN
    MAX_WAIT_CAP_SECONDS: float = DEFAULT_MAX_WAIT_CAP

    # Caching
    RESPONSE_CACHE_TTL_SECONDS: float = DEFAULT_RESPONSE_CACHE_TTL
    SECRETS_TTL_SECONDS: float = DEFAULT_SECRETS_TTL
    SERVER_TIME_TTL_SECONDS: float = DEFAULT_SERVER_TIME_TTL

    # TOTP secret table
    SECRETS_URL: str = SECRETS_URL
    SECRETS_CACHE_PATH: Path = Path.home() / ".spotify-secret" / "secretBytes.json"

    # User OAuth override
    OAUTH_ENABLED: bool = True
    OAUTH_TOKEN_PATH: Path = Path.home() / ".spotiflac" / "spotify_oauth.json"
    OAUTH_REFRESH_MARGIN_SECONDS: float = DEFAULT_OAUTH_REFRESH_MARGIN

    # Formatting
    DISCOGRAPHY_CONCURRENCY: int = DEFAULT_DISCOGRAPHY_CONCURRENCY

    # Logging
    SPOTIFY_DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    model_config = {"env_prefix": ""}


@functools.lru_cache(maxsize=1)
def get_settings() -> MetadataSettings:
    """Return cached settings singleton."""
    return MetadataSettings()
