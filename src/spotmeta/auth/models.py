"""Bearer token types shared by the token manager and the OAuth store."""

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from spotmeta.spotify.models import SpotifyTokenPayload


class TokenSource(enum.StrEnum):
    """Where an access token came from."""

    TOTP = "totp"
    LEGACY = "legacy"
    ACCESS_POINT = "access_point"
    OAUTH = "oauth"


@dataclass(frozen=True, slots=True)
class AccessToken:
    """A bearer token and its (already buffered) expiry."""

    value: str = field(repr=False)
    expires_at: datetime
    source: TokenSource

    def is_fresh(self, buffer: float = 0.0, *, now: datetime | None = None) -> bool:
        """True while the token is non-empty and more than ``buffer`` seconds from expiry."""
        if not self.value:
            return False
        now = now or datetime.now(UTC)
        return self.expires_at - timedelta(seconds=buffer) > now

    @property
    def authorization(self) -> str:
        return f"Bearer {self.value}"


def token_expiry(
    payload: SpotifyTokenPayload,
    *,
    default_lifetime: float,
    buffer: float,
    now: datetime | None = None,
) -> datetime:
    """Expiry for a web player token payload.

    Prefers the explicit millisecond timestamp, then ``expiresIn``, then
    ``default_lifetime``. ``buffer`` seconds are taken off when the expiry
    lies further than that in the future.
    """
    now = now or datetime.now(UTC)
    if payload.expiration_timestamp_ms and payload.expiration_timestamp_ms > 0:
        expires_at = datetime.fromtimestamp(payload.expiration_timestamp_ms / 1000, tz=UTC)
    elif payload.expires_in and payload.expires_in > 0:
        expires_at = now + timedelta(seconds=payload.expires_in)
    else:
        expires_at = now + timedelta(seconds=default_lifetime)

    margin = timedelta(seconds=buffer)
    if expires_at > now + margin:
        expires_at -= margin
    return expires_at
