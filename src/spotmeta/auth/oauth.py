"""User OAuth token override stored on disk by an external login flow."""

import logging
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import BaseModel, ValidationError

from spotmeta.auth.models import AccessToken, TokenSource
from spotmeta.cache.service import SingleFlight
from spotmeta.constants import SPOTIFY_ACCOUNTS_TOKEN_URL
from spotmeta.context import RequestContext
from spotmeta.spotify.exceptions import SpotifyDecodeError
from spotmeta.spotify.transport import SpotifyTransport

logger = logging.getLogger(__name__)

_FILE_MODE = 0o600
_DIR_MODE = 0o700


class OAuthTokens(BaseModel):
    """On-disk OAuth token record."""

    client_id: str = ""
    access_token: str = ""
    refresh_token: str = ""
    expires_at: datetime
    token_type: str = ""
    scope: str = ""
    last_updated_at: datetime | None = None


class OAuthRefreshResponse(BaseModel):
    """Response from POST accounts.spotify.com/api/token (refresh grant)."""

    access_token: str = ""
    token_type: str = ""
    scope: str = ""
    expires_in: int = 0
    refresh_token: str | None = None


class OAuthStatus(BaseModel):
    enabled: bool
    expires_at: datetime | None = None
    has_refresh: bool = False
    client_id: str | None = None


class OAuthTokenStore:
    """Reads, refreshes and persists the user OAuth token file.

    A missing or unreadable file means "no OAuth token"; the caller then falls
    back to anonymous web player tokens.
    """

    def __init__(
        self,
        path: Path,
        transport: SpotifyTransport,
        *,
        refresh_margin: float,
        enabled: bool = True,
        token_url: str = SPOTIFY_ACCOUNTS_TOKEN_URL,
    ) -> None:
        self.path = path
        self._transport = transport
        self._refresh_margin = timedelta(seconds=refresh_margin)
        self._enabled = enabled
        self._token_url = token_url
        self._flight: SingleFlight[OAuthTokens] = SingleFlight()

    def load(self) -> OAuthTokens | None:
        if not self.path.exists():
            return None
        try:
            tokens = OAuthTokens.model_validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as exc:
            logger.warning("Ignoring unreadable OAuth token file %s: %s", self.path, exc)
            return None
        if not tokens.access_token.strip():
            return None
        if tokens.expires_at.tzinfo is None:
            tokens.expires_at = tokens.expires_at.replace(tzinfo=UTC)
        return tokens

    def save(self, tokens: OAuthTokens) -> None:
        """Write ``tokens`` readable by the owner only."""
        self.path.parent.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(tokens.model_dump_json(indent=2))
        os.chmod(self.path, _FILE_MODE)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
        logger.info("Removed OAuth token file %s", self.path)

    def status(self) -> OAuthStatus:
        tokens = self.load()
        if tokens is None:
            return OAuthStatus(enabled=False)
        return OAuthStatus(
            enabled=True,
            expires_at=tokens.expires_at,
            has_refresh=bool(tokens.refresh_token.strip()),
            client_id=tokens.client_id or None,
        )

    async def refresh(self, ctx: RequestContext, tokens: OAuthTokens) -> OAuthTokens:
        """Exchange the refresh token for a new access token.

        Raises:
            SpotifyUpstreamError: If the accounts service rejects the refresh.
            SpotifyDecodeError: If the response carries no access token.
        """
        body = await self._transport.post_form(
            ctx,
            self._token_url,
            {
                "grant_type": "refresh_token",
                "client_id": tokens.client_id,
                "refresh_token": tokens.refresh_token,
            },
        )
        try:
            data = OAuthRefreshResponse.model_validate_json(body)
        except ValidationError as exc:
            raise SpotifyDecodeError(self._token_url, str(exc)) from exc
        if not data.access_token.strip():
            raise SpotifyDecodeError(self._token_url, "refresh returned empty access token")

        now = datetime.now(UTC)
        logger.info("Refreshed Spotify OAuth access token for client %s", tokens.client_id)
        return OAuthTokens(
            client_id=tokens.client_id,
            access_token=data.access_token,
            refresh_token=data.refresh_token or tokens.refresh_token,
            expires_at=now + timedelta(seconds=data.expires_in),
            token_type=data.token_type,
            scope=data.scope,
            last_updated_at=now,
        )

    async def get_access_token(self, ctx: RequestContext) -> AccessToken | None:
        """Return the stored OAuth token, refreshing it when close to expiry.

        Returns ``None`` when OAuth is disabled or no token file exists.
        """
        if not self._enabled:
            return None
        tokens = self.load()
        if tokens is None:
            return None

        if tokens.expires_at - datetime.now(UTC) > self._refresh_margin:
            return AccessToken(tokens.access_token, tokens.expires_at, TokenSource.OAUTH)
        if not tokens.refresh_token.strip() or not tokens.client_id.strip():
            return AccessToken(tokens.access_token, tokens.expires_at, TokenSource.OAUTH)

        refreshed = await self._flight.do(ctx, "refresh", lambda c: self.refresh(c, tokens))
        try:
            self.save(refreshed)
        except OSError as exc:
            logger.warning("Could not persist refreshed OAuth token to %s: %s", self.path, exc)
        return AccessToken(refreshed.access_token, refreshed.expires_at, TokenSource.OAUTH)
