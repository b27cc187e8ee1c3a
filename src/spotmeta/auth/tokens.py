"""Access token acquisition: OAuth override, cache, then ordered anonymous strategies."""

import logging
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from urllib.parse import urlencode

from spotmeta.auth.models import AccessToken, TokenSource, token_expiry
from spotmeta.auth.oauth import OAuthTokenStore
from spotmeta.auth.totp import TOTPEngine
from spotmeta.cache.service import SingleFlight
from spotmeta.constants import SPOTIFY_ACCESS_POINT_URL, SPOTIFY_LEGACY_TOKEN_URL, SPOTIFY_TOKEN_URL
from spotmeta.context import RequestContext
from spotmeta.settings import MetadataSettings
from spotmeta.spotify.exceptions import RequestCancelled, SpotifyAuthError, SpotifyClientError
from spotmeta.spotify.transport import SpotifyTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TokenStrategy:
    """A named way of acquiring an anonymous access token."""

    source: TokenSource
    acquire: Callable[[RequestContext], Awaitable[AccessToken]]

    async def __call__(self, ctx: RequestContext) -> AccessToken:
        return await self.acquire(ctx)


class WebPlayerTokenClient:
    """The three web player token endpoints, exposed as :class:`TokenStrategy` objects."""

    def __init__(self, transport: SpotifyTransport, totp: TOTPEngine, settings: MetadataSettings) -> None:
        self._transport = transport
        self._totp = totp
        self._settings = settings

    def strategies(self) -> list[TokenStrategy]:
        """Default order: TOTP, legacy, access point."""
        return [
            TokenStrategy(TokenSource.TOTP, self.totp_token),
            TokenStrategy(TokenSource.LEGACY, self.legacy_token),
            TokenStrategy(TokenSource.ACCESS_POINT, self.access_point_token),
        ]

    async def totp_token(self, ctx: RequestContext) -> AccessToken:
        code = await self._totp.generate(ctx)
        params = {
            "reason": "init",
            "productType": "web-player",
            "totp": code.code,
            "totpServerTime": str(code.server_time),
            "totpVer": str(code.version),
            "sTime": str(code.server_time),
            "cTime": str(int(time.time() * 1000)),
        }
        return await self._request(ctx, f"{SPOTIFY_TOKEN_URL}?{urlencode(params)}", TokenSource.TOTP)

    async def legacy_token(self, ctx: RequestContext) -> AccessToken:
        params = {"reason": "transport", "productType": "web_player"}
        return await self._request(ctx, f"{SPOTIFY_LEGACY_TOKEN_URL}?{urlencode(params)}", TokenSource.LEGACY)

    async def access_point_token(self, ctx: RequestContext) -> AccessToken:
        return await self._request(ctx, SPOTIFY_ACCESS_POINT_URL, TokenSource.ACCESS_POINT)

    async def _request(self, ctx: RequestContext, url: str, source: TokenSource) -> AccessToken:
        payload = await self._transport.fetch_token_payload(ctx, url)
        expires_at = token_expiry(
            payload,
            default_lifetime=self._settings.TOKEN_DEFAULT_LIFETIME_SECONDS,
            buffer=self._settings.TOKEN_EXPIRY_BUFFER_SECONDS,
        )
        return AccessToken(payload.access_token, expires_at, source)


class TokenManager:
    """Owns the cached anonymous access token.

    Lookup order for :meth:`get_access_token`:

    1. OAuth token from ``oauth`` (refreshed when near expiry)
    2. In-memory cached token, if unexpired
    3. Each strategy in order; the first token wins and is cached

    Concurrent acquisitions share one strategy run. :meth:`invalidate` drops
    the cached token so the next call runs the strategies from scratch.
    """

    _FLIGHT_KEY = "anonymous"

    def __init__(self, strategies: Sequence[TokenStrategy], *, oauth: OAuthTokenStore | None = None) -> None:
        self._strategies = list(strategies)
        self._oauth = oauth
        self._lock = threading.Lock()
        self._token: AccessToken | None = None
        self._generation = 0
        self._flight: SingleFlight[AccessToken] = SingleFlight()

    @property
    def strategies(self) -> list[TokenStrategy]:
        return list(self._strategies)

    def cached(self) -> AccessToken | None:
        with self._lock:
            if self._token is not None and self._token.is_fresh():
                return self._token
        return None

    def invalidate(self) -> None:
        """Drop the cached token (called on any 401)."""
        with self._lock:
            had_token = self._token is not None
            self._token = None
            self._generation += 1
        if had_token:
            logger.info("Cached Spotify access token invalidated")

    def _store(self, generation: int, token: AccessToken) -> None:
        with self._lock:
            # A token acquired before an invalidation must not be cached after it.
            if generation == self._generation:
                self._token = token

    async def get_access_token(self, ctx: RequestContext) -> AccessToken:
        """Return a usable bearer token.

        Raises:
            SpotifyAuthError: If every strategy failed; carries each strategy's error.
            RequestCancelled: If the context ends first.
        """
        if self._oauth is not None:
            try:
                oauth_token = await self._oauth.get_access_token(ctx)
            except RequestCancelled:
                raise
            except SpotifyClientError as exc:
                logger.warning("OAuth token unavailable, using anonymous token: %s", exc)
            else:
                if oauth_token is not None and oauth_token.value:
                    logger.debug("Using Spotify OAuth access token")
                    return oauth_token

        cached = self.cached()
        if cached is not None:
            logger.debug("Using cached access token (%s)", cached.source)
            return cached

        with self._lock:
            generation = self._generation
        return await self._flight.do(
            ctx,
            self._FLIGHT_KEY,
            self._acquire,
            on_success=lambda token: self._store(generation, token),
        )

    async def _acquire(self, ctx: RequestContext) -> AccessToken:
        causes: dict[str, BaseException] = {}
        for strategy in self._strategies:
            try:
                token = await strategy(ctx)
            except RequestCancelled:
                raise
            except SpotifyClientError as exc:
                logger.warning("Token strategy %s failed: %s", strategy.source, exc)
                causes[strategy.source.value] = exc
                continue
            if not token.value:
                causes[strategy.source.value] = SpotifyClientError("empty token")
                continue
            logger.info("Acquired Spotify access token via %s", strategy.source)
            return token
        raise SpotifyAuthError(causes)
