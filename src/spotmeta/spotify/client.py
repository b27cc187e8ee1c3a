"""Spotify metadata client: link in, normalized payload out."""

import logging
from typing import TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from spotmeta.auth.models import AccessToken
from spotmeta.auth.oauth import OAuthTokenStore
from spotmeta.auth.secrets import SecretStore
from spotmeta.auth.tokens import TokenManager, TokenStrategy, WebPlayerTokenClient
from spotmeta.auth.totp import ServerClock, TOTPEngine
from spotmeta.cache.service import ResponseCache, ResponseCacheService
from spotmeta.constants import (
    ALBUM_TRACKS_PAGE_SIZE,
    ALBUMS_URL,
    ARTIST_ALBUMS_PAGE_SIZE,
    ARTISTS_URL,
    DEFAULT_FETCH_TIMEOUT,
    PLAYLIST_PAGE_SIZE,
    PLAYLIST_URL,
    TRACKS_URL,
)
from spotmeta.context import RequestContext
from spotmeta.ratelimit import HostRateLimiter, RateLimiterConfig
from spotmeta.settings import MetadataSettings, get_settings
from spotmeta.spotify.exceptions import SpotifyDecodeError, SpotifyUnauthorizedError
from spotmeta.spotify.formatter import (
    MetadataFormatter,
    RawAlbum,
    RawDiscography,
    RawPlaylist,
    format_artist,
    format_playlist,
    format_track,
)
from spotmeta.spotify.models import (
    SpotifyAlbumFull,
    SpotifyAlbumSimplified,
    SpotifyArtistFull,
    SpotifyPlaylist,
    SpotifyPlaylistTrackItem,
    SpotifyTrack,
    SpotifyTrackSimplified,
)
from spotmeta.spotify.paging import fetch_all_pages
from spotmeta.spotify.schemas import MetadataPayload
from spotmeta.spotify.transport import SpotifyTransport
from spotmeta.spotify.uri import DiscographyFilter, ReferenceKind, SpotifyReference, parse_spotify_reference

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class SpotifyMetadataClient:
    """Async Spotify metadata client.

    Each instance owns its shared state: token cache, per-host rate limiter,
    response cache and in-flight registry, and one ``httpx.AsyncClient``.
    Independent instances share nothing. Use as an async context manager or
    call :meth:`aclose` when done.
    """

    def __init__(
        self,
        settings: MetadataSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        limiter: HostRateLimiter | None = None,
        strategies: list[TokenStrategy] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        s = self._settings

        self.limiter = limiter or HostRateLimiter(RateLimiterConfig.from_settings(s))
        self.transport = SpotifyTransport(s, self.limiter, http_client=http_client)
        self.cache = ResponseCache(ttl=s.RESPONSE_CACHE_TTL_SECONDS)
        self.responses = ResponseCacheService(self.cache, self.transport.fetch_api_body)

        self.secrets = SecretStore(
            self.transport,
            url=s.SECRETS_URL,
            cache_path=s.SECRETS_CACHE_PATH,
            ttl=s.SECRETS_TTL_SECONDS,
        )
        self.totp = TOTPEngine(self.secrets, ServerClock(self.transport, ttl=s.SERVER_TIME_TTL_SECONDS))
        self.oauth = OAuthTokenStore(
            s.OAUTH_TOKEN_PATH,
            self.transport,
            refresh_margin=s.OAUTH_REFRESH_MARGIN_SECONDS,
            enabled=s.OAUTH_ENABLED,
        )
        if strategies is None:
            strategies = WebPlayerTokenClient(self.transport, self.totp, s).strategies()
        self.tokens = TokenManager(strategies, oauth=self.oauth)
        self.transport.on_unauthorized = self.tokens.invalidate

    async def __aenter__(self) -> "SpotifyMetadataClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.transport.aclose()

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------

    async def get_access_token(self, ctx: RequestContext | None = None) -> AccessToken:
        """Bearer token for collaborators that call Spotify themselves."""
        return await self.tokens.get_access_token(ctx or RequestContext.background())

    async def fetch_metadata(
        self,
        url: str,
        *,
        batch: bool = False,
        per_page_delay: float = 0.0,
        timeout: float | None = DEFAULT_FETCH_TIMEOUT,
        ctx: RequestContext | None = None,
    ) -> MetadataPayload:
        """Resolve ``url`` and return its normalized metadata.

        ``batch`` turns on ``per_page_delay`` between listing pages and adds
        the page count to the payload. A 401 drops the cached token and the
        whole fetch is retried once with a fresh one.

        Raises:
            InvalidReferenceError: If ``url`` is not a supported Spotify link.
            SpotifyClientError: Any other failure, see ``spotmeta.spotify.exceptions``.
        """
        reference = parse_spotify_reference(url)
        ctx = ctx or RequestContext(timeout)
        logger.debug("fetch_metadata kind=%s id=%s batch=%s", reference.kind, reference.id, batch)

        token = await self.tokens.get_access_token(ctx)
        try:
            return await self._fetch_and_format(ctx, reference, token.value, batch, per_page_delay)
        except SpotifyUnauthorizedError:
            logger.info("Spotify API unauthorized; refreshing token and retrying once")
            self.tokens.invalidate()
            token = await self.tokens.get_access_token(ctx)
            return await self._fetch_and_format(ctx, reference, token.value, batch, per_page_delay)

    async def _fetch_and_format(
        self,
        ctx: RequestContext,
        reference: SpotifyReference,
        token: str,
        batch: bool,
        per_page_delay: float,
    ) -> MetadataPayload:
        delay = per_page_delay if batch else 0.0
        formatter = MetadataFormatter(
            ctx,
            token,
            fetch_body=self.responses.get_or_fetch,
            fetch_album_tracks=self.collect_album_tracks,
            concurrency=self._settings.DISCOGRAPHY_CONCURRENCY,
        )

        match reference.kind:
            case ReferenceKind.PLAYLIST:
                raw_playlist = await self.fetch_playlist(ctx, reference.id, token, batch=batch, delay=delay)
                return format_playlist(raw_playlist)
            case ReferenceKind.ALBUM:
                raw_album = await self.fetch_album(ctx, reference.id, token, batch=batch, delay=delay)
                return await formatter.format_album(raw_album)
            case ReferenceKind.TRACK:
                return format_track(await self.fetch_track(ctx, reference.id, token))
            case ReferenceKind.ARTIST_DISCOGRAPHY:
                raw_discography = await self.fetch_artist_discography(
                    ctx,
                    reference.id,
                    token,
                    discography_filter=reference.discography_filter or DiscographyFilter.ALL,
                    batch=batch,
                    delay=delay,
                )
                return await formatter.format_discography(raw_discography)
            case ReferenceKind.ARTIST:
                return format_artist(await self.fetch_artist(ctx, reference.id, token))
        raise ValueError(f"unsupported reference kind {reference.kind}")

    # -------------------------------------------------------------------
    # Raw fetchers
    # -------------------------------------------------------------------

    async def get_json(self, ctx: RequestContext, endpoint: str, token: str, model: type[M]) -> M:
        """Cached GET of ``endpoint`` decoded into ``model``."""
        body = await self.responses.get_or_fetch(ctx, endpoint, token)
        try:
            return model.model_validate_json(body)
        except ValidationError as exc:
            raise SpotifyDecodeError(endpoint, str(exc)) from exc

    async def fetch_playlist(
        self, ctx: RequestContext, playlist_id: str, token: str, *, batch: bool = False, delay: float = 0.0
    ) -> RawPlaylist:
        playlist = await self.get_json(ctx, f"{PLAYLIST_URL}/{playlist_id}", token, SpotifyPlaylist)
        pages = await fetch_all_pages(
            ctx,
            f"{PLAYLIST_URL}/{playlist_id}/tracks?limit={PLAYLIST_PAGE_SIZE}",
            token,
            fetch_body=self.responses.get_or_fetch,
            item_type=SpotifyPlaylistTrackItem,
            inter_page_delay=delay,
        )
        items = pages.items
        if not items and playlist.tracks is not None:
            items = [item for item in playlist.tracks.items if item is not None]
        return RawPlaylist(playlist=playlist, items=items, batch=batch, page_count=pages.page_count)

    async def fetch_album(
        self, ctx: RequestContext, album_id: str, token: str, *, batch: bool = False, delay: float = 0.0
    ) -> RawAlbum:
        album = await self.get_json(ctx, f"{ALBUMS_URL}/{album_id}", token, SpotifyAlbumFull)
        pages = await fetch_all_pages(
            ctx,
            f"{ALBUMS_URL}/{album_id}/tracks?limit={ALBUM_TRACKS_PAGE_SIZE}",
            token,
            fetch_body=self.responses.get_or_fetch,
            item_type=SpotifyTrackSimplified,
            inter_page_delay=delay,
        )
        tracks = pages.items
        if not tracks and album.tracks is not None:
            tracks = [track for track in album.tracks.items if track is not None]
        return RawAlbum(album=album, tracks=tracks, batch=batch, page_count=pages.page_count)

    async def fetch_track(self, ctx: RequestContext, track_id: str, token: str) -> SpotifyTrack:
        return await self.get_json(ctx, f"{TRACKS_URL}/{track_id}", token, SpotifyTrack)

    async def fetch_artist(self, ctx: RequestContext, artist_id: str, token: str) -> SpotifyArtistFull:
        return await self.get_json(ctx, f"{ARTISTS_URL}/{artist_id}", token, SpotifyArtistFull)

    async def fetch_artist_discography(
        self,
        ctx: RequestContext,
        artist_id: str,
        token: str,
        *,
        discography_filter: DiscographyFilter = DiscographyFilter.ALL,
        batch: bool = False,
        delay: float = 0.0,
    ) -> RawDiscography:
        artist = await self.fetch_artist(ctx, artist_id, token)
        albums_url = (
            f"{ARTISTS_URL}/{artist_id}/albums"
            f"?include_groups={discography_filter.include_groups}&limit={ARTIST_ALBUMS_PAGE_SIZE}"
        )
        pages = await fetch_all_pages(
            ctx,
            albums_url,
            token,
            fetch_body=self.responses.get_or_fetch,
            item_type=SpotifyAlbumSimplified,
            inter_page_delay=delay,
        )
        return RawDiscography(
            artist=artist,
            albums=pages.items,
            discography_filter=discography_filter,
            batch=batch,
            page_count=pages.page_count,
        )

    async def collect_album_tracks(
        self, ctx: RequestContext, album_id: str, token: str
    ) -> list[SpotifyTrackSimplified]:
        """Every track of an album, without inter-page delay."""
        pages = await fetch_all_pages(
            ctx,
            f"{ALBUMS_URL}/{album_id}/tracks?limit={ALBUM_TRACKS_PAGE_SIZE}",
            token,
            fetch_body=self.responses.get_or_fetch,
            item_type=SpotifyTrackSimplified,
        )
        return pages.items
