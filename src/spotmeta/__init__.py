"""Resilient Spotify metadata client.

Quick use::

    async with SpotifyMetadataClient() as client:
        payload = await client.fetch_metadata("https://open.spotify.com/album/...")

The module-level :func:`fetch_metadata` and :func:`get_access_token` use a
lazily built process-wide client bound to the first event loop that uses it.
"""

import functools

from spotmeta.auth.models import AccessToken, TokenSource
from spotmeta.constants import DEFAULT_FETCH_TIMEOUT
from spotmeta.context import RequestContext
from spotmeta.settings import MetadataSettings, get_settings
from spotmeta.spotify.client import SpotifyMetadataClient
from spotmeta.spotify.exceptions import (
    DeadlineExceeded,
    InvalidReferenceError,
    RequestCancelled,
    SpotifyAuthError,
    SpotifyClientError,
    SpotifyDecodeError,
    SpotifyNetworkError,
    SpotifyRateLimitError,
    SpotifyRequestError,
    SpotifyServerError,
    SpotifyUnauthorizedError,
    SpotifyUpstreamError,
    TOTPGenerationError,
)
from spotmeta.spotify.schemas import MetadataPayload
from spotmeta.spotify.uri import parse_spotify_reference

__all__ = [
    # Client
    "MetadataSettings",
    "RequestContext",
    "SpotifyMetadataClient",
    "default_client",
    "fetch_metadata",
    "get_access_token",
    "get_settings",
    "parse_spotify_reference",
    # Types
    "AccessToken",
    "MetadataPayload",
    "TokenSource",
    # Exceptions
    "DeadlineExceeded",
    "InvalidReferenceError",
    "RequestCancelled",
    "SpotifyAuthError",
    "SpotifyClientError",
    "SpotifyDecodeError",
    "SpotifyNetworkError",
    "SpotifyRateLimitError",
    "SpotifyRequestError",
    "SpotifyServerError",
    "SpotifyUnauthorizedError",
    "SpotifyUpstreamError",
    "TOTPGenerationError",
]


@functools.lru_cache(maxsize=1)
def default_client() -> SpotifyMetadataClient:
    """Return the cached process-wide client."""
    return SpotifyMetadataClient(get_settings())


async def fetch_metadata(
    url: str,
    *,
    batch: bool = False,
    per_page_delay: float = 0.0,
    timeout: float | None = DEFAULT_FETCH_TIMEOUT,
) -> MetadataPayload:
    """:meth:`SpotifyMetadataClient.fetch_metadata` on the default client."""
    return await default_client().fetch_metadata(url, batch=batch, per_page_delay=per_page_delay, timeout=timeout)


async def get_access_token(ctx: RequestContext | None = None) -> AccessToken:
    """:meth:`SpotifyMetadataClient.get_access_token` on the default client."""
    return await default_client().get_access_token(ctx)
