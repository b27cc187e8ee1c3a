"""Spotify metadata client, models and link parsing."""

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
from spotmeta.spotify.uri import DiscographyFilter, ReferenceKind, SpotifyReference, parse_spotify_reference

__all__ = [
    "DeadlineExceeded",
    "DiscographyFilter",
    "InvalidReferenceError",
    "ReferenceKind",
    "RequestCancelled",
    "SpotifyAuthError",
    "SpotifyClientError",
    "SpotifyDecodeError",
    "SpotifyNetworkError",
    "SpotifyRateLimitError",
    "SpotifyReference",
    "SpotifyRequestError",
    "SpotifyServerError",
    "SpotifyUnauthorizedError",
    "SpotifyUpstreamError",
    "TOTPGenerationError",
    "parse_spotify_reference",
]
