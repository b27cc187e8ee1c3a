"""Pydantic models for Spotify web player and Web API responses.

These are pure data models matching Spotify's JSON structure. Spotify sends
``null`` for lists and objects it has nothing for, so list fields coerce
``null`` to an empty list.
"""

from typing import Annotated, Any, Generic, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

T = TypeVar("T")


def _none_to_empty_list(value: Any) -> Any:
    return [] if value is None else value


def _none_to_empty_dict(value: Any) -> Any:
    return {} if value is None else value


NullableList = Annotated[list[T], BeforeValidator(_none_to_empty_list)]
ExternalUrls = Annotated[dict[str, str | None], BeforeValidator(_none_to_empty_dict)]


def spotify_url(external_urls: dict[str, str | None]) -> str:
    """The ``spotify`` entry of an ``external_urls`` object."""
    return external_urls.get("spotify") or ""


# ---------------------------------------------------------------------------
# Images / followers
# ---------------------------------------------------------------------------


class SpotifyImage(BaseModel):
    """Image object returned by Spotify (album art, artist photos, etc.)."""

    url: str = ""
    height: int | None = None
    width: int | None = None


class SpotifyFollowers(BaseModel):
    """Followers object; only the total is populated."""

    total: int | None = None


# ---------------------------------------------------------------------------
# Artists
# ---------------------------------------------------------------------------


class SpotifyArtistSimplified(BaseModel):
    """Simplified artist object (embedded in tracks, albums)."""

    id: str | None = None
    name: str | None = None
    uri: str | None = None
    external_urls: ExternalUrls = Field(default_factory=dict)


class SpotifyArtistFull(SpotifyArtistSimplified):
    """Full artist object from GET /artists/{id}."""

    genres: NullableList[str] = Field(default_factory=list)
    popularity: int | None = None
    images: NullableList[SpotifyImage] = Field(default_factory=list)
    followers: SpotifyFollowers | None = None


# ---------------------------------------------------------------------------
# Paging
# ---------------------------------------------------------------------------


class SpotifyPage(BaseModel, Generic[T]):
    """Paging object: ``items`` plus a ``next`` cursor URL.

    ``null`` entries inside ``items`` are kept here and dropped by the
    paginated fetcher.
    """

    items: NullableList[T | None] = Field(default_factory=list)
    next: str | None = None
    total: int | None = None
    limit: int | None = None
    offset: int | None = None


# ---------------------------------------------------------------------------
# Albums
# ---------------------------------------------------------------------------


class SpotifyAlbumSimplified(BaseModel):
    """Simplified album object (embedded in tracks, artist album listings)."""

    id: str | None = None
    name: str | None = None
    uri: str | None = None
    album_type: str | None = None
    release_date: str | None = None
    total_tracks: int | None = None
    images: NullableList[SpotifyImage] = Field(default_factory=list)
    artists: NullableList[SpotifyArtistSimplified] = Field(default_factory=list)
    external_urls: ExternalUrls = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Tracks
# ---------------------------------------------------------------------------


class SpotifyExternalIds(BaseModel):
    """External IDs (ISRC, EAN, UPC)."""

    isrc: str | None = None
    ean: str | None = None
    upc: str | None = None


class SpotifyTrackSimplified(BaseModel):
    """Simplified track object (no album field, used in album track listings)."""

    id: str | None = None
    name: str | None = None
    uri: str | None = None
    duration_ms: int | None = None
    track_number: int | None = None
    disc_number: int | None = None
    artists: NullableList[SpotifyArtistSimplified] = Field(default_factory=list)
    external_urls: ExternalUrls = Field(default_factory=dict)


class SpotifyTrack(SpotifyTrackSimplified):
    """Full track object from GET /tracks/{id} or a playlist item."""

    album: SpotifyAlbumSimplified | None = None
    external_ids: SpotifyExternalIds | None = None


class SpotifyTrackExternalIds(BaseModel):
    """The slice of GET /tracks/{id} used for ISRC lookups."""

    external_ids: SpotifyExternalIds | None = None


class SpotifyAlbumFull(SpotifyAlbumSimplified):
    """Full album object from GET /albums/{id}."""

    genres: NullableList[str] = Field(default_factory=list)
    label: str | None = None
    popularity: int | None = None
    tracks: SpotifyPage[SpotifyTrackSimplified] | None = None


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------


class SpotifyPlaylistOwner(BaseModel):
    """Playlist owner object."""

    id: str | None = None
    display_name: str | None = None
    external_urls: ExternalUrls = Field(default_factory=dict)


class SpotifyPlaylistTrackItem(BaseModel):
    """Single item within a playlist's tracks array."""

    track: SpotifyTrack | None = None
    added_at: str | None = None


class SpotifyPlaylist(BaseModel):
    """Full playlist object from GET /playlists/{id}."""

    id: str | None = None
    name: str | None = None
    description: str | None = None
    owner: SpotifyPlaylistOwner | None = None
    followers: SpotifyFollowers | None = None
    images: NullableList[SpotifyImage] = Field(default_factory=list)
    tracks: SpotifyPage[SpotifyPlaylistTrackItem] | None = None
    external_urls: ExternalUrls = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Web player auth
# ---------------------------------------------------------------------------


class SpotifyTokenPayload(BaseModel):
    """Response from the web player token endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(default="", alias="accessToken")
    expires_in: int | None = Field(default=None, alias="expiresIn")
    expiration_timestamp_ms: int | None = Field(default=None, alias="accessTokenExpirationTimestampMs")
    is_anonymous: bool | None = Field(default=None, alias="isAnonymous")
    client_id: str | None = Field(default=None, alias="clientId")


class ServerTimePayload(BaseModel):
    """Response from GET /api/server-time."""

    model_config = ConfigDict(populate_by_name=True)

    server_time: int = Field(alias="serverTime")


class SecretEntry(BaseModel):
    """One versioned entry of the remote TOTP secret table."""

    version: int
    secret: list[int]
