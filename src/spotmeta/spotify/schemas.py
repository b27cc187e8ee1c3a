"""Normalized metadata payloads returned by the client.

Fields typed ``X | None`` are optional in the output and are left out of
:meth:`PayloadModel.to_dict` when unset.
"""

from typing import Any

from pydantic import BaseModel, Field


class PayloadModel(BaseModel):
    """Base for every output model."""

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def to_json(self, indent: int | None = None) -> str:
        return self.model_dump_json(exclude_none=True, indent=indent)


# ---------------------------------------------------------------------------
# Tracks
# ---------------------------------------------------------------------------


class ArtistSimple(PayloadModel):
    id: str = ""
    name: str = ""
    external_urls: str = ""


class TrackMetadata(PayloadModel):
    """One flattened track."""

    spotify_id: str | None = None
    artists: str = ""
    name: str = ""
    album_name: str = ""
    album_artist: str | None = None
    duration_ms: int = 0
    images: str = ""
    release_date: str = ""
    track_number: int = 0
    total_tracks: int | None = None
    disc_number: int | None = None
    external_urls: str = ""
    isrc: str = ""


class AlbumTrackMetadata(TrackMetadata):
    """A track inside an album, playlist or discography listing."""

    album_type: str | None = None
    album_id: str | None = None
    album_url: str | None = None
    artist_id: str | None = None
    artist_url: str | None = None
    artists_data: list[ArtistSimple] | None = None


class TrackResponse(PayloadModel):
    track: TrackMetadata


# ---------------------------------------------------------------------------
# Albums
# ---------------------------------------------------------------------------


class AlbumInfoMetadata(PayloadModel):
    total_tracks: int = 0
    name: str = ""
    release_date: str = ""
    artists: str = ""
    images: str = ""
    batch: str | None = None
    artist_id: str | None = None
    artist_url: str | None = None


class AlbumResponse(PayloadModel):
    album_info: AlbumInfoMetadata
    track_list: list[AlbumTrackMetadata] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------


class TotalCount(PayloadModel):
    total: int = 0


class PlaylistOwnerMetadata(PayloadModel):
    display_name: str = ""
    name: str = ""
    images: str = ""


class PlaylistInfoMetadata(PayloadModel):
    tracks: TotalCount = Field(default_factory=TotalCount)
    followers: TotalCount = Field(default_factory=TotalCount)
    owner: PlaylistOwnerMetadata = Field(default_factory=PlaylistOwnerMetadata)
    batch: str | None = None


class PlaylistResponse(PayloadModel):
    playlist_info: PlaylistInfoMetadata
    track_list: list[AlbumTrackMetadata] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Artists
# ---------------------------------------------------------------------------


class ArtistInfoMetadata(PayloadModel):
    name: str = ""
    followers: int = 0
    genres: list[str] = Field(default_factory=list)
    images: str = ""
    external_urls: str = ""
    discography_type: str = "all"
    total_albums: int = 0
    batch: str | None = None


class DiscographyAlbumMetadata(PayloadModel):
    id: str = ""
    name: str = ""
    album_type: str = ""
    release_date: str = ""
    total_tracks: int = 0
    artists: str = ""
    images: str = ""
    external_urls: str = ""


class ArtistDiscographyResponse(PayloadModel):
    artist_info: ArtistInfoMetadata
    album_list: list[DiscographyAlbumMetadata] = Field(default_factory=list)
    track_list: list[AlbumTrackMetadata] = Field(default_factory=list)


class ArtistDetails(PayloadModel):
    name: str = ""
    followers: int = 0
    genres: list[str] = Field(default_factory=list)
    images: str = ""
    external_urls: str = ""
    popularity: int = 0


class ArtistResponse(PayloadModel):
    artist: ArtistDetails


MetadataPayload = TrackResponse | AlbumResponse | PlaylistResponse | ArtistDiscographyResponse | ArtistResponse
