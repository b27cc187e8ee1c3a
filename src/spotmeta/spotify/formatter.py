"""Map raw Spotify objects to the normalized metadata payloads."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from pydantic import ValidationError

from spotmeta.constants import SPOTIFY_WEB_BASE, TRACKS_URL
from spotmeta.context import RequestContext
from spotmeta.spotify.exceptions import (
    SpotifyDecodeError,
    SpotifyNetworkError,
    SpotifyUpstreamError,
)
from spotmeta.spotify.models import (
    SpotifyAlbumFull,
    SpotifyAlbumSimplified,
    SpotifyArtistFull,
    SpotifyArtistSimplified,
    SpotifyImage,
    SpotifyPlaylist,
    SpotifyPlaylistTrackItem,
    SpotifyTrack,
    SpotifyTrackExternalIds,
    SpotifyTrackSimplified,
    spotify_url,
)
from spotmeta.spotify.schemas import (
    AlbumInfoMetadata,
    AlbumResponse,
    AlbumTrackMetadata,
    ArtistDetails,
    ArtistDiscographyResponse,
    ArtistInfoMetadata,
    ArtistResponse,
    ArtistSimple,
    DiscographyAlbumMetadata,
    PlaylistInfoMetadata,
    PlaylistOwnerMetadata,
    PlaylistResponse,
    TotalCount,
    TrackMetadata,
    TrackResponse,
)
from spotmeta.spotify.uri import DiscographyFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")

BodyFetcher = Callable[[RequestContext, str, str], Awaitable[bytes]]
AlbumTracksFetcher = Callable[[RequestContext, str, str], Awaitable[list[SpotifyTrackSimplified]]]

# Lookup failures that leave a track without an ISRC instead of failing the request.
_NON_FATAL_ERRORS = (SpotifyUpstreamError, SpotifyNetworkError, SpotifyDecodeError)


# ---------------------------------------------------------------------------
# Raw inputs
# ---------------------------------------------------------------------------


@dataclass
class RawPlaylist:
    playlist: SpotifyPlaylist
    items: list[SpotifyPlaylistTrackItem] = field(default_factory=list)
    batch: bool = False
    page_count: int = 0


@dataclass
class RawAlbum:
    album: SpotifyAlbumFull
    tracks: list[SpotifyTrackSimplified] = field(default_factory=list)
    batch: bool = False
    page_count: int = 0


@dataclass
class RawDiscography:
    artist: SpotifyArtistFull
    albums: list[SpotifyAlbumSimplified] = field(default_factory=list)
    discography_filter: DiscographyFilter = DiscographyFilter.ALL
    batch: bool = False
    page_count: int = 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def first_image_url(images: Sequence[SpotifyImage]) -> str:
    return images[0].url if images else ""


def join_artists(artists: Sequence[SpotifyArtistSimplified]) -> str:
    """Comma-join artist names, skipping blank ones."""
    return ", ".join(artist.name for artist in artists if artist.name)


def first_non_empty(*values: str) -> str:
    for value in values:
        if value.strip():
            return value
    return ""


def artist_url(artist_id: str | None) -> str:
    return f"{SPOTIFY_WEB_BASE}/artist/{artist_id or ''}"


def batch_label(enabled: bool, page_count: int) -> str | None:
    """``batch`` field value: the page count (at least 1) when batch mode is on."""
    if not enabled:
        return None
    return str(max(1, page_count))


def _omit(value: T) -> T | None:
    # Empty strings and zeros are left out of the output.
    return value or None


def _artist_links(artists: Sequence[SpotifyArtistSimplified]) -> dict:
    if not artists:
        return {"artist_id": None, "artist_url": None, "artists_data": None}
    return {
        "artist_id": _omit(artists[0].id),
        "artist_url": artist_url(artists[0].id),
        "artists_data": [
            ArtistSimple(id=artist.id or "", name=artist.name or "", external_urls=artist_url(artist.id))
            for artist in artists
        ],
    }


# ---------------------------------------------------------------------------
# Pure formatters
# ---------------------------------------------------------------------------


def format_track(track: SpotifyTrack) -> TrackResponse:
    album = track.album or SpotifyAlbumSimplified()
    return TrackResponse(
        track=TrackMetadata(
            spotify_id=_omit(track.id),
            artists=join_artists(track.artists),
            name=track.name or "",
            album_name=album.name or "",
            album_artist=_omit(join_artists(album.artists)),
            duration_ms=track.duration_ms or 0,
            images=first_image_url(album.images),
            release_date=album.release_date or "",
            track_number=track.track_number or 0,
            total_tracks=_omit(album.total_tracks),
            disc_number=_omit(track.disc_number),
            external_urls=spotify_url(track.external_urls),
            isrc=(track.external_ids.isrc if track.external_ids else None) or "",
        )
    )


def format_artist(artist: SpotifyArtistFull) -> ArtistResponse:
    return ArtistResponse(
        artist=ArtistDetails(
            name=artist.name or "",
            followers=(artist.followers.total if artist.followers else None) or 0,
            genres=list(artist.genres),
            images=first_image_url(artist.images),
            external_urls=spotify_url(artist.external_urls),
            popularity=artist.popularity or 0,
        )
    )


def format_playlist(raw: RawPlaylist) -> PlaylistResponse:
    """Playlist info plus one entry per non-null track; tracks without album art use the playlist cover."""
    playlist = raw.playlist
    cover = first_image_url(playlist.images)
    info = PlaylistInfoMetadata(
        tracks=TotalCount(total=(playlist.tracks.total if playlist.tracks else None) or 0),
        followers=TotalCount(total=(playlist.followers.total if playlist.followers else None) or 0),
        owner=PlaylistOwnerMetadata(
            display_name=(playlist.owner.display_name if playlist.owner else None) or "",
            name=playlist.name or "",
            images=cover,
        ),
        batch=batch_label(raw.batch, raw.page_count),
    )

    track_list = []
    for item in raw.items:
        track = item.track
        if track is None:
            continue
        album = track.album or SpotifyAlbumSimplified()
        track_list.append(
            AlbumTrackMetadata(
                spotify_id=_omit(track.id),
                artists=join_artists(track.artists),
                name=track.name or "",
                album_name=album.name or "",
                album_artist=_omit(join_artists(album.artists)),
                duration_ms=track.duration_ms or 0,
                images=first_non_empty(first_image_url(album.images), cover),
                release_date=album.release_date or "",
                track_number=track.track_number or 0,
                total_tracks=_omit(album.total_tracks),
                disc_number=_omit(track.disc_number),
                external_urls=spotify_url(track.external_urls),
                isrc=(track.external_ids.isrc if track.external_ids else None) or "",
                album_id=_omit(album.id),
                album_url=_omit(spotify_url(album.external_urls)),
                **_artist_links(track.artists),
            )
        )

    return PlaylistResponse(playlist_info=info, track_list=track_list)


def format_discography_album(album: SpotifyAlbumSimplified) -> DiscographyAlbumMetadata:
    return DiscographyAlbumMetadata(
        id=album.id or "",
        name=album.name or "",
        album_type=album.album_type or "",
        release_date=album.release_date or "",
        total_tracks=album.total_tracks or 0,
        artists=join_artists(album.artists),
        images=first_image_url(album.images),
        external_urls=spotify_url(album.external_urls),
    )


# ---------------------------------------------------------------------------
# Formatter with per-track ISRC lookups
# ---------------------------------------------------------------------------


class MetadataFormatter:
    """Formats albums and discographies, resolving each track's ISRC.

    One instance serves one request: the ISRC memo is keyed by track id and
    lives as long as the instance.
    """

    def __init__(
        self,
        ctx: RequestContext,
        token: str,
        *,
        fetch_body: BodyFetcher,
        fetch_album_tracks: AlbumTracksFetcher,
        concurrency: int = 4,
    ) -> None:
        self._ctx = ctx
        self._token = token
        self._fetch_body = fetch_body
        self._fetch_album_tracks = fetch_album_tracks
        self._concurrency = max(1, concurrency)
        self._isrc: dict[str, str] = {}

    async def track_isrc(self, track_id: str | None) -> str:
        """ISRC for ``track_id`` from GET /tracks/{id}, or ``""`` when unavailable."""
        if not track_id or not self._token:
            return ""
        if track_id in self._isrc:
            return self._isrc[track_id]

        try:
            body = await self._fetch_body(self._ctx, f"{TRACKS_URL}/{track_id}", self._token)
            data = SpotifyTrackExternalIds.model_validate_json(body)
        except ValidationError as exc:
            logger.debug("Malformed track %s while resolving ISRC: %s", track_id, exc)
            return ""
        except _NON_FATAL_ERRORS as exc:
            logger.debug("ISRC lookup failed for track %s: %s", track_id, exc)
            return ""

        isrc = (data.external_ids.isrc if data.external_ids else None) or ""
        self._isrc[track_id] = isrc
        return isrc

    async def format_album(self, raw: RawAlbum) -> AlbumResponse:
        album = raw.album
        cover = first_image_url(album.images)
        album_artist = join_artists(album.artists)
        lead = album.artists[0] if album.artists else None
        info = AlbumInfoMetadata(
            total_tracks=album.total_tracks or 0,
            name=album.name or "",
            release_date=album.release_date or "",
            artists=album_artist,
            images=cover,
            batch=batch_label(raw.batch, raw.page_count),
            artist_id=_omit(lead.id) if lead else None,
            artist_url=artist_url(lead.id) if lead else None,
        )

        track_list = []
        for track in raw.tracks:
            track_list.append(
                AlbumTrackMetadata(
                    spotify_id=_omit(track.id),
                    artists=join_artists(track.artists),
                    name=track.name or "",
                    album_name=album.name or "",
                    album_artist=_omit(album_artist),
                    duration_ms=track.duration_ms or 0,
                    images=cover,
                    release_date=album.release_date or "",
                    track_number=track.track_number or 0,
                    total_tracks=_omit(album.total_tracks),
                    disc_number=_omit(track.disc_number),
                    external_urls=spotify_url(track.external_urls),
                    isrc=await self.track_isrc(track.id),
                )
            )
        return AlbumResponse(album_info=info, track_list=track_list)

    async def format_discography(self, raw: RawDiscography) -> ArtistDiscographyResponse:
        """Artist info, the album list, and every album's tracks flattened in album order.

        Albums whose track listing fails are kept in ``album_list`` but
        contribute no tracks.
        """
        artist = raw.artist
        info = ArtistInfoMetadata(
            name=artist.name or "",
            followers=(artist.followers.total if artist.followers else None) or 0,
            genres=list(artist.genres),
            images=first_image_url(artist.images),
            external_urls=spotify_url(artist.external_urls),
            discography_type=raw.discography_filter.value,
            total_albums=len(raw.albums),
            batch=batch_label(raw.batch, raw.page_count),
        )
        album_list = [format_discography_album(album) for album in raw.albums]

        semaphore = asyncio.Semaphore(self._concurrency)
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(self._album_tracks(album, semaphore)) for album in raw.albums]
        except BaseExceptionGroup as eg:
            raise eg.exceptions[0] from None

        track_list = [track for task in tasks for track in task.result()]
        return ArtistDiscographyResponse(artist_info=info, album_list=album_list, track_list=track_list)

    async def _album_tracks(
        self, album: SpotifyAlbumSimplified, semaphore: asyncio.Semaphore
    ) -> list[AlbumTrackMetadata]:
        if not album.id:
            return []
        async with semaphore:
            try:
                tracks = await self._fetch_album_tracks(self._ctx, album.id, self._token)
            except _NON_FATAL_ERRORS as exc:
                logger.warning("Error getting tracks for album %s: %s", album.name, exc)
                return []

            cover = first_image_url(album.images)
            album_artist = join_artists(album.artists)
            result = []
            for track in tracks:
                result.append(
                    AlbumTrackMetadata(
                        spotify_id=_omit(track.id),
                        artists=join_artists(track.artists),
                        name=track.name or "",
                        album_name=album.name or "",
                        album_artist=_omit(album_artist),
                        album_type=_omit(album.album_type),
                        duration_ms=track.duration_ms or 0,
                        images=cover,
                        release_date=album.release_date or "",
                        track_number=track.track_number or 0,
                        total_tracks=_omit(album.total_tracks),
                        disc_number=_omit(track.disc_number),
                        external_urls=spotify_url(track.external_urls),
                        isrc=await self.track_isrc(track.id),
                        album_id=_omit(album.id),
                        album_url=_omit(spotify_url(album.external_urls)),
                        **_artist_links(track.artists),
                    )
                )
            return result
