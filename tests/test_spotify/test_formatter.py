"""Tests for mapping raw Spotify objects to metadata payloads."""

import json

from spotmeta.context import RequestContext
from spotmeta.spotify.exceptions import SpotifyRequestError, SpotifyServerError
from spotmeta.spotify.formatter import (
    MetadataFormatter,
    RawAlbum,
    RawDiscography,
    RawPlaylist,
    batch_label,
    format_artist,
    format_playlist,
    format_track,
    join_artists,
)
from spotmeta.spotify.models import (
    SpotifyAlbumFull,
    SpotifyAlbumSimplified,
    SpotifyArtistFull,
    SpotifyArtistSimplified,
    SpotifyPlaylist,
    SpotifyPlaylistTrackItem,
    SpotifyTrack,
    SpotifyTrackSimplified,
)
from spotmeta.spotify.uri import DiscographyFilter

TRACKS_URL = "https://api.spotify.com/v1/tracks"


def _artist(artist_id: str, name: str) -> dict:
    return {"id": artist_id, "name": name, "external_urls": {"spotify": f"https://open.spotify.com/artist/{artist_id}"}}


def _album_json(album_id: str = "al1", *, images: list | None = None) -> dict:
    return {
        "id": album_id,
        "name": f"Album {album_id}",
        "album_type": "album",
        "release_date": "2020-01-01",
        "total_tracks": 2,
        "images": images if images is not None else [{"url": f"https://i.scdn.co/{album_id}.jpg"}],
        "artists": [_artist("ar1", "Artist One")],
        "external_urls": {"spotify": f"https://open.spotify.com/album/{album_id}"},
    }


def _track_json(track_id: str, **extra: object) -> dict:
    data = {
        "id": track_id,
        "name": f"Song {track_id}",
        "duration_ms": 1000,
        "track_number": 1,
        "disc_number": 1,
        "artists": [_artist("ar1", "Artist One"), _artist("ar2", "Artist Two")],
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
    }
    data.update(extra)
    return data


class _IsrcFetcher:
    """Serves GET /tracks/{id} bodies and counts lookups."""

    def __init__(self, isrcs: dict[str, str], failing: set[str] | None = None) -> None:
        self.isrcs = isrcs
        self.failing = failing or set()
        self.calls: list[str] = []

    async def __call__(self, ctx: RequestContext, url: str, token: str) -> bytes:
        track_id = url.rsplit("/", 1)[-1]
        self.calls.append(track_id)
        if track_id in self.failing:
            raise SpotifyServerError(502, url)
        return json.dumps({"external_ids": {"isrc": self.isrcs.get(track_id)}}).encode()


def _formatter(fetch_body, fetch_album_tracks=None) -> MetadataFormatter:
    async def no_tracks(ctx: RequestContext, album_id: str, token: str) -> list[SpotifyTrackSimplified]:
        return []

    return MetadataFormatter(
        RequestContext(5), "tok", fetch_body=fetch_body, fetch_album_tracks=fetch_album_tracks or no_tracks
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_join_artists_skips_blank_names() -> None:
    artists = [SpotifyArtistSimplified(name="A"), SpotifyArtistSimplified(name=""), SpotifyArtistSimplified(name="B")]
    assert join_artists(artists) == "A, B"


def test_batch_label() -> None:
    """The batch field is the page count (minimum 1) only in batch mode."""
    assert batch_label(False, 3) is None
    assert batch_label(True, 3) == "3"
    assert batch_label(True, 0) == "1"


# ---------------------------------------------------------------------------
# Pure formatters
# ---------------------------------------------------------------------------


def test_format_track() -> None:
    track = SpotifyTrack.model_validate(
        _track_json("t1", album=_album_json(), external_ids={"isrc": "USRC17607839"})
    )

    data = format_track(track).to_dict()["track"]

    assert data["spotify_id"] == "t1"
    assert data["artists"] == "Artist One, Artist Two"
    assert data["album_name"] == "Album al1"
    assert data["album_artist"] == "Artist One"
    assert data["images"] == "https://i.scdn.co/al1.jpg"
    assert data["isrc"] == "USRC17607839"
    assert data["total_tracks"] == 2


def test_format_track_omits_missing_optionals() -> None:
    """Optional fields without values are left out of the output."""
    track = SpotifyTrack.model_validate({"id": "t1", "name": "Song", "album": None, "disc_number": None})
    data = format_track(track).to_dict()["track"]
    assert "album_artist" not in data
    assert "disc_number" not in data
    assert data["isrc"] == ""


def test_format_artist() -> None:
    artist = SpotifyArtistFull.model_validate(
        {**_artist("ar1", "Artist One"), "genres": None, "followers": {"total": 12}, "popularity": 70}
    )
    data = format_artist(artist).to_dict()["artist"]
    assert data == {
        "name": "Artist One",
        "followers": 12,
        "genres": [],
        "images": "",
        "external_urls": "https://open.spotify.com/artist/ar1",
        "popularity": 70,
    }


def test_format_playlist_skips_null_tracks_and_uses_cover() -> None:
    """Null track entries are skipped; tracks without art fall back to the playlist cover."""
    playlist = SpotifyPlaylist.model_validate(
        {
            "id": "p1",
            "name": "My Mix",
            "owner": {"display_name": "owner-name"},
            "followers": {"total": 3},
            "images": [{"url": "https://i.scdn.co/cover.jpg"}],
            "tracks": {"total": 2, "items": []},
        }
    )
    items = [
        SpotifyPlaylistTrackItem.model_validate({"track": _track_json("t1", album=_album_json(images=[]))}),
        SpotifyPlaylistTrackItem.model_validate({"track": None}),
    ]

    payload = format_playlist(RawPlaylist(playlist=playlist, items=items, batch=True, page_count=2)).to_dict()

    info = payload["playlist_info"]
    assert info["owner"] == {"display_name": "owner-name", "name": "My Mix", "images": "https://i.scdn.co/cover.jpg"}
    assert info["tracks"] == {"total": 2}
    assert info["batch"] == "2"
    assert len(payload["track_list"]) == 1
    entry = payload["track_list"][0]
    assert entry["images"] == "https://i.scdn.co/cover.jpg"
    assert entry["artist_id"] == "ar1"
    assert entry["artist_url"] == "https://open.spotify.com/artist/ar1"
    assert [a["name"] for a in entry["artists_data"]] == ["Artist One", "Artist Two"]
    assert entry["album_url"] == "https://open.spotify.com/album/al1"


# ---------------------------------------------------------------------------
# MetadataFormatter
# ---------------------------------------------------------------------------


async def test_format_album_resolves_isrc() -> None:
    """Each album track gets its ISRC from GET /tracks/{id}."""
    fetcher = _IsrcFetcher({"t1": "ISRC1", "t2": "ISRC2"})
    raw = RawAlbum(
        album=SpotifyAlbumFull.model_validate(_album_json()),
        tracks=[SpotifyTrackSimplified.model_validate(_track_json(t)) for t in ("t1", "t2")],
    )

    payload = (await _formatter(fetcher).format_album(raw)).to_dict()

    assert [t["isrc"] for t in payload["track_list"]] == ["ISRC1", "ISRC2"]
    assert payload["album_info"]["artist_id"] == "ar1"
    assert "batch" not in payload["album_info"]
    assert payload["track_list"][0]["album_artist"] == "Artist One"


async def test_isrc_lookup_is_memoized() -> None:
    """A track id is looked up once per formatter."""
    fetcher = _IsrcFetcher({"t1": "ISRC1"})
    formatter = _formatter(fetcher)

    assert await formatter.track_isrc("t1") == "ISRC1"
    assert await formatter.track_isrc("t1") == "ISRC1"
    assert fetcher.calls == ["t1"]


async def test_isrc_lookup_failure_yields_empty() -> None:
    """A failed lookup leaves the ISRC empty and is retried next time."""
    fetcher = _IsrcFetcher({}, failing={"t1"})
    formatter = _formatter(fetcher)

    assert await formatter.track_isrc("t1") == ""
    assert await formatter.track_isrc("t1") == ""
    assert fetcher.calls == ["t1", "t1"]
    assert await formatter.track_isrc(None) == ""


async def test_format_discography_flattens_tracks_in_album_order() -> None:
    """Tracks of every album are flattened in album order; failing albums contribute none."""
    album_tracks = {
        "al1": [SpotifyTrackSimplified.model_validate(_track_json("t1"))],
        "al3": [SpotifyTrackSimplified.model_validate(_track_json(t)) for t in ("t3", "t4")],
    }

    async def fetch_album_tracks(ctx: RequestContext, album_id: str, token: str) -> list[SpotifyTrackSimplified]:
        if album_id == "al2":
            raise SpotifyRequestError(404, album_id)
        return album_tracks[album_id]

    raw = RawDiscography(
        artist=SpotifyArtistFull.model_validate({**_artist("ar1", "Artist One"), "followers": {"total": 5}}),
        albums=[SpotifyAlbumSimplified.model_validate(_album_json(a)) for a in ("al1", "al2", "al3")],
        discography_filter=DiscographyFilter.ALBUM,
    )

    payload = (await _formatter(_IsrcFetcher({}), fetch_album_tracks).format_discography(raw)).to_dict()

    assert payload["artist_info"]["discography_type"] == "album"
    assert payload["artist_info"]["total_albums"] == 3
    assert [a["id"] for a in payload["album_list"]] == ["al1", "al2", "al3"]
    assert [t["spotify_id"] for t in payload["track_list"]] == ["t1", "t3", "t4"]
    assert payload["track_list"][0]["album_type"] == "album"
    assert payload["track_list"][1]["album_id"] == "al3"
