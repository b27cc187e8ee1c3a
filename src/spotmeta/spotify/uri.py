"""Parse Spotify links and URIs into entity references."""

import enum
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from spotmeta.constants import SPOTIFY_EMBED_HOST, SPOTIFY_WEB_HOSTS
from spotmeta.spotify.exceptions import InvalidReferenceError


class ReferenceKind(enum.StrEnum):
    """Entity kinds the metadata client can fetch."""

    TRACK = "track"
    ALBUM = "album"
    PLAYLIST = "playlist"
    ARTIST = "artist"
    ARTIST_DISCOGRAPHY = "artist_discography"


class DiscographyFilter(enum.StrEnum):
    """Release groups an artist discography can be narrowed to."""

    ALL = "all"
    ALBUM = "album"
    SINGLE = "single"
    COMPILATION = "compilation"

    @property
    def include_groups(self) -> str:
        """Value for the artist-albums ``include_groups`` query parameter."""
        if self is DiscographyFilter.ALL:
            return "album,single,compilation"
        return self.value


@dataclass(frozen=True, slots=True)
class SpotifyReference:
    """A parsed Spotify entity reference."""

    kind: ReferenceKind
    id: str
    discography_filter: DiscographyFilter | None = None


_SIMPLE_KINDS = {
    ReferenceKind.TRACK.value,
    ReferenceKind.ALBUM.value,
    ReferenceKind.PLAYLIST.value,
    ReferenceKind.ARTIST.value,
}


def parse_spotify_reference(value: str) -> SpotifyReference:
    """Resolve a Spotify link or URI to a :class:`SpotifyReference`.

    Accepted forms::

        spotify:track:{id}
        spotify:user:{user}:playlist:{id}
        https://open.spotify.com/track/{id}?si=...
        https://open.spotify.com/intl-de/album/{id}
        https://open.spotify.com/embed/playlist/{id}
        https://embed.spotify.com/?uri=spotify:track:{id}
        https://open.spotify.com/artist/{id}/discography/single
        open.spotify.com/track/{id}
        track/{id}
        {playlist_id}

    Raises:
        InvalidReferenceError: If the input does not match any supported form.
    """
    trimmed = (value or "").strip()
    if not trimmed:
        raise InvalidReferenceError(value, "empty input")

    if trimmed.startswith("spotify:"):
        return _parse_uri(trimmed)

    parts = urlsplit(trimmed)
    if not parts.scheme and not parts.netloc:
        head = trimmed.split("/", 1)[0].lower()
        if head in SPOTIFY_WEB_HOSTS or head == SPOTIFY_EMBED_HOST:
            parts = urlsplit(f"https://{trimmed}")
        else:
            return _parse_bare_path(trimmed, parts.path)

    host = (parts.hostname or "").lower()
    if host == SPOTIFY_EMBED_HOST:
        embedded = parse_qs(parts.query).get("uri", [""])[0]
        if not embedded:
            raise InvalidReferenceError(value, "embed link without uri parameter")
        return parse_spotify_reference(embedded)

    if host not in SPOTIFY_WEB_HOSTS:
        raise InvalidReferenceError(value, f"unsupported host {host or '(none)'}")

    segments = _strip_prefix_segments(_clean_path(parts.path))
    if not segments:
        raise InvalidReferenceError(value, "no path segments")
    return _match_segments(value, segments)


def _parse_uri(value: str) -> SpotifyReference:
    parts = value.split(":")
    if len(parts) == 3 and parts[1] in _SIMPLE_KINDS and parts[2]:
        return SpotifyReference(ReferenceKind(parts[1]), parts[2])
    if len(parts) == 5 and parts[1] == "user" and parts[3] == "playlist" and parts[4]:
        return SpotifyReference(ReferenceKind.PLAYLIST, parts[4])
    raise InvalidReferenceError(value, "unrecognized spotify: URI")


def _parse_bare_path(value: str, path: str) -> SpotifyReference:
    segments = _clean_path(path)
    if not segments:
        raise InvalidReferenceError(value, "no path segments")
    if len(segments) == 1:
        # Legacy convenience: a lone token is a playlist id.
        return SpotifyReference(ReferenceKind.PLAYLIST, segments[0])
    return _match_segments(value, _strip_prefix_segments(segments))


def _clean_path(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]


def _strip_prefix_segments(segments: list[str]) -> list[str]:
    """Drop leading ``embed`` and ``intl-xx`` segments in either order."""
    while segments and (segments[0] == "embed" or segments[0].startswith("intl-")):
        segments = segments[1:]
    return segments


def _match_segments(value: str, segments: list[str]) -> SpotifyReference:
    if len(segments) == 2 and segments[0] in _SIMPLE_KINDS:
        return SpotifyReference(ReferenceKind(segments[0]), segments[1])

    # Old-style user playlists: user/{user}/playlist/{id}
    if len(segments) == 4 and segments[0] == "user" and segments[2] == "playlist":
        return SpotifyReference(ReferenceKind.PLAYLIST, segments[3])

    if len(segments) >= 3 and segments[0] == "artist":
        if segments[2] != "discography":
            return SpotifyReference(ReferenceKind.ARTIST, segments[1])
        if len(segments) == 3:
            return SpotifyReference(ReferenceKind.ARTIST_DISCOGRAPHY, segments[1], DiscographyFilter.ALL)
        try:
            group = DiscographyFilter(segments[3])
        except ValueError:
            raise InvalidReferenceError(value, f"unknown discography group {segments[3]!r}") from None
        return SpotifyReference(ReferenceKind.ARTIST_DISCOGRAPHY, segments[1], group)

    raise InvalidReferenceError(value, "unrecognized path")
