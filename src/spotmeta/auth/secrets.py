"""Remote TOTP secret table with in-memory TTL cache and local file fallback."""

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from pydantic import TypeAdapter

from spotmeta.context import RequestContext
from spotmeta.spotify.exceptions import RequestCancelled, SpotifyClientError, TOTPGenerationError
from spotmeta.spotify.models import SecretEntry
from spotmeta.spotify.transport import SpotifyTransport

logger = logging.getLogger(__name__)

_SECRET_TABLE = TypeAdapter(list[SecretEntry])

__all__ = ["SecretEntry", "SecretStore", "parse_secret_table"]


def parse_secret_table(body: bytes) -> list[SecretEntry]:
    """Decode a secret table body; an empty table is invalid."""
    entries = _SECRET_TABLE.validate_json(body)
    if not entries:
        raise ValueError("secret table is empty")
    return entries


class SecretStore:
    """Serves the versioned secret table.

    Lookup order: in-memory copy younger than ``ttl``, then the remote URL
    (written through to ``cache_path`` on success), then ``cache_path``.
    """

    def __init__(
        self,
        transport: SpotifyTransport,
        *,
        url: str,
        cache_path: Path,
        ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self._url = url
        self._cache_path = cache_path
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: list[SecretEntry] = []
        self._fetched_at: float | None = None

    def _cached(self) -> list[SecretEntry] | None:
        with self._lock:
            if self._entries and self._fetched_at is not None and self._clock() - self._fetched_at <= self._ttl:
                return list(self._entries)
        return None

    def _remember(self, entries: list[SecretEntry]) -> None:
        with self._lock:
            self._entries = list(entries)
            self._fetched_at = self._clock()

    async def get_secrets(self, ctx: RequestContext) -> list[SecretEntry]:
        """Return the secret table.

        Raises:
            TOTPGenerationError: If neither the remote table nor the local copy is usable.
            RequestCancelled: If the context ends during the remote fetch.
        """
        cached = self._cached()
        if cached is not None:
            return cached

        try:
            body = await self._transport.fetch_raw(ctx, self._url)
            entries = parse_secret_table(body)
        except RequestCancelled:
            raise
        except (SpotifyClientError, ValueError) as exc:
            logger.warning("Remote secret table unavailable, falling back to %s: %s", self._cache_path, exc)
            return self._load_local(exc)

        self._remember(entries)
        self._write_through(body)
        logger.debug("Loaded %d secret table entries from %s", len(entries), self._url)
        return list(entries)

    def _write_through(self, body: bytes) -> None:
        try:
            self._cache_path.parent.mkdir(parents=True, exist_ok=True)
            self._cache_path.write_bytes(body)
        except OSError as exc:
            logger.warning("Could not write secret table cache %s: %s", self._cache_path, exc)

    def _load_local(self, remote_error: Exception) -> list[SecretEntry]:
        try:
            body = self._cache_path.read_bytes()
        except OSError as exc:
            raise TOTPGenerationError(
                f"failed to fetch secrets from both remote ({remote_error}) and local file: {exc}"
            ) from exc
        try:
            entries = parse_secret_table(body)
        except ValueError as exc:
            raise TOTPGenerationError(f"failed to process local secrets {self._cache_path}: {exc}") from exc

        self._remember(entries)
        return list(entries)
