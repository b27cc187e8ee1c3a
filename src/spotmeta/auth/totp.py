"""TOTP code generation for the web player token endpoint."""

import base64
import hashlib
import hmac
import logging
import struct
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass

from spotmeta.auth.secrets import SecretEntry, SecretStore
from spotmeta.constants import MILLISECOND_TIMESTAMP_THRESHOLD, SPOTIFY_SERVER_TIME_URL, TOTP_DIGITS, TOTP_PERIOD
from spotmeta.context import RequestContext
from spotmeta.spotify.exceptions import RequestCancelled, SpotifyClientError, TOTPGenerationError
from spotmeta.spotify.transport import SpotifyTransport

logger = logging.getLogger(__name__)

_XOR_MODULUS = 33
_XOR_OFFSET = 9


@dataclass(frozen=True, slots=True)
class TOTPCode:
    """A generated code plus the inputs the token endpoint wants echoed back."""

    code: str
    server_time: int
    version: int


def derive_shared_secret(secret: Sequence[int]) -> str:
    """Turn a secret-table integer sequence into a base32 shared secret.

    Each value is XORed with ``(index % 33) + 9``; the decimal results are
    concatenated and the UTF-8 bytes of that string are base32-encoded.
    """
    digits = "".join(str(value ^ ((index % _XOR_MODULUS) + _XOR_OFFSET)) for index, value in enumerate(secret))
    return base64.b32encode(digits.encode("utf-8")).decode("ascii")


def compute_totp(b32_secret: str, timestamp: int, *, digits: int = TOTP_DIGITS, period: int = TOTP_PERIOD) -> str:
    """RFC 6238 TOTP (HMAC-SHA1) for ``timestamp`` in seconds or milliseconds."""
    normalized = b32_secret.replace(" ", "").upper()
    normalized += "=" * (-len(normalized) % 8)
    try:
        key = base64.b32decode(normalized)
    except ValueError as exc:
        raise TOTPGenerationError(f"invalid base32 secret: {exc}") from exc

    if timestamp > MILLISECOND_TIMESTAMP_THRESHOLD:
        timestamp //= 1000

    counter = struct.pack(">Q", timestamp // period)
    digest = hmac.new(key, counter, hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    binary = struct.unpack(">I", digest[offset : offset + 4])[0] & 0x7FFFFFFF
    return str(binary % (10**digits)).zfill(digits)


def latest_secret(entries: Sequence[SecretEntry]) -> SecretEntry:
    """Pick the entry with the highest version."""
    if not entries:
        raise TOTPGenerationError("secret table is empty")
    return max(entries, key=lambda entry: entry.version)


class ServerClock:
    """Spotify server time, cached and extrapolated with the local monotonic clock."""

    def __init__(self, transport: SpotifyTransport, *, ttl: float, url: str = SPOTIFY_SERVER_TIME_URL) -> None:
        self._transport = transport
        self._url = url
        self._ttl = ttl
        self._lock = threading.Lock()
        self._base: int | None = None
        self._is_ms = False
        self._fetched_at = 0.0

    async def now(self, ctx: RequestContext) -> int:
        """Current server time in the server's own unit (seconds or ms)."""
        with self._lock:
            elapsed = time.monotonic() - self._fetched_at
            if self._base is not None and elapsed <= self._ttl:
                if self._is_ms:
                    return self._base + int(elapsed * 1000)
                return self._base + int(elapsed)

        server_time = await self._transport.fetch_server_time(ctx, self._url)
        with self._lock:
            self._base = server_time
            self._is_ms = server_time > MILLISECOND_TIMESTAMP_THRESHOLD
            self._fetched_at = time.monotonic()
        logger.debug("Server time synchronized: %d (%s)", server_time, "ms" if self._is_ms else "s")
        return server_time


class TOTPEngine:
    """Produces TOTP codes from the remote secret table and synchronized server time."""

    def __init__(self, secrets: SecretStore, clock: ServerClock) -> None:
        self._secrets = secrets
        self._clock = clock

    async def generate(self, ctx: RequestContext) -> TOTPCode:
        """Generate a code for the current server time window.

        Raises:
            TOTPGenerationError: If the secret table or server time is unavailable.
            RequestCancelled: If the context ends while fetching either.
        """
        entries = await self._secrets.get_secrets(ctx)
        entry = latest_secret(entries)
        shared_secret = derive_shared_secret(entry.secret)

        try:
            server_time = await self._clock.now(ctx)
        except (TOTPGenerationError, RequestCancelled):
            raise
        except SpotifyClientError as exc:
            raise TOTPGenerationError(f"server time unavailable: {exc}") from exc

        code = compute_totp(shared_secret, server_time)
        return TOTPCode(code=code, server_time=server_time, version=entry.version)
