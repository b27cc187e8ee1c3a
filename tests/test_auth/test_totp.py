"""Tests for TOTP generation and server time synchronization."""

import httpx
import pytest
import respx

from spotmeta.auth.secrets import SecretEntry, SecretStore
from spotmeta.auth.totp import ServerClock, TOTPEngine, compute_totp, derive_shared_secret, latest_secret
from spotmeta.constants import SPOTIFY_SERVER_TIME_URL
from spotmeta.context import RequestContext
from spotmeta.settings import MetadataSettings
from spotmeta.spotify.exceptions import TOTPGenerationError
from spotmeta.spotify.transport import SpotifyTransport

# RFC 6238 appendix B shared secret ("12345678901234567890").
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


@pytest.mark.parametrize(
    ("timestamp", "expected"),
    [
        (59, "287082"),
        (1111111109, "081804"),
        (1234567890, "005924"),
        (2000000000, "279037"),
    ],
)
def test_compute_totp_rfc_vectors(timestamp: int, expected: str) -> None:
    """Six-digit codes match the RFC 6238 SHA-1 vectors."""
    assert compute_totp(RFC_SECRET, timestamp) == expected


def test_compute_totp_accepts_milliseconds() -> None:
    """Millisecond timestamps are scaled down to seconds."""
    assert compute_totp(RFC_SECRET, 1111111109000) == "081804"


def test_compute_totp_rejects_bad_base32() -> None:
    """A secret that is not base32 raises TOTPGenerationError."""
    with pytest.raises(TOTPGenerationError, match="invalid base32"):
        compute_totp("not base32!", 59)


def test_derive_shared_secret() -> None:
    """Values are XORed by position, joined as decimals and base32-encoded."""
    # 12^9=5, 56^10=50, 76^11=71 -> "55071"
    assert derive_shared_secret([12, 56, 76]) == "GU2TANZR"


def test_latest_secret_picks_highest_version() -> None:
    """The newest secret version wins regardless of order."""
    entries = [
        SecretEntry(version=3, secret=[1]),
        SecretEntry(version=61, secret=[2]),
        SecretEntry(version=10, secret=[3]),
    ]
    assert latest_secret(entries).version == 61


def test_latest_secret_empty() -> None:
    """An empty table cannot produce a secret."""
    with pytest.raises(TOTPGenerationError):
        latest_secret([])


@respx.mock
async def test_server_clock_caches(transport: SpotifyTransport) -> None:
    """Server time is fetched once and extrapolated within the TTL."""
    route = respx.get(SPOTIFY_SERVER_TIME_URL).mock(
        return_value=httpx.Response(200, json={"serverTime": 1_700_000_000})
    )
    clock = ServerClock(transport, ttl=300)
    ctx = RequestContext(5)

    first = await clock.now(ctx)
    second = await clock.now(ctx)

    assert first == 1_700_000_000
    assert 1_700_000_000 <= second <= 1_700_000_001
    assert route.call_count == 1


@respx.mock
async def test_engine_generates_code(settings: MetadataSettings, transport: SpotifyTransport) -> None:
    """The engine combines the newest secret with the server time."""
    table = [{"version": 1, "secret": [1, 2, 3]}, {"version": 2, "secret": [12, 56, 76]}]
    respx.get(settings.SECRETS_URL).mock(return_value=httpx.Response(200, json=table))
    respx.get(SPOTIFY_SERVER_TIME_URL).mock(return_value=httpx.Response(200, json=1111111109))

    secrets = SecretStore(transport, url=settings.SECRETS_URL, cache_path=settings.SECRETS_CACHE_PATH, ttl=60)
    engine = TOTPEngine(secrets, ServerClock(transport, ttl=300))

    code = await engine.generate(RequestContext(5))

    assert code.version == 2
    assert code.server_time == 1111111109
    assert code.code == compute_totp("GU2TANZR", 1111111109)


@respx.mock
async def test_engine_wraps_server_time_failure(settings: MetadataSettings, transport: SpotifyTransport) -> None:
    """A server time failure surfaces as TOTPGenerationError."""
    respx.get(settings.SECRETS_URL).mock(
        return_value=httpx.Response(200, json=[{"version": 1, "secret": [1, 2, 3]}])
    )
    respx.get(SPOTIFY_SERVER_TIME_URL).mock(return_value=httpx.Response(403))

    secrets = SecretStore(transport, url=settings.SECRETS_URL, cache_path=settings.SECRETS_CACHE_PATH, ttl=60)
    engine = TOTPEngine(secrets, ServerClock(transport, ttl=300))

    with pytest.raises(TOTPGenerationError, match="server time unavailable"):
        await engine.generate(RequestContext(5))
