"""Tests for the response cache and single-flight coalescing."""

import asyncio

import httpx
import pytest
import respx

from spotmeta.cache.service import ResponseCache, ResponseCacheService, SingleFlight
from spotmeta.context import RequestContext
from spotmeta.spotify.exceptions import DeadlineExceeded, RequestCancelled, SpotifyServerError
from spotmeta.spotify.transport import SpotifyTransport

ENDPOINT = "https://api.spotify.com/v1/tracks/abc"


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _GatedFetcher:
    """Fetcher that blocks until released and counts its calls."""

    def __init__(self, body: bytes = b'{"id": "abc"}') -> None:
        self.body = body
        self.calls = 0
        self.release = asyncio.Event()
        self.error: Exception | None = None

    async def __call__(self, ctx: RequestContext, endpoint: str, token: str) -> bytes:
        self.calls += 1
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.body


# ---------------------------------------------------------------------------
# ResponseCache
# ---------------------------------------------------------------------------


def test_cache_expires_after_ttl() -> None:
    """Entries are served until the TTL passes, then evicted on read."""
    clock = _Clock()
    cache = ResponseCache(ttl=600, clock=clock)
    cache.put("k", b"body")

    clock.now = 599
    assert cache.get("k") == b"body"
    clock.now = 600
    assert cache.get("k") is None
    assert len(cache) == 0


def test_cache_ignores_empty_bodies() -> None:
    cache = ResponseCache(ttl=600)
    cache.put("k", b"")
    assert cache.get("k") is None
    assert len(cache) == 0


def test_cache_clear() -> None:
    cache = ResponseCache(ttl=600)
    cache.put("a", b"1")
    cache.put("b", b"2")
    cache.clear()
    assert len(cache) == 0


# ---------------------------------------------------------------------------
# SingleFlight / ResponseCacheService
# ---------------------------------------------------------------------------


async def test_concurrent_fetches_share_one_call() -> None:
    """Concurrent callers for one endpoint run the fetcher once."""
    fetcher = _GatedFetcher()
    service = ResponseCacheService(ResponseCache(ttl=600), fetcher)

    tasks = [asyncio.create_task(service.get_or_fetch(RequestContext(5), ENDPOINT, "t")) for _ in range(3)]
    await asyncio.sleep(0)
    fetcher.release.set()
    bodies = await asyncio.gather(*tasks)

    assert bodies == [fetcher.body] * 3
    assert fetcher.calls == 1


async def test_second_fetch_served_from_cache() -> None:
    """A completed fetch is served byte-identical from the cache."""
    fetcher = _GatedFetcher()
    fetcher.release.set()
    service = ResponseCacheService(ResponseCache(ttl=600), fetcher)

    first = await service.get_or_fetch(RequestContext(5), ENDPOINT, "t")
    second = await service.get_or_fetch(RequestContext(5), ENDPOINT, "t")

    assert first == second == fetcher.body
    assert fetcher.calls == 1


async def test_failures_are_not_cached() -> None:
    """A failed fetch is shared by its waiters but the next call retries."""
    fetcher = _GatedFetcher()
    fetcher.error = SpotifyServerError(500, ENDPOINT)
    service = ResponseCacheService(ResponseCache(ttl=600), fetcher)

    tasks = [asyncio.create_task(service.get_or_fetch(RequestContext(5), ENDPOINT, "t")) for _ in range(2)]
    await asyncio.sleep(0)
    fetcher.release.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)
    assert all(isinstance(r, SpotifyServerError) for r in results)
    assert fetcher.calls == 1

    fetcher.error = None
    assert await service.get_or_fetch(RequestContext(5), ENDPOINT, "t") == fetcher.body
    assert fetcher.calls == 2


async def test_cancelled_waiter_does_not_cancel_shared_call() -> None:
    """One caller cancelling leaves the in-flight call running for the others."""
    fetcher = _GatedFetcher()
    service = ResponseCacheService(ResponseCache(ttl=600), fetcher)

    leader_ctx = RequestContext(5)
    leader = asyncio.create_task(service.get_or_fetch(leader_ctx, ENDPOINT, "t"))
    follower = asyncio.create_task(service.get_or_fetch(RequestContext(5), ENDPOINT, "t"))
    await asyncio.sleep(0)

    leader_ctx.cancel()
    with pytest.raises(RequestCancelled):
        await leader

    fetcher.release.set()
    assert await follower == fetcher.body
    assert fetcher.calls == 1


async def test_single_flight_registry_is_cleared() -> None:
    """The key is removed from the registry once the call finishes."""
    flight: SingleFlight[int] = SingleFlight()

    async def work(ctx: RequestContext) -> int:
        await asyncio.sleep(0)
        return 1

    assert await flight.do(RequestContext(5), "k", work) == 1
    assert not flight.in_flight("k")


@respx.mock
async def test_concurrent_http_requests_coalesce(transport: SpotifyTransport) -> None:
    """Concurrent identical requests reach the network once."""
    route = respx.get(ENDPOINT).mock(return_value=httpx.Response(200, json={"id": "abc"}))
    service = ResponseCacheService(ResponseCache(ttl=600), transport.fetch_api_body)

    bodies = await asyncio.gather(*(service.get_or_fetch(RequestContext(5), ENDPOINT, "t") for _ in range(4)))

    assert len(set(bodies)) == 1
    assert route.call_count == 1


@respx.mock
async def test_expired_entry_is_fetched_again(transport: SpotifyTransport) -> None:
    """Within the TTL the body comes from the cache; after it a new request goes out."""
    route = respx.get(ENDPOINT).mock(return_value=httpx.Response(200, json={"id": "abc"}))
    clock = _Clock()
    service = ResponseCacheService(ResponseCache(ttl=600, clock=clock), transport.fetch_api_body)

    first = await service.get_or_fetch(RequestContext(5), ENDPOINT, "t")
    clock.now = 599
    second = await service.get_or_fetch(RequestContext(5), ENDPOINT, "t")
    assert first == second
    assert route.call_count == 1

    clock.now = 600
    third = await service.get_or_fetch(RequestContext(5), ENDPOINT, "t")
    assert third == first
    assert route.call_count == 2


async def test_joiner_outlives_first_callers_deadline() -> None:
    """A joiner with a longer deadline still gets the shared result."""
    fetcher = _GatedFetcher()
    service = ResponseCacheService(ResponseCache(ttl=600), fetcher)

    first = asyncio.create_task(service.get_or_fetch(RequestContext(0.05), ENDPOINT, "t"))
    joiner = asyncio.create_task(service.get_or_fetch(RequestContext(5), ENDPOINT, "t"))

    with pytest.raises(DeadlineExceeded):
        await first

    fetcher.release.set()
    assert await joiner == fetcher.body
    assert fetcher.calls == 1


async def test_call_is_cancelled_when_every_waiter_leaves() -> None:
    """Once no caller is waiting the shared call is cancelled and unregistered."""
    flight: SingleFlight[int] = SingleFlight()
    started = asyncio.Event()
    stopped = asyncio.Event()

    async def work(ctx: RequestContext) -> int:
        started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            stopped.set()
            raise
        return 1

    ctx = RequestContext(5)
    waiter = asyncio.create_task(flight.do(ctx, "k", work))
    await started.wait()
    ctx.cancel()

    with pytest.raises(RequestCancelled):
        await waiter
    assert not flight.in_flight("k")
    await asyncio.wait_for(stopped.wait(), timeout=1)
