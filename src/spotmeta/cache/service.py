"""Response cache service: TTL memoization plus single-flight coalescing."""

import asyncio
import functools
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from spotmeta.context import RequestContext

logger = logging.getLogger(__name__)

T = TypeVar("T")

BodyFetcher = Callable[[RequestContext, str, str], Awaitable[bytes]]


@dataclass(frozen=True, slots=True)
class CacheEntry:
    body: bytes
    expires_at: float


class ResponseCache:
    """Raw response bodies keyed by endpoint URL, expired lazily on read."""

    def __init__(self, *, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> bytes | None:
        """Return the cached body if present and unexpired, else ``None``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at or not entry.body:
                del self._entries[key]
                logger.debug("Cache expired for %s", key)
                return None
            return entry.body

    def put(self, key: str, body: bytes) -> None:
        if not body:
            return
        with self._lock:
            self._entries[key] = CacheEntry(body=body, expires_at=self._clock() + self._ttl)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass(slots=True)
class _Call(Generic[T]):
    future: asyncio.Future[T]
    waiters: int = 0


class SingleFlight(Generic[T]):
    """Coalesces concurrent calls for the same key into one execution.

    The first caller for a key starts the call as a task under an unbounded
    context. Every caller, the first included, waits on that task through its
    own context, so a caller whose deadline passes or who cancels abandons
    only its own wait. The task is cancelled once every waiter has left, which
    bounds it by the latest deadline among its waiters. The registry entry is
    removed when the task finishes, whatever the outcome.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: dict[str, _Call[T]] = {}

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._calls

    async def do(
        self,
        ctx: RequestContext,
        key: str,
        fn: Callable[[RequestContext], Awaitable[T]],
        *,
        on_success: Callable[[T], None] | None = None,
    ) -> T:
        with self._lock:
            call = self._calls.get(key)
            if call is None:
                call = _Call(asyncio.ensure_future(fn(RequestContext.background())))
                self._calls[key] = call
                call.future.add_done_callback(functools.partial(self._finish, key, call, on_success))
            else:
                logger.debug("Joining in-flight call for %s", key)
            call.waiters += 1
        try:
            return await ctx.run(asyncio.shield(call.future))
        finally:
            self._leave(key, call)

    def _leave(self, key: str, call: _Call[T]) -> None:
        with self._lock:
            call.waiters -= 1
            if call.waiters > 0 or call.future.done():
                return
            if self._calls.get(key) is call:
                del self._calls[key]
            call.future.cancel()
        logger.debug("Abandoned in-flight call for %s", key)

    def _finish(
        self, key: str, call: _Call[T], on_success: Callable[[T], None] | None, future: asyncio.Future[T]
    ) -> None:
        with self._lock:
            if self._calls.get(key) is call:
                del self._calls[key]
        if future.cancelled():
            return
        # Retrieving the exception marks it handled when no caller is left waiting.
        if future.exception() is None and on_success is not None:
            on_success(future.result())


class ResponseCacheService:
    """``get_or_fetch`` over a :class:`ResponseCache` and a :class:`SingleFlight`.

    Successful bodies are cached for the cache's TTL. Failures are never
    cached, so the next caller retries immediately.
    """

    def __init__(self, cache: ResponseCache, fetcher: BodyFetcher) -> None:
        self.cache = cache
        self._fetcher = fetcher
        self._flight: SingleFlight[bytes] = SingleFlight()

    async def get_or_fetch(self, ctx: RequestContext, endpoint: str, token: str) -> bytes:
        """Return the body for ``endpoint`` from cache, a joined in-flight call, or a fresh fetch."""
        cached = self.cache.get(endpoint)
        if cached is not None:
            logger.debug("Cache hit for %s", endpoint)
            return cached

        return await self._flight.do(
            ctx,
            endpoint,
            functools.partial(self._fetch, endpoint=endpoint, token=token),
            on_success=functools.partial(self.cache.put, endpoint),
        )

    async def _fetch(self, ctx: RequestContext, *, endpoint: str, token: str) -> bytes:
        # A call that finished between the cache check and registration already filled the cache.
        cached = self.cache.get(endpoint)
        if cached is not None:
            return cached
        return await self._fetcher(ctx, endpoint, token)
