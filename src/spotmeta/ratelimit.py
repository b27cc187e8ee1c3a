"""Per-host request pacing and 429 cooldown tracking.

Every outbound request calls :meth:`HostRateLimiter.gate` first. The gate

- spaces requests to one host at least ``min_interval`` apart, and
- holds callers back while the host is cooling down after a 429.

Cooldowns grow exponentially: each 429 doubles the previous backoff (never
below the server's ``Retry-After``), capped at ``max_backoff``. A successful
response resets the backoff for that host.

Short cooldowns are waited out inline. A cooldown longer than the caller's
remaining budget fails fast with :class:`SpotifyRateLimitError` instead of
sleeping past the caller's deadline.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime
from urllib.parse import urlsplit

from spotmeta.constants import (
    DEFAULT_COOLDOWN_BUFFER,
    DEFAULT_DEADLINE_SAFETY_MARGIN,
    DEFAULT_INLINE_COOLDOWN_WAIT,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_MAX_WAIT_CAP,
    DEFAULT_MIN_REQUEST_INTERVAL,
    DEFAULT_RETRY_AFTER,
)
from spotmeta.context import RequestContext
from spotmeta.settings import MetadataSettings
from spotmeta.spotify.exceptions import SpotifyRateLimitError

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Tunables for :class:`HostRateLimiter`."""

    min_interval: float = DEFAULT_MIN_REQUEST_INTERVAL
    max_backoff: float = DEFAULT_MAX_BACKOFF
    cooldown_buffer: float = DEFAULT_COOLDOWN_BUFFER  # clock skew allowance on top of the backoff
    default_retry_after: float = DEFAULT_RETRY_AFTER
    inline_wait: float = DEFAULT_INLINE_COOLDOWN_WAIT
    deadline_margin: float = DEFAULT_DEADLINE_SAFETY_MARGIN
    max_wait_cap: float = DEFAULT_MAX_WAIT_CAP

    @classmethod
    def from_settings(cls, settings: MetadataSettings) -> "RateLimiterConfig":
        return cls(
            min_interval=settings.MIN_REQUEST_INTERVAL_SECONDS,
            max_backoff=settings.MAX_BACKOFF_SECONDS,
            cooldown_buffer=settings.COOLDOWN_BUFFER_SECONDS,
            default_retry_after=settings.DEFAULT_RETRY_AFTER_SECONDS,
            inline_wait=settings.INLINE_COOLDOWN_WAIT_SECONDS,
            deadline_margin=settings.DEADLINE_SAFETY_MARGIN_SECONDS,
            max_wait_cap=settings.MAX_WAIT_CAP_SECONDS,
        )


@dataclass
class HostRateState:
    """Pacing and cooldown bookkeeping for one host (monotonic timestamps)."""

    last_request_at: float | None = None
    cooldown_until: float | None = None
    current_backoff: float = 0.0


@dataclass(frozen=True, slots=True)
class Cooldown:
    """Result of recording a 429."""

    until: float
    backoff: float
    until_wall: datetime


def host_of(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


def parse_retry_after(value: str | None, default: float = DEFAULT_RETRY_AFTER) -> float:
    """Seconds to wait from a ``Retry-After`` header.

    Integer values get one extra second. HTTP-dates are honored. Anything
    missing or unparseable yields ``default``.
    """
    if not value or not value.strip():
        return default
    value = value.strip()
    try:
        return float(int(value) + 1)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0.0, (when - datetime.now(UTC)).total_seconds())


class HostRateLimiter:
    """Per-host pacing and cooldown gate.

    State for each host is guarded by that host's own lock; no lock is held
    while sleeping.
    """

    def __init__(self, config: RateLimiterConfig | None = None, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.config = config or RateLimiterConfig()
        self._clock = clock
        self._registry_lock = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._states: dict[str, HostRateState] = {}

    def _lock_for(self, host: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(host)
            if lock is None:
                lock = self._locks[host] = threading.Lock()
                self._states[host] = HostRateState()
            return lock

    def state(self, host: str) -> HostRateState:
        """Snapshot of a host's state."""
        with self._lock_for(host):
            return replace(self._states[host])

    def cooldown_remaining(self, host: str) -> float:
        with self._lock_for(host):
            until = self._states[host].cooldown_until
        if until is None:
            return 0.0
        return max(0.0, until - self._clock())

    def max_wait(self, ctx: RequestContext) -> float:
        """Longest wait the caller can afford: remaining budget minus margin, capped."""
        remaining = ctx.remaining()
        if remaining is None:
            return self.config.max_wait_cap
        return min(max(0.0, remaining - self.config.deadline_margin), self.config.max_wait_cap)

    def _wall_clock(self, monotonic_at: float) -> datetime:
        return datetime.now(UTC) + timedelta(seconds=monotonic_at - self._clock())

    async def gate(self, ctx: RequestContext, host: str) -> None:
        """Wait until a request to ``host`` may be sent.

        Raises:
            SpotifyRateLimitError: If the host's cooldown outlasts the caller's budget.
            RequestCancelled: If the context ends while waiting.
        """
        if not host:
            return
        lock = self._lock_for(host)

        while True:
            now = self._clock()
            with lock:
                state = self._states[host]
                cooldown_until = state.cooldown_until
                backoff = state.current_backoff
                if cooldown_until is None or cooldown_until <= now:
                    slot = now
                    if state.last_request_at is not None:
                        slot = max(now, state.last_request_at + self.config.min_interval)
                    state.last_request_at = slot
                    break

            wait = cooldown_until - now
            if self._fits_budget(ctx, wait):
                logger.debug("Host %s cooling down, waiting %.1fs", host, wait)
                await ctx.sleep(wait)
                continue

            raise SpotifyRateLimitError(
                host,
                retry_after=wait,
                cooldown_until=self._wall_clock(cooldown_until),
                backoff=backoff,
                detail="cooldown active",
            )

        pacing = slot - now
        if pacing > 0:
            await ctx.sleep(pacing)

    def _fits_budget(self, ctx: RequestContext, wait: float) -> bool:
        remaining = ctx.remaining()
        if remaining is not None and wait >= remaining:
            return False
        return wait <= self.config.inline_wait or wait <= self.max_wait(ctx)

    def note_rate_limited(self, host: str, retry_after: float | None) -> Cooldown:
        """Record a 429 for ``host`` and return the resulting cooldown."""
        if retry_after is None or retry_after <= 0:
            retry_after = self.config.default_retry_after
        now = self._clock()
        with self._lock_for(host):
            state = self._states[host]
            backoff = retry_after
            if state.current_backoff > 0:
                backoff = max(state.current_backoff * 2, retry_after)
            backoff = min(backoff, self.config.max_backoff)
            until = now + backoff + self.config.cooldown_buffer
            if state.cooldown_until is not None and state.cooldown_until > until:
                until = state.cooldown_until
            state.current_backoff = backoff
            state.cooldown_until = until

        logger.warning("Host %s rate limited, backing off %.0fs", host, backoff)
        return Cooldown(until=until, backoff=backoff, until_wall=self._wall_clock(until))

    def note_success(self, host: str) -> None:
        """Reset the backoff for ``host`` after a successful response."""
        with self._lock_for(host):
            self._states[host].current_backoff = 0.0
