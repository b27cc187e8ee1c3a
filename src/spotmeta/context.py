"""Per-request deadline and cancellation signal."""

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

from spotmeta.spotify.exceptions import DeadlineExceeded, RequestCancelled

T = TypeVar("T")


class RequestContext:
    """Deadline and cancel signal threaded through one logical request.

    Every suspension point (HTTP call, rate-limit wait, inter-page delay,
    single-flight wait) goes through :meth:`sleep` or :meth:`run`, so a
    cancelled or expired context aborts whatever is pending with
    :class:`RequestCancelled` / :class:`DeadlineExceeded`.
    """

    def __init__(self, timeout: float | None = None, *, deadline: float | None = None) -> None:
        if deadline is None and timeout is not None:
            deadline = time.monotonic() + timeout
        self._deadline = deadline
        self._cancelled = asyncio.Event()

    @classmethod
    def background(cls) -> "RequestContext":
        """Context without deadline, used when the caller passes none."""
        return cls()

    @property
    def deadline(self) -> float | None:
        """Monotonic-clock deadline, or ``None`` when unbounded."""
        return self._deadline

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline (never negative), or ``None``."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self) -> None:
        self._cancelled.set()

    def raise_if_done(self) -> None:
        if self.cancelled:
            raise RequestCancelled()
        if self.expired:
            raise DeadlineExceeded()

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds unless the context ends first."""
        self.raise_if_done()
        if delay <= 0:
            return
        remaining = self.remaining()
        timeout = delay if remaining is None else min(delay, remaining)
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=timeout)
        except TimeoutError:
            pass
        if self.cancelled:
            raise RequestCancelled()
        if remaining is not None and remaining < delay:
            raise DeadlineExceeded()

    async def run(self, aw: Awaitable[T]) -> T:
        """Await ``aw``, abandoning it if the context ends first."""
        self.raise_if_done()
        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        if self.cancelled:
            raise RequestCancelled()
        raise DeadlineExceeded()
