"""Spotify metadata client exceptions."""

from datetime import datetime
from typing import Any


class SpotifyClientError(Exception):
    """Base exception for Spotify client errors."""


class InvalidReferenceError(SpotifyClientError):
    """Input could not be parsed as a Spotify URL or URI."""

    def __init__(self, value: str, reason: str = "") -> None:
        self.value = value
        self.reason = reason
        msg = f"invalid or unsupported Spotify URL: {value!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class SpotifyAuthError(SpotifyClientError):
    """Every token strategy failed to produce an access token."""

    def __init__(self, causes: dict[str, BaseException] | None = None) -> None:
        self.causes = causes or {}
        detail = "; ".join(f"{name}={exc}" for name, exc in self.causes.items())
        msg = "failed to get Spotify access token"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class SpotifyRateLimitError(SpotifyClientError):
    """A host is cooling down after 429 and the wait does not fit the caller's budget."""

    def __init__(
        self,
        host: str,
        *,
        endpoint: str = "",
        retry_after: float | None = None,
        cooldown_until: datetime | None = None,
        backoff: float | None = None,
        detail: str = "",
    ) -> None:
        self.host = host
        self.endpoint = endpoint
        self.retry_after = retry_after
        self.cooldown_until = cooldown_until
        self.backoff = backoff
        self.detail = detail
        parts = [f"host={host}"]
        if endpoint:
            parts.append(f"endpoint={endpoint}")
        if retry_after is not None:
            parts.append(f"retry-after={retry_after:.0f}s")
        if cooldown_until is not None:
            parts.append(f"cooldown-until={cooldown_until.isoformat(timespec='seconds')}")
        if backoff is not None:
            parts.append(f"backoff={backoff:.0f}s")
        if detail:
            parts.append(f"body={detail!r}")
        super().__init__("Spotify rate limited (429): " + " ".join(parts))


class SpotifyUnauthorizedError(SpotifyClientError):
    """Spotify returned 401; the cached token has already been dropped."""

    def __init__(self, endpoint: str, detail: str = "") -> None:
        self.endpoint = endpoint
        self.detail = detail
        super().__init__(
            f"Spotify API unauthorized (401) endpoint={endpoint}" + (f" body={detail!r}" if detail else "")
        )


class SpotifyUpstreamError(SpotifyClientError):
    """Spotify returned a non-200 response other than 401/429."""

    def __init__(self, status_code: int, endpoint: str = "", detail: str = "") -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        self.detail = detail
        msg = f"Spotify returned HTTP {status_code}"
        if endpoint:
            msg += f" for {endpoint}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class SpotifyServerError(SpotifyUpstreamError):
    """Spotify returned a 5xx server error and retries were exhausted."""


class SpotifyRequestError(SpotifyUpstreamError):
    """Spotify returned a non-retryable client error (4xx other than 401/429)."""


class SpotifyNetworkError(SpotifyClientError):
    """The request never produced a response (connection reset, timeout, ...)."""

    def __init__(self, endpoint: str, cause: BaseException) -> None:
        self.endpoint = endpoint
        self.cause = cause
        super().__init__(f"network error for {endpoint}: {cause!r}")


class SpotifyDecodeError(SpotifyClientError):
    """A response body was not the JSON shape we expected."""

    def __init__(self, source: str, detail: str = "") -> None:
        self.source = source
        self.detail = detail
        super().__init__(f"could not decode response from {source}" + (f": {detail}" if detail else ""))


class TOTPGenerationError(SpotifyClientError):
    """The secret table or server time needed for a TOTP code was unavailable."""


class RequestCancelled(SpotifyClientError):
    """The request context was cancelled.

    Paginated walks attach what they collected before the cancellation in
    ``partial`` and ``pages_fetched``.
    """

    def __init__(self, message: str = "request cancelled") -> None:
        self.partial: list[Any] | None = None
        self.pages_fetched = 0
        super().__init__(message)


class DeadlineExceeded(RequestCancelled):
    """The request context's deadline passed."""

    def __init__(self, message: str = "request deadline exceeded") -> None:
        super().__init__(message)
