"""HTTP transport for Spotify: browser-like headers, rate-limit gating and retries."""

import logging
import random
import re
import threading
from collections.abc import Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from pydantic import TypeAdapter, ValidationError

from spotmeta.constants import SPOTIFY_WEB_BASE
from spotmeta.context import RequestContext
from spotmeta.ratelimit import HostRateLimiter, host_of, parse_retry_after
from spotmeta.settings import MetadataSettings
from spotmeta.spotify.exceptions import (
    SpotifyClientError,
    SpotifyDecodeError,
    SpotifyNetworkError,
    SpotifyRateLimitError,
    SpotifyRequestError,
    SpotifyServerError,
    SpotifyUnauthorizedError,
    SpotifyUpstreamError,
)
from spotmeta.spotify.models import ServerTimePayload, SpotifyTokenPayload

logger = logging.getLogger(__name__)

# Network errors and 5xx responses are retried this many times per call.
TRANSIENT_RETRIES = 2

_SERVER_TIME_ADAPTER: TypeAdapter[int | ServerTimePayload] = TypeAdapter(int | ServerTimePayload)
_WHITESPACE = re.compile(r"\s+")


def preview_body(body: bytes | str, limit: int) -> str:
    """Whitespace-collapsed prefix of a response body for logs and errors."""
    if limit <= 0 or not body:
        return ""
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    text = _WHITESPACE.sub(" ", text).strip()
    if len(text) > limit:
        return text[:limit] + "…"
    return text


def redact_token_url(url: str) -> str:
    """Replace the ``totp`` query value so codes never reach the logs."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    if not any(key == "totp" for key, _ in query):
        return url
    redacted = [(key, "***" if key == "totp" else value) for key, value in query]
    return urlunsplit(parts._replace(query=urlencode(redacted)))


def _upstream_error(status_code: int, endpoint: str, detail: str) -> SpotifyUpstreamError:
    if status_code >= 500:
        return SpotifyServerError(status_code, endpoint, detail)
    return SpotifyRequestError(status_code, endpoint, detail)


class SpotifyTransport:
    """Sends requests to Spotify hosts through the shared :class:`HostRateLimiter`.

    Owns one ``httpx.AsyncClient`` for its lifetime. Every request is gated by
    the limiter, 429s feed the limiter's cooldown state, and network errors and
    5xx responses are retried a bounded number of times. A 401 from the Web API
    calls ``on_unauthorized`` so the token cache can be dropped.
    """

    def __init__(
        self,
        settings: MetadataSettings,
        limiter: HostRateLimiter,
        *,
        http_client: httpx.AsyncClient | None = None,
        on_unauthorized: Callable[[], None] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self.limiter = limiter
        self.on_unauthorized = on_unauthorized
        self._rng = rng or random.Random()
        self._rng_lock = threading.Lock()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT_SECONDS)
        self.user_agent = self.random_user_agent()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # -------------------------------------------------------------------
    # Headers
    # -------------------------------------------------------------------

    def random_user_agent(self) -> str:
        """A plausible desktop Chrome-on-macOS user agent."""
        with self._rng_lock:
            r = self._rng.randrange
            return (
                f"Mozilla/5.0 (Macintosh; Intel Mac OS X 10_{r(11, 15)}_{r(4, 9)}) "
                f"AppleWebKit/{r(530, 537)}.{r(30, 37)} (KHTML, like Gecko) "
                f"Chrome/{r(80, 105)}.0.{r(3000, 4500)}.{r(60, 125)} "
                f"Safari/{r(530, 537)}.{r(30, 36)}"
            )

    def base_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
            "Accept-Language": "en-US,en;q=0.9",
            "sec-ch-ua-platform": '"Windows"',
            "sec-fetch-dest": "empty",
            "sec-fetch-mode": "cors",
            "sec-fetch-site": "same-origin",
            "Referer": f"{SPOTIFY_WEB_BASE}/",
            "Origin": SPOTIFY_WEB_BASE,
        }

    def server_time_headers(self) -> dict[str, str]:
        return {"User-Agent": self.random_user_agent(), "Accept": "*/*"}

    # -------------------------------------------------------------------
    # Low-level send
    # -------------------------------------------------------------------

    async def _send(
        self,
        ctx: RequestContext,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        return await ctx.run(self._http.request(method, url, headers=headers, data=data))

    def _rate_limited(
        self, host: str, response: httpx.Response, endpoint: str, preview_limit: int = 350
    ) -> tuple[float, SpotifyRateLimitError]:
        """Record a 429 and build the error describing it."""
        retry_after = parse_retry_after(
            response.headers.get("Retry-After"), self._settings.DEFAULT_RETRY_AFTER_SECONDS
        )
        cooldown = self.limiter.note_rate_limited(host, retry_after)
        error = SpotifyRateLimitError(
            host,
            endpoint=endpoint,
            retry_after=retry_after,
            cooldown_until=cooldown.until_wall,
            backoff=cooldown.backoff,
            detail=preview_body(response.content, preview_limit),
        )
        return retry_after, error

    # -------------------------------------------------------------------
    # Web API
    # -------------------------------------------------------------------

    async def fetch_api_body(self, ctx: RequestContext, endpoint: str, token: str) -> bytes:
        """GET a Web API endpoint and return the raw 200 body.

        Retry loop:
        1. Gate on the host's pacing and cooldown
        2. Network error: retry with linear backoff, at most twice
        3. 429: wait through the cooldown if it fits the caller's budget and
           the per-call rate-limit retry ceiling, else raise SpotifyRateLimitError
        4. 401: drop the cached token, raise SpotifyUnauthorizedError
        5. 5xx: retry with linear backoff, at most twice
        6. Other non-200: raise SpotifyRequestError immediately
        """
        settings = self._settings
        host = host_of(endpoint)
        max_wait = self.limiter.max_wait(ctx)
        rate_limit_count = 0
        last_status = 0
        logger.debug("api GET %s", endpoint)

        for attempt in range(settings.API_MAX_ATTEMPTS):
            await self.limiter.gate(ctx, host)
            headers = self.base_headers()
            if token:
                headers["Authorization"] = f"Bearer {token}"

            try:
                response = await self._send(ctx, "GET", endpoint, headers=headers)
            except httpx.TransportError as exc:
                logger.debug("api request error (attempt=%d): %r", attempt + 1, exc)
                if attempt < TRANSIENT_RETRIES:
                    await ctx.sleep((attempt + 1) * settings.NETWORK_RETRY_DELAY_SECONDS)
                    continue
                raise SpotifyNetworkError(endpoint, exc) from exc

            status = last_status = response.status_code
            logger.debug("api response status=%d endpoint=%s", status, endpoint)

            if status == 200:
                self.limiter.note_success(host)
                return response.content

            if status == 429:
                rate_limit_count += 1
                _, error = self._rate_limited(host, response, endpoint)
                wait = self.limiter.cooldown_remaining(host)
                if 0 < wait <= max_wait and rate_limit_count <= settings.API_MAX_RATE_LIMIT_RETRIES:
                    logger.info("Spotify rate limited %s, waiting %.1fs before retry", host, wait)
                    await ctx.sleep(wait)
                    continue
                raise error

            if status == 401:
                if token and self.on_unauthorized is not None:
                    self.on_unauthorized()
                raise SpotifyUnauthorizedError(endpoint, preview_body(response.content, 350))

            if status >= 500 and attempt < TRANSIENT_RETRIES:
                delay = (attempt + 1) * settings.API_SERVER_RETRY_DELAY_SECONDS
                logger.warning(
                    "Spotify server error %d, sleeping %.2fs (attempt %d/%d)",
                    status,
                    delay,
                    attempt + 1,
                    TRANSIENT_RETRIES + 1,
                )
                await ctx.sleep(delay)
                continue

            preview = preview_body(response.content, 900)
            logger.debug("api non-200 status=%d endpoint=%s body(peek)=%s", status, endpoint, preview)
            raise _upstream_error(status, endpoint, preview)

        raise SpotifyServerError(last_status, endpoint, "max retries exhausted")

    # -------------------------------------------------------------------
    # Web player endpoints
    # -------------------------------------------------------------------

    async def fetch_token_payload(self, ctx: RequestContext, url: str) -> SpotifyTokenPayload:
        """GET a web player token endpoint.

        429s with a short ``Retry-After`` are retried after the limiter's
        cooldown; longer ones are raised at once.
        """
        settings = self._settings
        host = host_of(url)
        redacted = redact_token_url(url)
        last_error: SpotifyClientError | None = None
        logger.debug("token GET %s", redacted)

        for attempt in range(settings.TOKEN_MAX_ATTEMPTS):
            await self.limiter.gate(ctx, host)
            try:
                response = await self._send(ctx, "GET", url, headers=self.base_headers())
            except httpx.TransportError as exc:
                last_error = SpotifyNetworkError(redacted, exc)
                await ctx.sleep((attempt + 1) * settings.NETWORK_RETRY_DELAY_SECONDS)
                continue

            status = response.status_code
            if status == 429:
                retry_after, last_error = self._rate_limited(host, response, redacted)
                if retry_after <= settings.TOKEN_RATE_LIMIT_MAX_WAIT_SECONDS:
                    continue
                raise last_error

            if status != 200:
                preview = preview_body(response.content, 500)
                logger.debug("token non-200 status=%d body(peek)=%s", status, preview)
                last_error = _upstream_error(status, redacted, preview)
                if status >= 500:
                    await ctx.sleep((attempt + 1) * settings.TOKEN_SERVER_RETRY_DELAY_SECONDS)
                    continue
                raise last_error

            self.limiter.note_success(host)
            try:
                payload = SpotifyTokenPayload.model_validate_json(response.content)
            except ValidationError as exc:
                raise SpotifyDecodeError(redacted, str(exc)) from exc
            if not payload.access_token:
                raise SpotifyDecodeError(redacted, "empty access token")
            return payload

        if last_error is None:
            last_error = SpotifyClientError(f"failed to get access token from {redacted}")
        raise last_error

    async def fetch_server_time(self, ctx: RequestContext, url: str) -> int:
        """GET the server-time endpoint; seconds or milliseconds as the server sends them."""
        host = host_of(url)
        await self.limiter.gate(ctx, host)
        try:
            response = await self._send(ctx, "GET", url, headers=self.server_time_headers())
        except httpx.TransportError as exc:
            raise SpotifyNetworkError(url, exc) from exc

        if response.status_code == 429:
            _, error = self._rate_limited(host, response, url)
            raise error
        if response.status_code != 200:
            raise _upstream_error(response.status_code, url, preview_body(response.content, 200))

        self.limiter.note_success(host)
        try:
            parsed = _SERVER_TIME_ADAPTER.validate_json(response.content)
        except ValidationError as exc:
            raise SpotifyDecodeError(url, str(exc)) from exc
        server_time = parsed if isinstance(parsed, int) else parsed.server_time
        if server_time <= 0:
            raise SpotifyDecodeError(url, f"invalid server time {server_time}")
        return server_time

    # -------------------------------------------------------------------
    # Third-party endpoints
    # -------------------------------------------------------------------

    async def fetch_raw(self, ctx: RequestContext, url: str) -> bytes:
        """Plain gated GET returning the 200 body (secret table CDN)."""
        host = host_of(url)
        await self.limiter.gate(ctx, host)
        try:
            response = await self._send(ctx, "GET", url, headers={"Accept": "application/json"})
        except httpx.TransportError as exc:
            raise SpotifyNetworkError(url, exc) from exc

        if response.status_code == 429:
            _, error = self._rate_limited(host, response, url)
            raise error
        if response.status_code != 200:
            raise _upstream_error(response.status_code, url, preview_body(response.content, 200))
        self.limiter.note_success(host)
        return response.content

    async def post_form(self, ctx: RequestContext, url: str, form: dict[str, str]) -> bytes:
        """Gated form-encoded POST returning the 200 body (OAuth refresh)."""
        host = host_of(url)
        await self.limiter.gate(ctx, host)
        headers = {"Accept": "application/json", "Content-Type": "application/x-www-form-urlencoded"}
        try:
            response = await self._send(ctx, "POST", url, headers=headers, data=form)
        except httpx.TransportError as exc:
            raise SpotifyNetworkError(url, exc) from exc

        if response.status_code == 429:
            _, error = self._rate_limited(host, response, url)
            raise error
        if response.status_code != 200:
            raise _upstream_error(response.status_code, url, preview_body(response.content, 600))
        self.limiter.note_success(host)
        return response.content
