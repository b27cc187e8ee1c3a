"""Cursor-following pagination over Web API listing endpoints."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import ValidationError

from spotmeta.context import RequestContext
from spotmeta.spotify.exceptions import RequestCancelled, SpotifyDecodeError
from spotmeta.spotify.models import SpotifyPage

logger = logging.getLogger(__name__)

T = TypeVar("T")

BodyFetcher = Callable[[RequestContext, str, str], Awaitable[bytes]]


@dataclass
class PageResult(Generic[T]):
    items: list[T] = field(default_factory=list)
    page_count: int = 0


def strip_locale_param(url: str | None) -> str:
    """Drop the ``locale`` query parameter Spotify echoes into ``next`` cursors.

    Without this, page URLs differ from the ones we build ourselves and miss
    the response cache.
    """
    if not url:
        return ""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    if not any(key == "locale" for key, _ in query):
        return url
    kept = [(key, value) for key, value in query if key != "locale"]
    return urlunsplit(parts._replace(query=urlencode(kept, safe=",")))


async def fetch_all_pages(
    ctx: RequestContext,
    first_url: str,
    token: str,
    *,
    fetch_body: BodyFetcher,
    item_type: type[T],
    inter_page_delay: float = 0.0,
) -> PageResult[T]:
    """Follow ``next`` cursors from ``first_url`` and collect every item in order.

    ``null`` items are dropped. ``inter_page_delay`` seconds are slept between
    pages (not after the last one).

    Raises:
        RequestCancelled: If the context ends mid-walk; ``partial`` and
            ``pages_fetched`` on the exception hold what was collected.
        SpotifyDecodeError: If a page is not a paging object.
    """
    page_model = SpotifyPage[item_type]
    result: PageResult[T] = PageResult()
    next_url = first_url

    try:
        while next_url:
            ctx.raise_if_done()
            body = await fetch_body(ctx, next_url, token)
            try:
                page = page_model.model_validate_json(body)
            except ValidationError as exc:
                raise SpotifyDecodeError(next_url, str(exc)) from exc

            result.items.extend(item for item in page.items if item is not None)
            result.page_count += 1
            next_url = strip_locale_param(page.next)
            logger.debug("Fetched page %d (%d items so far)", result.page_count, len(result.items))

            if next_url and inter_page_delay > 0:
                await ctx.sleep(inter_page_delay)
    except RequestCancelled as exc:
        # The caught error may be shared with other waiters; report this walk on a copy.
        stopped = type(exc)(str(exc))
        stopped.partial = result.items
        stopped.pages_fetched = result.page_count
        raise stopped from exc

    return result
