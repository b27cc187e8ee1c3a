"""Tests for cursor-following pagination."""

import json

import pytest

from spotmeta.context import RequestContext
from spotmeta.spotify.exceptions import RequestCancelled, SpotifyDecodeError
from spotmeta.spotify.models import SpotifyTrackSimplified
from spotmeta.spotify.paging import fetch_all_pages, strip_locale_param

BASE = "https://api.spotify.com/v1/albums/a1/tracks"


def _page(ids: list[str | None], next_url: str | None) -> bytes:
    items = [None if i is None else {"id": i, "name": f"Track {i}"} for i in ids]
    return json.dumps({"items": items, "next": next_url, "total": 5}).encode()


class _Pages:
    """Serves canned pages by URL and records the order requested."""

    def __init__(self, pages: dict[str, bytes], on_fetch=None) -> None:
        self.pages = pages
        self.requested: list[str] = []
        self.on_fetch = on_fetch

    async def __call__(self, ctx: RequestContext, url: str, token: str) -> bytes:
        self.requested.append(url)
        if self.on_fetch is not None:
            self.on_fetch(len(self.requested))
        return self.pages[url]


def _three_pages() -> dict[str, bytes]:
    return {
        f"{BASE}?limit=2": _page(["t1", "t2"], f"{BASE}?offset=2&limit=2&locale=en-US"),
        f"{BASE}?offset=2&limit=2": _page(["t3", None], f"{BASE}?offset=4&limit=2"),
        f"{BASE}?offset=4&limit=2": _page(["t4"], None),
    }


async def test_follows_next_until_exhausted() -> None:
    """Every page is fetched in order and null items are dropped."""
    pages = _Pages(_three_pages())

    result = await fetch_all_pages(
        RequestContext(5), f"{BASE}?limit=2", "tok", fetch_body=pages, item_type=SpotifyTrackSimplified
    )

    assert [t.id for t in result.items] == ["t1", "t2", "t3", "t4"]
    assert result.page_count == 3
    assert pages.requested[1] == f"{BASE}?offset=2&limit=2"


async def test_single_page() -> None:
    pages = _Pages({f"{BASE}?limit=2": _page(["t1"], None)})
    result = await fetch_all_pages(
        RequestContext(5), f"{BASE}?limit=2", "tok", fetch_body=pages, item_type=SpotifyTrackSimplified
    )
    assert result.page_count == 1


async def test_cancel_mid_walk_keeps_partial_results() -> None:
    """Cancelling after the first page reports what was collected."""
    ctx = RequestContext(5)

    def cancel_after_first(count: int) -> None:
        if count == 2:
            ctx.cancel()

    pages = _Pages(_three_pages(), on_fetch=cancel_after_first)

    with pytest.raises(RequestCancelled) as exc_info:
        await fetch_all_pages(
            ctx,
            f"{BASE}?limit=2",
            "tok",
            fetch_body=pages,
            item_type=SpotifyTrackSimplified,
            inter_page_delay=0.01,
        )

    assert exc_info.value.pages_fetched == 2
    assert [t.id for t in exc_info.value.partial] == ["t1", "t2", "t3"]


async def test_shared_cancellation_is_not_mutated() -> None:
    """Partial results go on a fresh error chained to the one the fetcher raised."""
    shared = RequestCancelled()
    first_page = _page(["t1", "t2"], f"{BASE}?offset=2&limit=2")

    async def fetch_body(ctx: RequestContext, url: str, token: str) -> bytes:
        if url == f"{BASE}?limit=2":
            return first_page
        raise shared

    with pytest.raises(RequestCancelled) as exc_info:
        await fetch_all_pages(
            RequestContext(5), f"{BASE}?limit=2", "tok", fetch_body=fetch_body, item_type=SpotifyTrackSimplified
        )

    assert exc_info.value is not shared
    assert exc_info.value.__cause__ is shared
    assert [t.id for t in exc_info.value.partial] == ["t1", "t2"]
    assert exc_info.value.pages_fetched == 1
    assert shared.partial is None
    assert shared.pages_fetched == 0


async def test_malformed_page_raises_decode_error() -> None:
    pages = _Pages({f"{BASE}?limit=2": b"<html>"})
    with pytest.raises(SpotifyDecodeError):
        await fetch_all_pages(
            RequestContext(5), f"{BASE}?limit=2", "tok", fetch_body=pages, item_type=SpotifyTrackSimplified
        )


def test_strip_locale_param() -> None:
    """Only the locale parameter is removed; other params keep their order."""
    url = "https://api.spotify.com/v1/artists/x/albums?offset=50&limit=50&locale=en-US&include_groups=album,single"
    assert strip_locale_param(url) == (
        "https://api.spotify.com/v1/artists/x/albums?offset=50&limit=50&include_groups=album,single"
    )
    assert strip_locale_param(f"{BASE}?offset=2") == f"{BASE}?offset=2"
    assert strip_locale_param(None) == ""
