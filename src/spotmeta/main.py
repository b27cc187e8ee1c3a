"""Command-line interface for spotmeta.

Commands:
- fetch: print normalized metadata for a Spotify link as JSON
- token: acquire an access token and show where it came from
- oauth status / oauth logout: inspect or remove the stored OAuth token
"""

import asyncio
import json
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

import click

from spotmeta.auth.models import AccessToken
from spotmeta.auth.oauth import OAuthStatus
from spotmeta.constants import DEFAULT_FETCH_TIMEOUT
from spotmeta.logging import configure_from_settings
from spotmeta.settings import MetadataSettings, get_settings
from spotmeta.spotify.client import SpotifyMetadataClient
from spotmeta.spotify.exceptions import SpotifyClientError
from spotmeta.spotify.schemas import MetadataPayload

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _redact(value: str) -> str:
    if len(value) <= 8:
        return "***"
    return f"{value[:6]}…"


async def _fetch(
    settings: MetadataSettings, url: str, *, batch: bool, delay: float, timeout: float
) -> MetadataPayload:
    async with SpotifyMetadataClient(settings) as client:
        return await client.fetch_metadata(url, batch=batch, per_page_delay=delay, timeout=timeout)


async def _token(settings: MetadataSettings) -> AccessToken:
    async with SpotifyMetadataClient(settings) as client:
        return await client.get_access_token()


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except SpotifyClientError as exc:
        logger.debug("Command failed", exc_info=True)
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, json_logs: bool) -> None:
    """Fetch normalized Spotify metadata from links and URIs."""
    settings = get_settings()
    updates: dict[str, object] = {}
    if verbose:
        updates["SPOTIFY_DEBUG"] = True
    if json_logs:
        updates["LOG_JSON"] = True
    if updates:
        settings = settings.model_copy(update=updates)
    configure_from_settings(settings)
    ctx.obj = settings


@cli.command()
@click.argument("url")
@click.option("--batch", is_flag=True, help="Pace listing pages and report the page count")
@click.option("--delay", type=float, default=1.0, show_default=True, help="Seconds between pages in batch mode")
@click.option("--timeout", type=float, default=DEFAULT_FETCH_TIMEOUT, show_default=True, help="Overall timeout")
@click.option("--indent", type=int, default=2, show_default=True, help="JSON indentation")
@click.pass_obj
def fetch(settings: MetadataSettings, url: str, batch: bool, delay: float, timeout: float, indent: int) -> None:
    """Print metadata for URL (track, album, playlist, artist or discography)."""
    payload = _run(_fetch(settings, url, batch=batch, delay=delay, timeout=timeout))
    click.echo(payload.to_json(indent=indent or None))


@cli.command()
@click.option("--show", is_flag=True, help="Print the full token value")
@click.pass_obj
def token(settings: MetadataSettings, show: bool) -> None:
    """Acquire an access token and print its source and expiry."""
    access_token = _run(_token(settings))
    click.echo(f"source:     {access_token.source}")
    click.echo(f"expires_at: {access_token.expires_at.isoformat(timespec='seconds')}")
    click.echo(f"token:      {access_token.value if show else _redact(access_token.value)}")


@cli.group()
def oauth() -> None:
    """Manage the stored user OAuth token."""


async def _oauth_status(settings: MetadataSettings) -> OAuthStatus:
    async with SpotifyMetadataClient(settings) as client:
        return client.oauth.status()


async def _oauth_clear(settings: MetadataSettings) -> None:
    async with SpotifyMetadataClient(settings) as client:
        client.oauth.clear()


@oauth.command("status")
@click.pass_obj
def oauth_status(settings: MetadataSettings) -> None:
    """Show whether an OAuth token is stored and when it expires."""
    status = _run(_oauth_status(settings))
    click.echo(json.dumps(status.model_dump(mode="json", exclude_none=True), indent=2))


@oauth.command("logout")
@click.pass_obj
def oauth_logout(settings: MetadataSettings) -> None:
    """Delete the stored OAuth token file."""
    _run(_oauth_clear(settings))
    click.echo(f"Removed {settings.OAUTH_TOKEN_PATH}")


if __name__ == "__main__":
    cli()
