"""Command-line interface for hlsdam."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Dict, Sequence

import click

from .client import HLSClient, best_variant, worst_variant
from .errors import HLSError
from .models import DownloadConfig

SELECTORS = {
    "best": best_variant,
    "worst": worst_variant,
}


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _parse_headers(header: Sequence[str]) -> Dict[str, str]:
    headers = {}
    for header_entry in header:
        if ":" not in header_entry:
            raise click.BadParameter("Headers must be in the form Name:Value")
        name, value = header_entry.split(":", 1)
        headers[name.strip()] = value.strip()
    return headers


@click.group()
def cli():
    """HLS stream downloader."""
    pass


@cli.command()
@click.argument("playlist_url")
@click.argument("output", type=click.File("wb"))
@click.option(
    "--format",
    "quality",
    type=click.Choice(sorted(SELECTORS)),
    default="best",
    show_default=True,
    help="Which quality to download",
)
@click.option("--header", multiple=True, help="Additional HTTP header as Name:Value")
@click.option("--timeout", type=float, help="Give up after this many seconds")
@click.option("--debug", is_flag=True, help="Enable debugging messages")
def download(playlist_url, output, quality, header, timeout, debug):
    """Download PLAYLIST_URL into OUTPUT."""
    _configure_logging(debug)
    config = DownloadConfig(headers=_parse_headers(header) or None, timeout=timeout)

    async def _run():
        async with HLSClient(config=config) as client:
            await client.download(playlist_url, output, select_variant=SELECTORS[quality])

    try:
        asyncio.run(_run())
    except (HLSError, asyncio.TimeoutError) as exc:
        click.echo(f"Error: {str(exc) or 'timed out'}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("playlist_url")
@click.option("--header", multiple=True, help="Additional HTTP header as Name:Value")
@click.option("--debug", is_flag=True, help="Enable debugging messages")
def variants(playlist_url, header, debug):
    """List the variants of a master playlist."""
    _configure_logging(debug)
    config = DownloadConfig(headers=_parse_headers(header) or None)

    async def _run():
        async with HLSClient(config=config) as client:
            return await client.list_variants(playlist_url)

    try:
        found = asyncio.run(_run())
    except HLSError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if not found:
        click.echo("No variants")
        return

    click.echo(f"Found {len(found)} variant(s):")
    for variant in found:
        click.echo(f"{variant.uri}")
        click.echo(f"  Bandwidth: {variant.bandwidth} bps")
        if variant.resolution:
            width, height = variant.resolution
            click.echo(f"  Resolution: {width}x{height}")
        if variant.codecs:
            click.echo(f"  Codecs: {variant.codecs}")
        if variant.iframe_only:
            click.echo("  I-Frame only")
        for rendition in variant.alternatives:
            click.echo(f"  {rendition.type}: {rendition.name} ({rendition.language or '-'})")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
