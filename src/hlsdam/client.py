"""High-level HLS download client."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Sequence, Tuple

import aiohttp

from .downloader import SegmentDownloader
from .errors import ProtocolViolation
from .models import DownloadConfig, MasterPlaylist, MediaPlaylist, Variant
from .pipeline import Pipeline, Sink
from .playlist import Playlist
from .poller import LivePoller
from .progress import ProgressWriter

logger = logging.getLogger(__name__)

VariantSelector = Callable[[Sequence[Variant]], Optional[Variant]]


def best_variant(variants: Sequence[Variant]) -> Optional[Variant]:
    """Pick the highest-bandwidth regular variant."""
    candidates = [variant for variant in variants if not variant.iframe_only]
    if not candidates:
        return None
    return max(candidates, key=lambda variant: variant.bandwidth)


def worst_variant(variants: Sequence[Variant]) -> Optional[Variant]:
    """Pick the lowest-bandwidth regular variant."""
    candidates = [variant for variant in variants if not variant.iframe_only]
    if not candidates:
        return None
    return min(candidates, key=lambda variant: variant.bandwidth)


class HLSClient:
    """Downloads an HLS stream into a single output."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        config: Optional[DownloadConfig] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            session: Optional aiohttp session. If None, one is created on enter.
            config: Download settings
        """
        self.config = config or DownloadConfig()
        self.downloader = SegmentDownloader(session, self.config)

    async def __aenter__(self):
        await self.downloader.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.downloader.__aexit__(exc_type, exc_val, exc_tb)

    async def fetch_playlist(self, url: str) -> Playlist:
        return await self.downloader.fetch_playlist(url)

    async def list_variants(self, url: str) -> list[Variant]:
        """
        List the variants of a master playlist.

        Args:
            url: Master playlist URL

        Returns:
            Variants in playlist order, I-frame variants last
        """
        playlist = await self.fetch_playlist(url)
        if not isinstance(playlist, MasterPlaylist):
            raise ProtocolViolation(f"Expected a master playlist at {url}")
        return list(playlist.variants)

    async def download(
        self,
        url: str,
        sink: Sink,
        select_variant: Optional[VariantSelector] = None,
    ) -> Pipeline:
        """
        Download a stream into ``sink``.

        A master playlist URL goes through variant selection first, a media
        playlist URL is followed directly. Returns once the playlist has
        ended and every segment was written.

        Args:
            url: Master or media playlist URL
            sink: Destination with a ``write(bytes)`` method (sync or async)
            select_variant: Variant chooser, :func:`best_variant` by default

        Returns:
            The finished pipeline, carrying segment and byte counters
        """
        media_url, initial, started = await self._resolve_media_url(
            url, select_variant or best_variant
        )

        poller = LivePoller(
            self.downloader,
            media_url,
            initial_playlist=initial,
            initial_started=started,
            max_target_duration=self.config.max_target_duration,
        )
        progress = ProgressWriter(sink, self.config.progress_interval)
        pipeline = Pipeline(poller.segments(), progress, chunk_size=self.config.chunk_size)

        async with progress:
            if self.config.timeout is not None:
                await asyncio.wait_for(pipeline.run(), self.config.timeout)
            else:
                await pipeline.run()

        logger.info("Finished downloading %s after %d playlist loads", media_url, poller.reloads)
        return pipeline

    async def _resolve_media_url(
        self, url: str, select_variant: VariantSelector
    ) -> Tuple[str, Optional[MediaPlaylist], Optional[float]]:
        # a media playlist loaded here is handed to the poller as its first load
        started = time.monotonic()
        playlist = await self.fetch_playlist(url)
        if not isinstance(playlist, MasterPlaylist):
            return url, playlist, started

        logger.info("Found %d variants", len(playlist.variants))
        variant = select_variant(playlist.variants)
        if variant is None:
            raise ProtocolViolation("No streams found")

        logger.info("Selected variant %s (%d bps)", variant.uri, variant.bandwidth)
        return variant.uri, None, None
