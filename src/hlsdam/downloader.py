"""Async downloader for HLS playlists and segments."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Dict, Optional, Tuple

import aiohttp

from .errors import HTTPStatusError, ProtocolViolation, TransportError, UnsupportedFeature
from .models import ByteRange, DownloadConfig, MediaPlaylist, Segment
from .playlist import Playlist, PlaylistNormalizer
from .retry import retry

logger = logging.getLogger(__name__)


class ByteRangeTracker:
    """Next implicit EXT-X-BYTERANGE offset per segment URI."""

    def __init__(self) -> None:
        self._offsets: Dict[str, int] = {}

    def __contains__(self, uri: str) -> bool:
        return uri in self._offsets

    def __len__(self) -> int:
        return len(self._offsets)

    def get(self, uri: str) -> Optional[int]:
        return self._offsets.get(uri)

    def resolve(self, uri: str, byterange: ByteRange) -> Tuple[int, int]:
        """Return the inclusive ``(start, end)`` of a byte range."""
        if byterange.length <= 0:
            raise ProtocolViolation(f"EXT-X-BYTERANGE length {byterange.length} is not positive")

        offset = byterange.offset
        if offset is None:
            offset = self._offsets.get(uri)
            if offset is None:
                raise ProtocolViolation(f"EXT-X-BYTERANGE offset not given for {uri}")

        return offset, offset + byterange.length - 1

    def advance(self, uri: str, end: int) -> None:
        self._offsets[uri] = end + 1


class SegmentStream:
    """Open response body of a fetched segment; the consumer must close it."""

    def __init__(self, segment: Segment, response: aiohttp.ClientResponse) -> None:
        self.segment = segment
        self._response = response

    @property
    def sequence(self) -> int:
        return self.segment.sequence

    async def iter_chunks(self, chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.content.iter_chunked(chunk_size):
                yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"Failed reading segment {self.segment.uri}: {exc!r}") from exc

    async def read(self) -> bytes:
        chunks = [chunk async for chunk in self.iter_chunks()]
        return b"".join(chunks)

    def close(self) -> None:
        self._response.close()

    def __repr__(self) -> str:
        return f"<SegmentStream {self.segment.sequence} {self.segment.uri}>"


class SegmentDownloader:
    """Asynchronous playlist and segment downloader."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        config: Optional[DownloadConfig] = None,
    ):
        """
        Initialize downloader.

        Args:
            session: Optional aiohttp session. If None, a new one will be created.
            config: Download settings; defaults are used when omitted
        """
        self.session = session
        self.config = config or DownloadConfig()
        self._own_session = session is None

    async def __aenter__(self):
        if self._own_session:
            self.session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._own_session and self.session:
            await self.session.close()

    async def fetch_playlist(self, url: str) -> Playlist:
        """
        Download and normalize a master or media playlist.

        Args:
            url: Playlist URL

        Returns:
            MasterPlaylist or MediaPlaylist
        """
        timeout = aiohttp.ClientTimeout(total=self.config.playlist_timeout)
        session = self._require_session()

        async def attempt() -> str:
            try:
                async with session.get(url, headers=self._headers(), timeout=timeout) as response:
                    if response.status != 200:
                        raise HTTPStatusError.from_response(response)
                    return await response.text()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise TransportError(f"Failed to download playlist {url}: {exc!r}") from exc

        logger.debug("Downloading playlist %s", url)
        text = await retry(
            self.config.playlist_retry_budget,
            attempt,
            backoff_step=self.config.backoff_step,
        )
        return PlaylistNormalizer.parse(text, url)

    async def fetch_media_playlist(self, url: str) -> MediaPlaylist:
        playlist = await self.fetch_playlist(url)
        if not isinstance(playlist, MediaPlaylist):
            raise ProtocolViolation(f"Expected a media playlist at {url}")
        return playlist

    async def fetch_segment(
        self,
        segment: Segment,
        tracker: ByteRangeTracker,
        target_duration: float,
    ) -> SegmentStream:
        """
        Request a segment and return its open body.

        Args:
            segment: Segment to fetch
            tracker: Implicit byte-range offsets of this download
            target_duration: Retry budget; each attempt may take twice as long

        Returns:
            SegmentStream positioned at the first byte of the segment
        """
        if segment.key is not None:
            raise UnsupportedFeature(f"EXT-X-KEY not supported (METHOD={segment.key.method})")
        if segment.map is not None:
            raise UnsupportedFeature("EXT-X-MAP not supported")

        headers = self._headers()
        byte_span: Optional[Tuple[int, int]] = None
        if segment.byterange is not None:
            byte_span = tracker.resolve(segment.uri, segment.byterange)
            # the Range header is inclusive
            headers["Range"] = f"bytes={byte_span[0]}-{byte_span[1]}"

        expected_status = 206 if byte_span else 200
        timeout = aiohttp.ClientTimeout(total=2 * target_duration)
        session = self._require_session()

        async def attempt() -> SegmentStream:
            try:
                response = await session.get(segment.uri, headers=headers, timeout=timeout)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise TransportError(f"Failed to download segment {segment.uri}: {exc!r}") from exc

            if response.status != expected_status:
                error = HTTPStatusError.from_response(response)
                response.close()
                raise error
            return SegmentStream(segment, response)

        logger.debug("Downloading segment %s (%s)", segment.sequence, segment.uri)
        stream = await retry(target_duration, attempt, backoff_step=self.config.backoff_step)

        if byte_span is not None:
            tracker.advance(segment.uri, byte_span[1])
        return stream

    def _headers(self) -> Dict[str, str]:
        return dict(self.config.headers or {})

    def _require_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            raise RuntimeError("Session not initialized. Use 'async with' context manager.")
        return self.session
