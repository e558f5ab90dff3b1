"""Live media playlist polling."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Tuple

from .downloader import ByteRangeTracker, SegmentDownloader, SegmentStream
from .errors import ProtocolViolation
from .models import DownloadConfig, MediaPlaylist, PollState, Segment

logger = logging.getLogger(__name__)


class LivePoller:
    """
    Follows a media playlist and yields the body of every new segment.

    The poller reloads the playlist following the client rules of RFC 8216
    section 6.3.4 and fetches segments strictly in sequence order. Only
    ``next_sequence`` and the byte-range tracker survive between reloads.

    A playlist the caller already loaded can be passed as
    ``initial_playlist`` together with the clock reading taken when its
    load began; it is used as the first load instead of fetching again.
    """

    def __init__(
        self,
        downloader: SegmentDownloader,
        url: str,
        *,
        tracker: Optional[ByteRangeTracker] = None,
        next_sequence: Optional[int] = None,
        initial_playlist: Optional[MediaPlaylist] = None,
        initial_started: Optional[float] = None,
        max_target_duration: float = DownloadConfig.max_target_duration,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.tracker = tracker if tracker is not None else ByteRangeTracker()
        self.next_sequence = next_sequence
        self.max_target_duration = max_target_duration
        self.state = PollState.POLLING
        self.reloads = 0

        self._downloader = downloader
        self._clock = clock
        self._sleep = sleep
        self._pending: Optional[Tuple[float, MediaPlaylist]] = None
        if initial_playlist is not None:
            started = initial_started if initial_started is not None else clock()
            self._pending = (started, initial_playlist)

    async def segments(self) -> AsyncIterator[SegmentStream]:
        """Yield open segment streams until the playlist ends or an error occurs."""
        try:
            while True:
                self._set_state(PollState.POLLING)
                started, playlist = await self._load()
                self.reloads += 1
                self._validate(playlist)

                last_sequence = playlist.last_sequence
                unchanged = last_sequence is None or (
                    self.next_sequence is not None and last_sequence < self.next_sequence
                )
                if unchanged:
                    if playlist.closed:
                        self._set_state(PollState.TERMINAL)
                        return

                    # If the client reloads a Playlist file and finds that it has
                    # not changed, then it MUST wait for a period of one-half the
                    # target duration before retrying.
                    self._set_state(PollState.NO_CHANGE)
                    await self._sleep(playlist.target_duration / 2)
                    continue

                self._set_state(PollState.ADVANCING)
                for segment in self._collect_new_segments(playlist):
                    stream = await self._downloader.fetch_segment(
                        segment, self.tracker, playlist.target_duration
                    )
                    self.next_sequence = segment.sequence + 1
                    yield stream

                if playlist.closed:
                    self._set_state(PollState.TERMINAL)
                    logger.info("Reached end of playlist %s", self.url)
                    return

                # The client MUST wait for at least the target duration before
                # reloading, measured from the last time it began loading.
                await self._sleep(max(0.0, started + playlist.target_duration - self._clock()))
        except Exception:
            self._set_state(PollState.FAILED)
            raise

    async def _load(self) -> Tuple[float, MediaPlaylist]:
        if self._pending is not None:
            pending, self._pending = self._pending, None
            return pending
        started = self._clock()
        playlist = await self._downloader.fetch_media_playlist(self.url)
        return started, playlist

    def _validate(self, playlist: MediaPlaylist) -> None:
        if playlist.target_duration <= 0:
            raise ProtocolViolation("EXT-X-TARGETDURATION is not positive")
        if playlist.target_duration >= self.max_target_duration:
            raise ProtocolViolation(
                f"EXT-X-TARGETDURATION of {playlist.target_duration}s is too long"
            )
        if playlist.iframe_only:
            raise ProtocolViolation("EXT-X-I-FRAMES-ONLY playlists are not supported")

    def _collect_new_segments(self, playlist: MediaPlaylist) -> List[Segment]:
        fresh: List[Segment] = []
        for segment in playlist.segments:
            if self.next_sequence is not None and segment.sequence < self.next_sequence:
                logger.debug("Skipping segment %s", segment.uri)
                continue
            fresh.append(segment)

        if fresh and self.next_sequence is not None and fresh[0].sequence > self.next_sequence:
            logger.warning(
                "%d segments expired before they could be downloaded",
                fresh[0].sequence - self.next_sequence,
            )
        return fresh

    def _set_state(self, state: PollState) -> None:
        if state is not self.state:
            logger.debug("Poller %s: %s -> %s", self.url, self.state.value, state.value)
        self.state = state
