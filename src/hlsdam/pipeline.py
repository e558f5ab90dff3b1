"""Producer/writer pipeline joining segment fetching and output."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Optional, Protocol

from .downloader import SegmentStream

logger = logging.getLogger(__name__)

_CLOSED = object()


class Sink(Protocol):
    """Append-only destination; ``write`` may be a plain or a coroutine function."""

    def write(self, data: bytes) -> Any:
        """Append data."""


async def write_to(sink: Sink, data: bytes) -> None:
    result = sink.write(data)
    if inspect.isawaitable(result):
        await result


class SegmentHandoff:
    """Capacity-one rendezvous queue: ``put`` returns once the writer took the stream."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)

    async def put(self, stream: SegmentStream) -> None:
        try:
            await self._queue.put(stream)
        except asyncio.CancelledError:
            stream.close()
            raise
        await self._queue.join()

    async def close(self) -> None:
        await self._queue.put(_CLOSED)

    async def get(self) -> Optional[SegmentStream]:
        """Return the next stream, or None once the producer closed the queue."""
        item = await self._queue.get()
        self._queue.task_done()
        if item is _CLOSED:
            return None
        return item

    def discard(self) -> int:
        """Close streams that were never taken; returns how many were dropped."""
        dropped = 0
        while not self._queue.empty():
            item = self._queue.get_nowait()
            self._queue.task_done()
            if item is not _CLOSED:
                item.close()
                dropped += 1
        return dropped


class Pipeline:
    """Runs the segment producer and the writer as two tasks over a hand-off queue."""

    def __init__(
        self,
        segments: AsyncIterator[SegmentStream],
        sink: Sink,
        *,
        chunk_size: int = 64 * 1024,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            segments: Open segment streams in output order
            sink: Destination receiving the concatenated segment bodies
            chunk_size: Read size used when copying a stream into the sink
        """
        self.segments = segments
        self.sink = sink
        self.chunk_size = chunk_size
        self.segments_written = 0
        self.bytes_written = 0

    async def run(self) -> None:
        """Run both stages to completion and raise the first error of either."""
        handoff = SegmentHandoff()
        producer = asyncio.create_task(self._produce(handoff), name="hlsdam-producer")
        writer = asyncio.create_task(self._consume(handoff), name="hlsdam-writer")

        try:
            await asyncio.gather(producer, writer)
        finally:
            for task in (producer, writer):
                task.cancel()
            await asyncio.gather(producer, writer, return_exceptions=True)
            dropped = handoff.discard()
            if dropped:
                logger.debug("Dropped %d segment(s) that were never written", dropped)

        logger.info(
            "Wrote %d segments (%d bytes)", self.segments_written, self.bytes_written
        )

    async def _produce(self, handoff: SegmentHandoff) -> None:
        try:
            async for stream in self.segments:
                await handoff.put(stream)
        finally:
            aclose = getattr(self.segments, "aclose", None)
            if aclose is not None:
                await aclose()
        await handoff.close()

    async def _consume(self, handoff: SegmentHandoff) -> None:
        while True:
            stream = await handoff.get()
            if stream is None:
                return

            try:
                async for chunk in stream.iter_chunks(self.chunk_size):
                    await write_to(self.sink, chunk)
                    self.bytes_written += len(chunk)
            finally:
                stream.close()

            self.segments_written += 1
            logger.debug("Wrote segment %s", stream.sequence)
