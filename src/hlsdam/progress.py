"""Transfer-rate reporting for downloads."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from .pipeline import Sink, write_to

logger = logging.getLogger(__name__)


class ProgressWriter:
    """
    Sink wrapper logging the write rate once per ``interval`` seconds.

    Used as an async context manager, a background task reports the rate
    even while nothing is written, so a stalled download shows up as
    ``DL @ 0 kB/s``. An ``interval`` of 0 turns reporting off.
    """

    def __init__(
        self,
        sink: Sink,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sink = sink
        self.interval = interval
        self.total = 0
        self._clock = clock
        self._window_bytes = 0
        self._window_start = clock()
        self._task: Optional[asyncio.Task] = None

    async def __aenter__(self):
        if self.interval > 0:
            self._window_bytes = 0
            self._window_start = self._clock()
            self._task = asyncio.create_task(self._run(), name="hlsdam-progress")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def write(self, data: bytes) -> None:
        await write_to(self.sink, data)
        self.total += len(data)
        self._window_bytes += len(data)

    def tick(self) -> float:
        """Log the rate of the window that just ended and start a new one."""
        now = self._clock()
        elapsed = now - self._window_start
        rate = self._window_bytes / elapsed / 1024 if elapsed > 0 else 0.0
        logger.info("DL @ %d kB/s", rate)
        self._window_bytes = 0
        self._window_start = now
        return rate

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.tick()
