"""Wall-clock duration of a capture session."""

import asyncio
import logging
import time
from typing import Callable, Optional

from ..models.recognition import DurationRecord

logger = logging.getLogger(__name__)

DurationCallback = Callable[[int], None]


class DurationTracker:
    """Reports elapsed milliseconds periodically while running.

    The clock is injectable so tests can drive time by hand.
    """

    def __init__(self,
                 on_update: Optional[DurationCallback] = None,
                 interval: float = 0.1,
                 clock: Callable[[], float] = time.monotonic):
        self.on_update = on_update
        self.interval = interval
        self.clock = clock
        self.record = DurationRecord()
        self._ticker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self.record.start_timestamp is not None

    @property
    def elapsed_ms(self) -> int:
        if self.running:
            return self._measure()
        return self.record.elapsed_ms

    def _measure(self) -> int:
        return int((self.clock() - self.record.start_timestamp) * 1000)

    def start(self) -> None:
        """Start (or restart) measuring from now."""
        self._cancel_ticker()
        self.record = DurationRecord(start_timestamp=self.clock(), elapsed_ms=0)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; duration updates disabled")
            return
        self._ticker = loop.create_task(self._tick())

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.record.elapsed_ms = self._measure()
            self._notify(self.record.elapsed_ms)

    def stop(self) -> int:
        """Freeze the elapsed time, notify once more and return it."""
        if not self.running:
            return self.record.elapsed_ms
        self._cancel_ticker()
        elapsed = self._measure()
        self.record = DurationRecord(start_timestamp=None, elapsed_ms=elapsed)
        self._notify(elapsed)
        return elapsed

    def reset(self) -> None:
        self._cancel_ticker()
        self.record = DurationRecord()

    def _cancel_ticker(self) -> None:
        if self._ticker is not None and not self._ticker.done():
            self._ticker.cancel()
        self._ticker = None

    def _notify(self, elapsed_ms: int) -> None:
        if self.on_update:
            try:
                self.on_update(elapsed_ms)
            except Exception as e:
                logger.error(f"Error in duration callback: {e}", exc_info=True)
