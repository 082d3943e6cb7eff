"""
Popular Highlights Refresh Scheduler

Runs the highlight aggregator over every book on a fixed interval inside the
API process. A tick that starts while the previous one is still running is
skipped rather than queued.

External schedulers can call ``run_once()`` directly instead of starting the
loop.
"""

import asyncio
import logging
import threading
from contextlib import suppress

from ..models.annotations import BatchAggregationResult
from .highlight_aggregator import HighlightAggregator

logger = logging.getLogger(__name__)


class HighlightRefreshScheduler:
    """Interval-based refresh of all books' popular highlights"""

    def __init__(
        self,
        aggregator: HighlightAggregator,
        interval_seconds: float = 3600,
        startup_delay_seconds: float = 5,
    ):
        self.aggregator = aggregator
        self.interval_seconds = interval_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self.last_result: BatchAggregationResult | None = None
        self._tick_lock = threading.Lock()
        self._task: asyncio.Task | None = None
        self._tick: asyncio.Future | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> BatchAggregationResult | None:
        """
        Refresh every book once.

        Returns:
            The batch result, or None if a previous refresh is still in progress
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Popular highlights refresh already running, skipping")
            return None
        try:
            logger.info("Starting popular highlights refresh")
            result = self.aggregator.run_all()
            logger.info(
                f"Completed popular highlights refresh: processed={result.books_processed} "
                f"failed={result.books_failed} skipped={result.books_skipped}"
            )
            self.last_result = result
            return result
        finally:
            self._tick_lock.release()

    async def _loop(self) -> None:
        await asyncio.sleep(self.startup_delay_seconds)
        while True:
            # stop() awaits this future after cancelling the loop
            self._tick = asyncio.ensure_future(asyncio.to_thread(self.run_once))
            try:
                await asyncio.shield(self._tick)
            except Exception as e:
                logger.error(f"Popular highlights refresh failed: {e}", exc_info=True)
            self._tick = None
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Start the refresh loop on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(
            f"Scheduled popular highlights refresh every {self.interval_seconds}s"
        )

    async def stop(self) -> None:
        """
        Cancel the refresh loop and wait for it to finish.

        Cancelling does not interrupt a tick already running in its worker
        thread, so this also waits for that tick to complete.
        """
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

        tick, self._tick = self._tick, None
        if tick is not None:
            try:
                await tick
            except Exception as e:
                logger.error(f"Popular highlights refresh failed: {e}", exc_info=True)
        logger.info("Popular highlights refresh stopped")
