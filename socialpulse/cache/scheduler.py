"""
Refresh Scheduler

Runs the refresh coordinator on a fixed interval in the background and
evicts cached aggregates fed by views that were actually rebuilt.
Simulated or failed targets leave the cache alone: their data did not
change.
"""

import asyncio
import logging
from typing import Optional

from socialpulse.cache.invalidation import CacheEvent, CacheInvalidator, InvalidationResult
from socialpulse.cache.refresh import RefreshCoordinator, RefreshReport


logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Periodic refresh pass followed by VIEWS_REFRESHED invalidation."""

    def __init__(
        self,
        coordinator: RefreshCoordinator,
        invalidator: Optional[CacheInvalidator] = None,
        interval_seconds: Optional[int] = None,
    ):
        self._coordinator = coordinator
        self._invalidator = invalidator
        self.interval_seconds = interval_seconds or coordinator.config.interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.passes = 0

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self) -> RefreshReport:
        """One refresh pass plus invalidation of whatever it refreshed."""
        report = await self._coordinator.refresh_all()
        self.passes += 1

        refreshed = report.succeeded()
        if self._invalidator is not None and refreshed:
            result: InvalidationResult = await self._invalidator.handle_event(
                CacheEvent.VIEWS_REFRESHED,
                targets=refreshed,
            )
            if not result.success:
                logger.warning(f"Post-refresh invalidation had errors: {result.errors}")

        return report

    async def start(self):
        """Start the background refresh loop."""
        if self._running:
            logger.warning("Refresh scheduler already running")
            return

        self._running = True

        async def refresh_loop():
            while self._running:
                try:
                    logger.info("Running scheduled refresh...")
                    await self.run_once()
                    logger.info(f"Scheduled refresh complete, sleeping for {self.interval_seconds}s")
                except Exception as e:
                    logger.error(f"Scheduled refresh error: {e}")

                await asyncio.sleep(self.interval_seconds)

        self._task = asyncio.create_task(refresh_loop())
        logger.info(f"Refresh scheduler started (interval: {self.interval_seconds}s)")

    async def stop(self):
        """Stop the background refresh loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Refresh scheduler stopped")
