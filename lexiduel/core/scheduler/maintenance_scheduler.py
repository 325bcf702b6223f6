"""
Periodic maintenance scheduler for stale duel cleanup
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    """Runs a maintenance job at a fixed interval"""

    def __init__(
        self,
        maintenance_callback: Callable[[], object],
        interval_minutes: float = 60,
        retry_delay_seconds: float = 60,
    ):
        self.maintenance_callback = maintenance_callback
        self.interval_seconds = interval_minutes * 60
        self.retry_delay_seconds = retry_delay_seconds
        self.is_running = False
        self.task = None
        logger.info(f"Maintenance scheduler configured every {interval_minutes} minutes")

    async def start(self):
        """Start the maintenance scheduler"""
        if self.is_running:
            logger.warning("Maintenance scheduler is already running")
            return

        self.is_running = True
        self.task = asyncio.create_task(self._schedule_loop())
        logger.info("Maintenance scheduler started")

    async def stop(self):
        """Stop the maintenance scheduler"""
        if not self.is_running:
            return

        self.is_running = False
        if self.task:
            self.task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self.task
        logger.info("Maintenance scheduler stopped")

    async def run_once(self):
        """Run the maintenance job once"""
        result = self.maintenance_callback()
        if asyncio.iscoroutine(result):
            result = await result
        return result

    async def _schedule_loop(self):
        """Main scheduling loop"""
        while self.is_running:
            try:
                await self.run_once()
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in maintenance scheduler: {e}", exc_info=True)
                # Back off before retrying
                await asyncio.sleep(self.retry_delay_seconds)
