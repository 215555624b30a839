"""
Background service that sweeps expired entries from the translation cache.

Runs a periodic task that calls TranslationService.clear_expired_cache() every
TRANSLATION_CACHE_PURGE_INTERVAL_HOURS. An interval of 0 disables the sweep.
"""

import asyncio
import logging
from typing import Optional

from app.core.config import Settings
from app.services.translation.translation_service import TranslationService

logger = logging.getLogger(__name__)


class CacheMaintenanceService:
    """Periodic expiry sweep for the translation cache."""

    def __init__(self, settings: Settings, translation_service: TranslationService):
        """Initialize the cache maintenance service.

        Args:
            settings: Application settings containing the purge interval
            translation_service: Service whose cache is swept
        """
        self.translation_service = translation_service
        self.interval_seconds = settings.TRANSLATION_CACHE_PURGE_INTERVAL_HOURS * 3600
        self.maintenance_task: Optional[asyncio.Task] = None
        self.is_running = False
        self.last_removed: Optional[int] = None

    async def start(self) -> None:
        """Start the background sweep task."""
        if self.interval_seconds <= 0:
            logger.info("Translation cache purge interval is 0, skipping expiry sweeps")
            return

        logger.info(
            f"Starting translation cache maintenance every {self.interval_seconds:.0f}s"
        )
        self.is_running = True
        self.maintenance_task = asyncio.create_task(self._maintenance_loop())

    async def stop(self) -> None:
        """Stop the background sweep task."""
        logger.info("Stopping translation cache maintenance")
        self.is_running = False

        if self.maintenance_task:
            self.maintenance_task.cancel()
            try:
                await self.maintenance_task
            except asyncio.CancelledError:
                logger.debug("Maintenance task cancelled successfully")
            self.maintenance_task = None

    async def run_once(self) -> int:
        """Run a single expiry sweep and return the number of removed entries."""
        removed = await self.translation_service.clear_expired_cache()
        self.last_removed = removed
        return removed

    async def _maintenance_loop(self) -> None:
        while self.is_running:
            try:
                await self.run_once()
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                logger.debug("Maintenance loop cancelled")
                break
            except Exception as e:
                logger.error(f"Error in translation cache maintenance: {e}", exc_info=True)
                # Keep sweeping on the next interval
                await asyncio.sleep(self.interval_seconds)
