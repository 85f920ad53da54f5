"""Background loop that keeps stored prices fresh, one product at a time."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from . import config

if TYPE_CHECKING:
    from .price import PriceService

logger = logging.getLogger(__name__)


class PriceUpdateScheduler:
    """Round-robin refresher running as a background task.

    Each step picks the product that has waited longest, looks it up by name
    and either records its new price or bumps its timestamp so the next step
    moves on to another product.
    """

    def __init__(self, service: PriceService, delay: float | None = None):
        """
        Initialize the scheduler.

        Args:
            service: Price service used to look up and store prices
            delay: Seconds to sleep between steps (default: SCHEDULER_DELAY_SECONDS)
        """
        self.service = service
        self.db = service.db
        self.delay = config.SCHEDULER_DELAY_SECONDS if delay is None else delay
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Launch the refresh loop on the current event loop. Calling it twice is a no-op."""
        if self.is_running:
            logger.warning("Price updater already started; ignoring start()")
            return

        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Price updater started, one product every {self.delay}s")

    def stop(self):
        """Cancel the refresh loop if it is active."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            logger.info("Price updater stopped")

    async def _run_loop(self):
        while True:
            await self.run_once()
            await asyncio.sleep(self.delay)

    async def run_once(self) -> str:
        """Refresh the oldest product.

        Returns "idle", "updated", "missed" or "error"; never raises.
        """
        try:
            product = self.db.find_oldest_one()
            if not product:
                logger.info("No products to update. Waiting...")
                return "idle"

            logger.info(f"Updating product: {product['name']} ({product['id']})")
            updated = await self.service.update_price_by_name(product)

            if updated:
                logger.info(f"Updated {updated.id}: {updated.current_price}")
                return "updated"

            logger.info(f"Product {product['id']} not found in search results")
            self.db.touch(product["id"])
            return "missed"

        except Exception as e:
            logger.error(f"Error updating product: {e}")
            return "error"

    def get_status(self) -> dict:
        """Get current scheduler status."""
        return {
            "running": self.is_running,
            "delay": self.delay,
            "products": self.db.count(),
        }
