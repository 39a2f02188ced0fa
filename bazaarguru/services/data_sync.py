"""Periodic refresh of the catalog cache from the deals backend.

A full sync force-refreshes products and promocodes for every catalog
category, restaurants for every configured city, food deals, and nearby
stores for every city and category. Individual failures are logged and
counted but never abort the run.
"""

import asyncio
import logging
import signal
import time
from typing import Any

from ..config import config
from ..exceptions import BackendError
from ..models import SyncReport
from .catalog import CatalogService

logger = logging.getLogger(__name__)

SYNC_TYPES = ("products", "promocodes", "food")


class DataSyncManager:
    """Keeps the Redis catalog cache warm.

    Attributes:
        catalog: Catalog service used for forced refreshes.
        interval: Seconds between full syncs in continuous mode.
    """

    def __init__(self, catalog: CatalogService, interval_minutes: float | None = None):
        self.catalog = catalog
        minutes = interval_minutes if interval_minutes is not None else config.sync.interval_minutes
        self.interval = minutes * 60
        self._stop_event = asyncio.Event()
        self.is_running = False

    async def _sync_products(self, report: SyncReport) -> None:
        for category in config.categories:
            try:
                products = await self.catalog.get_products(category, force=True, strict=True)
                report.products += len(products)
                logger.info(f"Products {category}: {len(products)}")
            except BackendError as e:
                report.errors.append(f"products/{category}: {e}")

    async def _sync_food(self, report: SyncReport) -> None:
        for location in config.locations:
            try:
                restaurants = await self.catalog.get_restaurants(location, force=True, strict=True)
                report.restaurants += len(restaurants)
            except BackendError as e:
                report.errors.append(f"restaurants/{location}: {e}")

        try:
            deals = await self.catalog.get_food_deals(force=True, strict=True)
            report.food_deals = len(deals)
        except BackendError as e:
            report.errors.append(f"food_deals: {e}")

        logger.info(f"Restaurants: {report.restaurants}, food deals: {report.food_deals}")

    async def _sync_maps(self, report: SyncReport) -> None:
        for location in config.locations:
            for category in config.categories:
                try:
                    stores = await self.catalog.get_nearby_stores(
                        location, category, force=True, strict=True
                    )
                    report.stores += len(stores)
                except BackendError as e:
                    report.errors.append(f"stores/{location}/{category}: {e}")

        logger.info(f"Stores: {report.stores}")

    async def _sync_promocodes(self, report: SyncReport) -> None:
        for category in config.categories:
            try:
                codes = await self.catalog.get_promocodes(category, force=True, strict=True)
                report.promocodes += len(codes)
                logger.info(f"Promocodes {category}: {len(codes)}")
            except BackendError as e:
                report.errors.append(f"promocodes/{category}: {e}")

        try:
            active = await self.catalog.get_all_active_promocodes(force=True, strict=True)
            report.active_promocodes = len(active)
        except BackendError as e:
            report.errors.append(f"promocodes/active: {e}")

    async def perform_full_sync(self) -> SyncReport:
        """Refresh every cached catalog resource.

        Returns:
            Report with item totals, failures and duration.
        """
        report = SyncReport()
        started = time.monotonic()
        logger.info(f"Starting full data sync at {report.started_at.isoformat()}")

        await self._sync_products(report)
        await self._sync_food(report)
        await self._sync_maps(report)
        await self._sync_promocodes(report)

        report.duration_ms = int((time.monotonic() - started) * 1000)
        await self._log_sync_stats(report)
        return report

    async def _log_sync_stats(self, report: SyncReport) -> None:
        cache_stats = await self.catalog.cache.get_stats()
        logger.info(
            f"Full sync completed in {report.duration_ms}ms: "
            f"products={report.products} restaurants={report.restaurants} "
            f"food_deals={report.food_deals} stores={report.stores} "
            f"promocodes={report.promocodes} active_promocodes={report.active_promocodes} "
            f"cache_entries={cache_stats.get('total_entries', 'n/a')}"
        )
        for error in report.errors:
            logger.error(f"Sync error: {error}")

    async def sync_category(self, category: str, sync_type: str = "products") -> list[dict[str, Any]]:
        """Force-refresh one category.

        Raises:
            ValueError: If the sync type is unknown.
            BackendError: If the backend request fails.
        """
        logger.info(f"Manual sync: {sync_type} -> {category}")

        if sync_type == "products":
            result = await self.catalog.get_products(category, force=True, strict=True)
        elif sync_type == "promocodes":
            result = await self.catalog.get_promocodes(category, force=True, strict=True)
        elif sync_type == "food":
            location = next(iter(config.locations))
            result = await self.catalog.get_restaurants(location, force=True, strict=True)
        else:
            raise ValueError(f"Unknown sync type: {sync_type}")

        logger.info(f"Manual sync completed: {len(result)} items")
        return result

    async def clear_all_cache(self) -> int:
        deleted = await self.catalog.cache.clear()
        logger.info(f"Cleared {deleted} cache entries")
        return deleted

    def stop(self) -> None:
        logger.info("Stopping data synchronization service")
        self.is_running = False
        self._stop_event.set()

    async def start(self) -> None:
        """Sync now, then every interval until stopped or signalled."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.stop)

        logger.info(f"Starting data synchronization, interval {self.interval / 60:g} minutes")
        self.is_running = True
        self._stop_event.clear()

        try:
            while self.is_running:
                await self.perform_full_sync()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                except TimeoutError:
                    continue
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
