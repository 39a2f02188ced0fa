"""Cache-first access to the deals catalog.

Reads go to Redis first and fall back to the deals backend. When the backend
fails, a forced refresh falls back to whatever is still cached, and a normal
read returns an empty list. Strict reads re-raise the ``BackendError``.
"""

import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from ..config import config
from ..exceptions import BackendError
from ..models import Deal, Promocode
from .backend import DealsBackendClient
from .cache_service import CacheService, get_cache_service

logger = logging.getLogger(__name__)


class CatalogService:
    """Products, promocodes, food and map data with Redis caching."""

    def __init__(self, backend: DealsBackendClient, cache: CacheService):
        self.backend = backend
        self.cache = cache

    async def _cached_fetch(
        self,
        kind: str,
        identifier: str,
        fetch: Callable[[], Awaitable[list[dict[str, Any]]]],
        force: bool = False,
        strict: bool = False,
    ) -> list[dict[str, Any]]:
        if not force:
            cached = await self.cache.get(kind, identifier)
            if cached is not None:
                return cached

        try:
            data = await fetch()
        except BackendError as e:
            logger.error(f"Failed to fetch {kind} for {identifier}: {e}")
            if strict:
                raise
            if force:
                stale = await self.cache.get(kind, identifier)
                if stale is not None:
                    logger.info(f"Serving stale {kind} for {identifier}")
                    return stale
            return []

        await self.cache.set(kind, identifier, data)
        return data

    async def get_products(
        self, category: str, force: bool = False, strict: bool = False
    ) -> list[dict[str, Any]]:
        return await self._cached_fetch(
            "products", category, lambda: self.backend.get_products(category), force, strict
        )

    async def get_promocodes(
        self, category: str, force: bool = False, strict: bool = False
    ) -> list[dict[str, Any]]:
        return await self._cached_fetch(
            "promocodes", category, lambda: self.backend.get_promocodes(category), force, strict
        )

    async def get_all_active_promocodes(
        self, force: bool = False, strict: bool = False
    ) -> list[dict[str, Any]]:
        return await self._cached_fetch(
            "all_promocodes", "active", self.backend.get_all_active_promocodes, force, strict
        )

    async def get_restaurants(
        self, location: str, force: bool = False, strict: bool = False
    ) -> list[dict[str, Any]]:
        coords = config.locations[location]
        return await self._cached_fetch(
            "restaurants",
            location,
            lambda: self.backend.get_nearby_restaurants(coords["lat"], coords["lng"]),
            force,
            strict,
        )

    async def get_food_deals(
        self, force: bool = False, strict: bool = False
    ) -> list[dict[str, Any]]:
        return await self._cached_fetch(
            "food_deals", "all", self.backend.get_food_deals, force, strict
        )

    async def get_nearby_stores(
        self, location: str, category: str, force: bool = False, strict: bool = False
    ) -> list[dict[str, Any]]:
        coords = config.locations[location]
        return await self._cached_fetch(
            "stores",
            f"{location}:{category}",
            lambda: self.backend.get_nearby_stores(coords["lat"], coords["lng"], category),
            force,
            strict,
        )

    async def get_deals(self, category: str, limit: int = 5) -> list[Deal]:
        """Return parsed product deals, skipping malformed entries."""
        deals = []
        for item in await self.get_products(category):
            if not isinstance(item, dict):
                logger.debug(f"Skipping non-object product in {category}: {item!r}")
                continue
            try:
                deals.append(Deal.model_validate({"category": category, **item}))
            except ValidationError as e:
                logger.debug(f"Skipping malformed product in {category}: {e}")
            if len(deals) >= limit:
                break
        return deals

    async def get_promocode_models(self, category: str) -> list[Promocode]:
        codes = []
        for item in await self.get_promocodes(category):
            try:
                codes.append(Promocode.model_validate(item))
            except ValidationError as e:
                logger.debug(f"Skipping malformed promocode in {category}: {e}")
        return codes

    async def get_random_deal(self) -> Deal | None:
        """Pick a random deal across all catalog categories."""
        pool: list[Deal] = []
        for category in config.categories:
            pool.extend(await self.get_deals(category, limit=50))
        return random.choice(pool) if pool else None


# Global catalog service instance
_catalog_service: CatalogService | None = None


async def get_catalog_service() -> CatalogService:
    """Return the global catalog service, connecting the cache on first use."""
    global _catalog_service
    if _catalog_service is None:
        cache = await get_cache_service()
        _catalog_service = CatalogService(DealsBackendClient(config.backend), cache)
    return _catalog_service


async def shutdown_catalog_service() -> None:
    global _catalog_service
    if _catalog_service:
        await _catalog_service.backend.close()
        _catalog_service = None
