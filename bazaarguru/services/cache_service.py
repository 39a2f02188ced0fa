"""Redis cache for catalog data fetched from the deals backend.

Caches, each with its own TTL:
- Products per category
- Restaurants, food deals and nearby stores per location
- Promocodes per category and the full active promocode list
"""

import hashlib
import json
import logging
from datetime import datetime
from typing import Any, cast

import redis.asyncio as redis

from ..config import CacheConfig

logger = logging.getLogger(__name__)

KEY_NAMESPACE = "bazaarguru"


class CacheService:
    """Redis-backed cache with per-kind TTLs.

    When Redis is disabled or unreachable every read is a miss and every
    write is a no-op, so callers always fall through to the backend.
    """

    def __init__(self, config: CacheConfig):
        """Initialize the cache service.

        Args:
            config: Redis connection and TTL settings.
        """
        self.config = config
        self._redis: redis.Redis | None = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def _get_client(self) -> redis.Redis | None:
        """Return active Redis client if connected."""
        if not self._connected or self._redis is None:
            return None
        return self._redis

    async def connect(self) -> bool:
        """Connect to the Redis server.

        Returns:
            True if the connection succeeded.
        """
        if not self.config.enabled:
            return False

        try:
            client = redis.from_url(
                self.config.redis_url,
                decode_responses=True,
                retry_on_timeout=True,
                health_check_interval=30,
                socket_connect_timeout=5,
                socket_timeout=5,
            )

            await client.ping()
            self._redis = client
            self._connected = True
            logger.info("Connected to Redis")
            return True

        except Exception as e:
            logger.warning(f"Could not connect to Redis: {e}")
            self._connected = False
            return False

    @staticmethod
    def generate_key(kind: str, identifier: str) -> str:
        """Build a namespaced cache key with a hashed identifier.

        Args:
            kind: Cache kind (products, promocodes, restaurants, ...).
            identifier: Query identifier such as a category or coordinates.

        Returns:
            Key of the form ``bazaarguru:<kind>:<sha256>``.
        """
        normalized = identifier.lower().strip()
        hash_obj = hashlib.sha256(normalized.encode("utf-8"))
        return f"{KEY_NAMESPACE}:{kind}:{hash_obj.hexdigest()}"

    async def get(self, kind: str, identifier: str) -> Any | None:
        """Return the cached payload or None on a miss."""
        client = self._get_client()
        if client is None:
            return None

        try:
            cached = await client.get(self.generate_key(kind, identifier))
            if cached:
                logger.debug(f"Cache hit for {kind}: {identifier}")
                return json.loads(cached)["data"]
            logger.debug(f"Cache miss for {kind}: {identifier}")
            return None

        except Exception as e:
            logger.warning(f"Failed to read {kind} cache: {e}")
            return None

    async def set(self, kind: str, identifier: str, data: Any) -> bool:
        """Cache a payload with the TTL configured for its kind.

        Returns:
            True if the payload was stored.
        """
        client = self._get_client()
        if client is None:
            return False

        try:
            ttl = self.config.ttl_for(kind)
            payload = {
                "data": data,
                "_cached_at": datetime.now().isoformat(),
                "_cache_ttl": ttl,
            }
            await client.setex(
                self.generate_key(kind, identifier),
                ttl,
                json.dumps(payload, default=str, ensure_ascii=False),
            )
            logger.debug(f"Cached {kind}: {identifier}")
            return True

        except Exception as e:
            logger.warning(f"Failed to write {kind} cache: {e}")
            return False

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete keys matching a pattern.

        Args:
            pattern: Key pattern, for example ``bazaarguru:products:*``.

        Returns:
            Number of deleted keys.
        """
        client = self._get_client()
        if client is None:
            return 0

        try:
            keys = [key async for key in client.scan_iter(match=pattern)]
            if keys:
                deleted = int(await client.delete(*keys))
                logger.info(f"Deleted {deleted} keys matching {pattern}")
                return deleted
            return 0

        except Exception as e:
            logger.warning(f"Failed to delete keys matching {pattern}: {e}")
            return 0

    async def clear(self) -> int:
        """Delete every key of the application namespace."""
        return await self.invalidate_pattern(f"{KEY_NAMESPACE}:*")

    async def get_stats(self) -> dict[str, Any]:
        """Return entry counts per cache kind and Redis memory usage."""
        client = self._get_client()
        if client is None:
            return {"connected": False, "enabled": self.config.enabled}

        try:
            entries: dict[str, int] = {}
            async for key in client.scan_iter(match=f"{KEY_NAMESPACE}:*"):
                kind = cast(str, key).split(":")[1]
                entries[kind] = entries.get(kind, 0) + 1

            info = await client.info("memory")
            return {
                "connected": True,
                "enabled": self.config.enabled,
                "entries": entries,
                "total_entries": sum(entries.values()),
                "used_memory": info.get("used_memory_human", "N/A"),
            }

        except Exception as e:
            logger.warning(f"Failed to read Redis stats: {e}")
            return {"connected": False, "enabled": self.config.enabled, "error": str(e)}

    async def ping(self) -> bool:
        client = self._get_client()
        if client is None:
            return False
        try:
            return bool(await client.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close the Redis connection."""
        client = self._get_client()
        if client:
            try:
                await client.aclose()
                logger.info("Redis connection closed")
            except Exception as e:
                logger.warning(f"Failed to close Redis connection: {e}")
            finally:
                self._connected = False
                self._redis = None


# Global cache service instance
_cache_service: CacheService | None = None


async def get_cache_service() -> CacheService:
    """Return the connected global cache service."""
    global _cache_service
    if _cache_service is None:
        from ..config import config
        _cache_service = CacheService(config.cache)
        await _cache_service.connect()
    return _cache_service


async def shutdown_cache_service() -> None:
    """Close the global cache service."""
    global _cache_service
    if _cache_service:
        await _cache_service.close()
        _cache_service = None
