"""Tests for the Redis catalog cache."""

import json
from unittest.mock import AsyncMock

import pytest

from bazaarguru.config import CacheConfig
from bazaarguru.services.cache_service import CacheService


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig().model_copy(update={"enabled": True})


@pytest.fixture
def redis_client() -> AsyncMock:
    client = AsyncMock()
    client.get.return_value = None
    return client


@pytest.fixture
def connected_cache(cache_config, redis_client) -> CacheService:
    cache = CacheService(cache_config)
    cache._redis = redis_client
    cache._connected = True
    return cache


class TestGenerateKey:
    def test_namespaced_and_hashed(self) -> None:
        key = CacheService.generate_key("products", "electronics")

        namespace, kind, digest = key.split(":")
        assert namespace == "bazaarguru"
        assert kind == "products"
        assert len(digest) == 64

    def test_identifier_is_normalized(self) -> None:
        assert CacheService.generate_key("products", "  Electronics ") == CacheService.generate_key(
            "products", "electronics"
        )

    def test_kinds_do_not_collide(self) -> None:
        assert CacheService.generate_key("products", "food") != CacheService.generate_key(
            "promocodes", "food"
        )


class TestDisabledCache:
    @pytest.mark.asyncio
    async def test_everything_is_a_miss(self, cache_config) -> None:
        cache = CacheService(cache_config.model_copy(update={"enabled": False}))

        assert await cache.connect() is False
        assert await cache.get("products", "electronics") is None
        assert await cache.set("products", "electronics", [1]) is False
        assert await cache.clear() == 0
        assert await cache.ping() is False
        assert await cache.get_stats() == {"connected": False, "enabled": False}


class TestConnectedCache:
    @pytest.mark.asyncio
    async def test_set_uses_kind_ttl(self, connected_cache, redis_client, cache_config) -> None:
        assert await connected_cache.set("promocodes", "fashion", [{"code": "A"}]) is True

        key, ttl, payload = redis_client.setex.await_args.args
        assert key == CacheService.generate_key("promocodes", "fashion")
        assert ttl == cache_config.promocodes_ttl
        assert json.loads(payload)["data"] == [{"code": "A"}]

    @pytest.mark.asyncio
    async def test_get_unwraps_payload(self, connected_cache, redis_client) -> None:
        redis_client.get.return_value = json.dumps({"data": [1, 2], "_cache_ttl": 60})

        assert await connected_cache.get("products", "shoes") == [1, 2]

    @pytest.mark.asyncio
    async def test_redis_errors_degrade_to_miss(self, connected_cache, redis_client) -> None:
        redis_client.get.side_effect = ConnectionError("gone")
        redis_client.setex.side_effect = ConnectionError("gone")

        assert await connected_cache.get("products", "shoes") is None
        assert await connected_cache.set("products", "shoes", []) is False

    @pytest.mark.asyncio
    async def test_close_disconnects(self, connected_cache, redis_client) -> None:
        await connected_cache.close()

        redis_client.aclose.assert_awaited_once()
        assert connected_cache.connected is False


def test_ttl_for_unknown_kind_defaults_to_an_hour(cache_config) -> None:
    assert cache_config.ttl_for("restaurants") == cache_config.food_ttl
    assert cache_config.ttl_for("stores") == cache_config.maps_ttl
    assert cache_config.ttl_for("weather") == 3600
