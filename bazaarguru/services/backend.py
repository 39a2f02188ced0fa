"""HTTP client for the deals backend.

The backend aggregates product feeds, promocodes, restaurants and nearby
stores from the partner APIs and serves them as JSON lists:

- ``GET /products?category=``
- ``GET /promocodes?category=`` and ``GET /promocodes/active``
- ``GET /restaurants?lat=&lng=`` and ``GET /food-deals``
- ``GET /stores?lat=&lng=&category=``
- ``GET /health``
"""

import logging
from typing import Any

import aiohttp

from ..config import BackendConfig
from ..exceptions import BackendError

logger = logging.getLogger(__name__)


class DealsBackendClient:
    """Thin async client over the deals backend REST API."""

    def __init__(self, config: BackendConfig, session: aiohttp.ClientSession | None = None):
        self.base_url = config.base_url.rstrip("/")
        self.api_key = config.api_key
        self.timeout = aiohttp.ClientTimeout(total=config.timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._session = aiohttp.ClientSession(headers=headers, timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Fetch a backend resource.

        Raises:
            BackendError: On a non-200 answer, a body that is not JSON or a
                transport failure.
        """
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        try:
            async with session.get(url, params=query) as response:
                if response.status != 200:
                    text = await response.text()
                    raise BackendError(
                        f"Backend {path} returned HTTP {response.status}: {text[:200]}",
                        status=response.status,
                    )
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise BackendError(f"Backend {path} returned invalid JSON: {e}") from e

        except aiohttp.ClientError as e:
            raise BackendError(f"Backend {path} request failed: {e}") from e
        except TimeoutError as e:
            raise BackendError(f"Backend {path} request timed out") from e

    async def _get_list(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        data = await self._get_json(path, params)
        if isinstance(data, dict):
            # Some endpoints wrap results as {"items": [...]}
            data = data.get("items", data.get("data", []))
        if not isinstance(data, list):
            raise BackendError(f"Backend {path} returned {type(data).__name__}, expected list")

        items = [item for item in data if isinstance(item, dict)]
        if len(items) != len(data):
            logger.warning(f"Backend {path} returned {len(data) - len(items)} non-object items")
        return items

    async def get_products(self, category: str) -> list[dict[str, Any]]:
        return await self._get_list("/products", {"category": category})

    async def get_promocodes(self, category: str) -> list[dict[str, Any]]:
        return await self._get_list("/promocodes", {"category": category})

    async def get_all_active_promocodes(self) -> list[dict[str, Any]]:
        return await self._get_list("/promocodes/active")

    async def get_nearby_restaurants(self, lat: float, lng: float) -> list[dict[str, Any]]:
        return await self._get_list("/restaurants", {"lat": lat, "lng": lng})

    async def get_food_deals(self) -> list[dict[str, Any]]:
        return await self._get_list("/food-deals")

    async def get_nearby_stores(
        self, lat: float, lng: float, category: str
    ) -> list[dict[str, Any]]:
        return await self._get_list("/stores", {"lat": lat, "lng": lng, "category": category})

    async def ping(self) -> bool:
        """Check backend availability without raising."""
        try:
            await self._get_json("/health")
            return True
        except BackendError as e:
            logger.warning(f"Deals backend ping failed: {e}")
            return False
