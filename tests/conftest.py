"""Global test configuration and fixtures.

Points the module-level SQLite databases at a temporary directory before the
application package is imported and provides shared fixtures for affiliate
services, stores and Telegram update mocks.
"""

import os
import tempfile
from datetime import datetime
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

_TEST_DATA_DIR = tempfile.mkdtemp(prefix="bazaarguru-tests-")
os.environ.setdefault("AFFILIATE_DB_PATH", os.path.join(_TEST_DATA_DIR, "affiliate.db"))
os.environ.setdefault("ANALYTICS_DB_PATH", os.path.join(_TEST_DATA_DIR, "analytics.db"))
os.environ.setdefault("CACHE_ENABLED", "false")

import pytest  # noqa: E402

from bazaarguru.bot.analytics_tracker import analytics_tracker  # noqa: E402
from bazaarguru.config import config  # noqa: E402
from bazaarguru.models import AffiliateStore  # noqa: E402
from bazaarguru.services.affiliate import AffiliateService  # noqa: E402
from bazaarguru.services.affiliate_repository import AffiliateRepository  # noqa: E402
from bazaarguru.services.analytics import AnalyticsService  # noqa: E402
from bazaarguru.services.runtime import runtime_stats  # noqa: E402


@pytest.fixture(autouse=True)
def reset_runtime_stats():
    """Start every test with zeroed runtime counters."""
    runtime_stats.reset()
    yield
    runtime_stats.reset()


@pytest.fixture
def disabled_tracking():
    """Turn analytics tracking off for the duration of a test."""
    analytics_tracker.disable_tracking()
    yield analytics_tracker
    analytics_tracker.enable_tracking()


@pytest.fixture
def repository(tmp_path) -> AffiliateRepository:
    return AffiliateRepository(str(tmp_path / "affiliate.db"))


@pytest.fixture
def affiliate(repository) -> AffiliateService:
    """Affiliate service over a fresh database seeded with configured stores."""
    service = AffiliateService(repository)
    service.seed_stores(config.stores)
    return service


@pytest.fixture
def analytics(tmp_path) -> AnalyticsService:
    return AnalyticsService(str(tmp_path / "analytics.db"))


@pytest.fixture
def sample_store() -> AffiliateStore:
    now = datetime(2024, 1, 1, 12, 0, 0)
    return AffiliateStore(
        id="teststore",
        name="Test Store",
        domain="teststore.in",
        affiliate_network="Test Network",
        tracking_template="https://track.example.com/?url={original_url}&sid={sub_id}",
        sub_id_parameter="sid",
        commission_rate=Decimal("5.5"),
        cookie_duration=7,
        supported_countries=["IN"],
        link_formats={"coupon": "https://teststore.in/deal/{coupon_id}"},
        custom_parameters={"aff": "bazaarguru", "ref": "tg-{sub_id}"},
        created_at=now,
        updated_at=now,
    )


def _make_update(
    text: str = "",
    user_id: int = 98765,
    username: str | None = "shopper",
    chat_type: str = "private",
    chat_id: int | None = None,
    with_user: bool = True,
):
    """Build a mocked Telegram update carrying one text message."""
    update = AsyncMock()
    message = AsyncMock()
    message.text = text
    message.caption = None
    message.reply_text = AsyncMock()
    message.reply_document = AsyncMock()
    update.effective_message = message
    update.message = message
    if with_user:
        update.effective_user = MagicMock(id=user_id, username=username, first_name="Asha")
    else:
        update.effective_user = None
    update.effective_chat = MagicMock(id=chat_id or user_id, type=chat_type)
    update.callback_query = None
    return update


def _make_context(args: list[str] | None = None):
    context = AsyncMock()
    context.args = args or []
    context.error = None
    return context


@pytest.fixture
def make_update():
    return _make_update


@pytest.fixture
def make_context():
    return _make_context


class FakeCache:
    """In-memory stand-in for CacheService."""

    def __init__(self) -> None:
        self.data: dict[tuple[str, str], Any] = {}
        self.connected = True

    async def get(self, kind: str, identifier: str) -> Any | None:
        return self.data.get((kind, identifier))

    async def set(self, kind: str, identifier: str, data: Any) -> bool:
        self.data[(kind, identifier)] = data
        return True

    async def clear(self) -> int:
        count = len(self.data)
        self.data.clear()
        return count

    async def get_stats(self) -> dict[str, Any]:
        return {"total_entries": len(self.data)}


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()
