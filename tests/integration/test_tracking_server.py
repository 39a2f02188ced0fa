"""Integration tests for the tracking server: redirects, postbacks and health."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from bazaarguru.services.runtime import RuntimeStats, runtime_stats
from bazaarguru.web.server import create_app, parse_device_info

SECRET = "s3cret"
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


@pytest.fixture
def runtime() -> RuntimeStats:
    return runtime_stats


@pytest.fixture
def link(affiliate):
    return affiliate.generate_link_for_url("98765", "https://www.myntra.com/shirts/123")


@pytest_asyncio.fixture
async def client(affiliate, runtime):
    app = create_app(affiliate_service=affiliate, runtime=runtime, postback_secret=SECRET)
    async with TestClient(TestServer(app)) as client:
        yield client


class TestRedirects:
    @pytest.mark.asyncio
    async def test_sub_id_redirect_records_click(self, client, affiliate, link) -> None:
        response = await client.get(
            f"/go/{link.telegram_sub_id}",
            headers={"User-Agent": IPHONE_UA, "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
            allow_redirects=False,
        )

        assert response.status == 302
        assert response.headers["Location"] == link.affiliate_url

        clicks = affiliate.repository.get_clicks_by_link(link.id)
        assert len(clicks) == 1
        assert clicks[0].ip_address == "203.0.113.7"
        assert clicks[0].device_info.platform == "iOS"
        assert clicks[0].device_info.is_mobile is True

    @pytest.mark.asyncio
    async def test_short_code_redirect(self, client, link) -> None:
        response = await client.get(f"/l/{link.short_code}", allow_redirects=False)

        assert response.status == 302
        assert response.headers["Location"] == link.affiliate_url

    @pytest.mark.asyncio
    async def test_unknown_link(self, client) -> None:
        response = await client.get("/go/tg_missing", allow_redirects=False)

        assert response.status == 404

    @pytest.mark.asyncio
    async def test_expired_link(self, client, affiliate, link) -> None:
        affiliate.repository.update_link(link.id, expires_at=datetime.now() - timedelta(days=1))

        response = await client.get(f"/go/{link.telegram_sub_id}", allow_redirects=False)

        assert response.status == 404
        assert affiliate.repository.get_clicks_by_link(link.id) == []


class TestPostback:
    @pytest.mark.asyncio
    async def test_invalid_secret(self, client, link) -> None:
        response = await client.get(
            "/postback",
            params={"sub_id": link.telegram_sub_id, "order_id": "A1", "order_value": "100",
                    "secret": "wrong"},
        )

        assert response.status == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params",
        [
            {"order_id": "A1", "order_value": "100"},
            {"sub_id": "tg_x", "order_value": "100"},
            {"sub_id": "tg_x", "order_id": "A1"},
            {"sub_id": "tg_x", "order_id": "A1", "order_value": "lots"},
            {"sub_id": "tg_x", "order_id": "A1", "order_value": "-5"},
        ],
    )
    async def test_bad_parameters(self, client, params) -> None:
        response = await client.get("/postback", params={**params, "secret": SECRET})

        assert response.status == 400

    @pytest.mark.asyncio
    async def test_without_click(self, client, link) -> None:
        response = await client.get(
            "/postback",
            params={"sub_id": link.telegram_sub_id, "order_id": "A1", "order_value": "100",
                    "secret": SECRET},
        )

        assert response.status == 404
        assert (await response.json())["success"] is False

    @pytest.mark.asyncio
    async def test_json_conversion_is_idempotent(self, client, affiliate, link, runtime) -> None:
        await client.get(f"/go/{link.telegram_sub_id}", allow_redirects=False)
        body = {"sub_id": link.telegram_sub_id, "order_id": "ORD-9", "order_value": 2000,
                "secret": SECRET}

        first = await client.post("/postback", json=body)
        second = await client.post("/postback", json=body)

        first_json = await first.json()
        assert first.status == 200
        assert first_json["success"] is True
        assert (await second.json())["click_id"] == first_json["click_id"]

        click = affiliate.repository.get_clicks_by_link(link.id)[0]
        # Myntra pays 7.5 %
        assert click.conversion_data.commission == Decimal("150")

    @pytest.mark.asyncio
    async def test_form_postback_with_commission(self, client, affiliate, link) -> None:
        await client.get(f"/go/{link.telegram_sub_id}", allow_redirects=False)

        response = await client.post(
            "/postback",
            data={"sub_id": link.telegram_sub_id, "order_id": "ORD-10", "order_value": "500",
                  "commission": "42.5", "secret": SECRET},
        )

        assert response.status == 200
        click = affiliate.repository.get_clicks_by_link(link.id)[0]
        assert click.conversion_data.commission == Decimal("42.5")

    @pytest.mark.asyncio
    async def test_malformed_json(self, client) -> None:
        response = await client.post(
            "/postback", data="{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status == 400


class TestHealthAndStats:
    @pytest.mark.asyncio
    async def test_health(self, client, runtime) -> None:
        runtime.errors = 3

        response = await client.get("/health")
        payload = await response.json()

        assert response.status == 200
        assert payload["status"] == "ok"
        assert payload["stats"]["errors"] == 3
        assert payload["memory"]["total"] == runtime.memory_limit_mb * 1024 * 1024

    @pytest.mark.asyncio
    async def test_stats_follow_clicks(self, client, link) -> None:
        await client.get(f"/go/{link.telegram_sub_id}", allow_redirects=False)

        payload = await (await client.get("/stats")).json()

        assert payload["clicks_tracked"] == 1
        assert payload["links_generated"] == 1


@pytest.mark.parametrize(
    ("user_agent", "platform", "browser", "mobile"),
    [
        (IPHONE_UA, "iOS", "Safari", True),
        ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0 Safari/537.36 Edg/120.0",
         "Windows", "Edge", False),
        ("Mozilla/5.0 (Linux; Android 14) Chrome/120.0 Mobile Safari/537.36",
         "Android", "Chrome", True),
    ],
)
def test_parse_device_info(user_agent, platform, browser, mobile) -> None:
    info = parse_device_info(user_agent)

    assert (info.platform, info.browser, info.is_mobile) == (platform, browser, mobile)
