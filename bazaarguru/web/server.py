"""Tracking server for affiliate redirects, conversion postbacks and health.

Routes:
    GET  /l/{code}       Short link redirect.
    GET  /go/{sub_id}    SubID redirect.
    GET|POST /postback   Conversion postback from affiliate networks.
    GET  /health         Liveness, uptime and memory.
    GET  /stats          Runtime counters.
"""

import asyncio
import hmac
import logging
import re
from decimal import Decimal, InvalidOperation

from aiohttp import web

from ..config import config, configure_logging
from ..models import AffiliateLink, DeviceInfo
from ..services.affiliate import AffiliateService, affiliate_service as default_affiliate_service
from ..services.runtime import RuntimeStats, runtime_stats as default_runtime_stats

logger = logging.getLogger(__name__)

AFFILIATE_SERVICE = web.AppKey("affiliate_service", AffiliateService)
RUNTIME_STATS = web.AppKey("runtime_stats", RuntimeStats)
POSTBACK_SECRET = web.AppKey("postback_secret", str)

_MOBILE_RE = re.compile(r"Mobile|Android|iPhone|iPad|iPod", re.IGNORECASE)
_BROWSERS = (
    ("Edg", "Edge"),
    ("OPR", "Opera"),
    ("Chrome", "Chrome"),
    ("Firefox", "Firefox"),
    ("Safari", "Safari"),
)
_PLATFORMS = (
    ("Android", "Android"),
    ("iPhone", "iOS"),
    ("iPad", "iOS"),
    ("Windows", "Windows"),
    ("Mac OS", "macOS"),
    ("Linux", "Linux"),
)


def parse_device_info(user_agent: str | None) -> DeviceInfo:
    """Derive platform, browser and mobile flag from a user agent."""
    if not user_agent:
        return DeviceInfo()
    platform = next((name for token, name in _PLATFORMS if token in user_agent), None)
    browser = next((name for token, name in _BROWSERS if token in user_agent), None)
    return DeviceInfo(
        platform=platform,
        browser=browser,
        is_mobile=bool(_MOBILE_RE.search(user_agent)),
    )


def client_ip(request: web.Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote


async def _redirect(request: web.Request, link: AffiliateLink | None) -> web.Response:
    if link is None:
        raise web.HTTPNotFound(text="Link not found")

    service = request.app[AFFILIATE_SERVICE]
    user_agent = request.headers.get("User-Agent")
    click = await asyncio.to_thread(
        service.track_link_click,
        link.telegram_sub_id,
        ip_address=client_ip(request),
        user_agent=user_agent,
        referrer=request.headers.get("Referer"),
        session_id=request.cookies.get("session_id"),
        device_info=parse_device_info(user_agent),
    )
    if click is None:
        raise web.HTTPNotFound(text="Link expired or inactive")

    raise web.HTTPFound(link.affiliate_url)


async def short_link_redirect(request: web.Request) -> web.Response:
    service = request.app[AFFILIATE_SERVICE]
    link = await asyncio.to_thread(service.resolve_short_code, request.match_info["code"])
    return await _redirect(request, link)


async def sub_id_redirect(request: web.Request) -> web.Response:
    service = request.app[AFFILIATE_SERVICE]
    link = await asyncio.to_thread(
        service.repository.get_link_by_sub_id, request.match_info["sub_id"]
    )
    return await _redirect(request, link)


def _decimal_param(params, name: str, required: bool) -> Decimal | None:
    raw = params.get(name)
    if raw in (None, ""):
        if required:
            raise web.HTTPBadRequest(text=f"Missing parameter: {name}")
        return None
    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        raise web.HTTPBadRequest(text=f"Invalid {name}: {raw}") from None
    if not value.is_finite() or value < 0:
        raise web.HTTPBadRequest(text=f"Invalid {name}: {raw}")
    return value


async def postback(request: web.Request) -> web.Response:
    """Record a conversion reported by an affiliate network."""
    params = dict(request.query)
    if request.method == "POST":
        if request.content_type == "application/json":
            try:
                body = await request.json()
            except ValueError:
                raise web.HTTPBadRequest(text="Invalid JSON body") from None
            if isinstance(body, dict):
                params.update({k: v for k, v in body.items() if v is not None})
        else:
            params.update(await request.post())

    secret = request.app[POSTBACK_SECRET]
    if secret and not hmac.compare_digest(str(params.get("secret", "")), secret):
        logger.warning(f"Postback with invalid secret from {client_ip(request)}")
        raise web.HTTPForbidden(text="Invalid secret")

    sub_id = str(params.get("sub_id") or "")
    order_id = str(params.get("order_id") or "")
    if not sub_id or not order_id:
        raise web.HTTPBadRequest(text="sub_id and order_id are required")

    order_value = _decimal_param(params, "order_value", required=True)
    commission = _decimal_param(params, "commission", required=False)

    service = request.app[AFFILIATE_SERVICE]
    click = await asyncio.to_thread(
        service.update_conversion, sub_id, order_id, order_value, commission
    )
    if click is None:
        return web.json_response(
            {"success": False, "error": "No click attributed to this SubID"}, status=404
        )

    return web.json_response({"success": True, "click_id": click.id})


async def health(request: web.Request) -> web.Response:
    return web.json_response(request.app[RUNTIME_STATS].health_payload())


async def stats(request: web.Request) -> web.Response:
    return web.json_response(request.app[RUNTIME_STATS].snapshot())


def create_app(
    affiliate_service: AffiliateService | None = None,
    runtime: RuntimeStats | None = None,
    postback_secret: str | None = None,
) -> web.Application:
    """Build the tracking web application."""
    app = web.Application()
    app[AFFILIATE_SERVICE] = affiliate_service or default_affiliate_service
    app[RUNTIME_STATS] = runtime or default_runtime_stats
    app[POSTBACK_SECRET] = postback_secret if postback_secret is not None else (
        config.affiliate.postback_secret or ""
    )

    app.router.add_get("/l/{code}", short_link_redirect)
    app.router.add_get("/go/{sub_id}", sub_id_redirect)
    app.router.add_route("GET", "/postback", postback)
    app.router.add_route("POST", "/postback", postback)
    app.router.add_get("/health", health)
    app.router.add_get("/stats", stats)
    return app


async def start_tracking_server(
    host: str | None = None, port: int | None = None
) -> web.AppRunner:
    """Start the tracking server in the running event loop."""
    runner = web.AppRunner(create_app())
    await runner.setup()
    site = web.TCPSite(runner, host or config.server.host, port or config.server.port)
    await site.start()
    logger.info(f"Tracking server listening on {site.name}")
    return runner


def main() -> None:
    """Run the tracking server standalone."""
    configure_logging()
    web.run_app(create_app(), host=config.server.host, port=config.server.port)
