"""Affiliate link generation, click tracking and conversion attribution.

Every generated link carries a unique Telegram SubID that identifies the user,
the traffic source and the channel it was shared in. Clicks on the link are
recorded against that SubID and conversions reported by affiliate network
postbacks are attributed to the most recent click (last-click model).
"""

import hashlib
import logging
import secrets
import threading
import time
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from urllib.parse import parse_qsl, quote, urlencode, urlparse, urlunparse

from ..config import config
from ..exceptions import InvalidURLError, StoreNotFoundError, SubIdCollisionError
from ..models import (
    AffiliateLink,
    AffiliateStore,
    AttributedConversion,
    ConversionData,
    DeviceInfo,
    LinkClick,
    LinkMetadata,
    LinkStats,
    SubIdMapping,
    TopLink,
)
from .affiliate_repository import AffiliateRepository
from .runtime import runtime_stats

logger = logging.getLogger(__name__)

SUB_ID_ATTEMPTS = 3
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

_sub_id_clock_lock = threading.Lock()
_last_sub_id_millis = 0


def _md5(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def _sub_id_millis() -> int:
    """Epoch milliseconds, strictly increasing within the process."""
    global _last_sub_id_millis
    with _sub_id_clock_lock:
        _last_sub_id_millis = max(int(time.time() * 1000), _last_sub_id_millis + 1)
        return _last_sub_id_millis


def generate_telegram_sub_id(
    user_id: str, source: str, channel_id: str | None = None
) -> str:
    """Generate a SubID encoding user, source and channel.

    Format: ``tg_<user:8>_<source:4>_<channel:4|gen>_<suffix>`` where the
    hashed parts are md5 prefixes and the suffix is the base-36 millisecond
    timestamp followed by two random base-36 characters. Calls within one
    millisecond get successive timestamps, so a process never repeats a
    suffix.
    """
    user_hash = _md5(str(user_id))[:8]
    source_hash = _md5(source)[:4]
    channel_hash = _md5(str(channel_id))[:4] if channel_id else "gen"
    suffix = _to_base36(_sub_id_millis()) + "".join(
        secrets.choice(_BASE36) for _ in range(2)
    )
    return f"tg_{user_hash}_{source_hash}_{channel_hash}_{suffix}"


def build_affiliate_url(
    original_url: str, store: AffiliateStore, sub_id: str, link_type: str
) -> str:
    """Render the store's tracking template and append tracking parameters.

    Raises:
        InvalidURLError: If the original or the rendered URL is not an
            absolute http(s) URL.
    """
    parsed = urlparse(original_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidURLError(original_url)

    tracking_url = (
        store.tracking_template
        .replace("{original_url}", quote(original_url, safe=""))
        .replace("{sub_id}", sub_id)
        .replace("{link_type}", link_type)
        .replace("{domain}", store.domain)
    )

    final = urlparse(tracking_url)
    if final.scheme not in ("http", "https") or not final.netloc:
        logger.error(f"Store {store.id} produced an invalid tracking URL: {tracking_url}")
        raise InvalidURLError(original_url)

    params = dict(parse_qsl(final.query, keep_blank_values=True))
    params[store.sub_id_parameter] = sub_id
    params["utm_source"] = "telegram"
    params["utm_medium"] = "bot"
    params["utm_campaign"] = config.affiliate.campaign
    params["utm_content"] = link_type
    for key, value in store.custom_parameters.items():
        params[key] = str(value).replace("{sub_id}", sub_id)

    return urlunparse(final._replace(query=urlencode(params)))


def _percent(part: int, total: int) -> str:
    if total <= 0:
        return "0.00"
    return f"{part / total * 100:.2f}"


class AffiliateService:
    """Generates affiliate links and tracks their traffic.

    Attributes:
        repository: Storage for stores, links, clicks and attribution.
    """

    def __init__(self, repository: AffiliateRepository | None = None):
        self.repository = repository or AffiliateRepository()

    def seed_stores(self, stores: list[dict[str, Any]]) -> int:
        """Create or refresh stores from configuration entries.

        Returns:
            Number of stores written.
        """
        count = 0
        for entry in stores:
            try:
                store = AffiliateStore.model_validate(entry)
            except ValueError as e:
                logger.error(f"Skipping invalid store entry {entry.get('id')}: {e}")
                continue
            self.repository.upsert_store(store)
            count += 1
        logger.info(f"Seeded {count} affiliate stores")
        return count

    def generate_affiliate_link(
        self,
        user_id: str,
        original_url: str,
        store_id: str,
        link_type: str,
        source: str,
        coupon_id: str | None = None,
        channel_id: str | None = None,
        metadata: LinkMetadata | None = None,
    ) -> AffiliateLink:
        """Create and persist an affiliate link for a user.

        Raises:
            StoreNotFoundError: If the store is unknown or inactive.
            InvalidURLError: If the original URL is not an http(s) URL.
            SubIdCollisionError: If no unique SubID could be generated.
        """
        store = self.repository.get_store_by_id(store_id)
        if store is None or not store.is_active:
            raise StoreNotFoundError(store_id)

        user_id = str(user_id)
        channel_id = str(channel_id) if channel_id else None
        metadata = metadata or LinkMetadata()

        for attempt in range(1, SUB_ID_ATTEMPTS + 1):
            sub_id = generate_telegram_sub_id(user_id, source, channel_id)
            affiliate_url = build_affiliate_url(original_url, store, sub_id, link_type)
            short_code = _md5(affiliate_url)[:8]
            now = datetime.now()

            link = AffiliateLink(
                original_url=original_url,
                affiliate_url=affiliate_url,
                short_url=f"https://{config.affiliate.short_domain}/l/{short_code}",
                short_code=short_code,
                telegram_sub_id=sub_id,
                user_id=user_id,
                coupon_id=coupon_id,
                store_id=store.id,
                store_name=store.name,
                link_type=link_type,
                source=source,
                metadata=metadata,
                expires_at=now + timedelta(days=store.cookie_duration),
                created_at=now,
                updated_at=now,
            )

            try:
                link = self.repository.create_link(link)
            except SubIdCollisionError:
                logger.warning(f"SubID collision on attempt {attempt}: {sub_id}")
                continue

            self.repository.create_sub_id_mapping(
                SubIdMapping(
                    telegram_sub_id=sub_id,
                    user_id=user_id,
                    channel_id=channel_id,
                    source=source,
                    metadata={"store_id": store.id, "link_type": link_type},
                    created_at=now,
                )
            )
            runtime_stats.links_generated += 1
            logger.info(f"Generated affiliate link for user {user_id}: {sub_id}")
            return link

        raise SubIdCollisionError(
            f"Could not generate a unique SubID after {SUB_ID_ATTEMPTS} attempts"
        )

    def generate_link_for_url(
        self,
        user_id: str,
        url: str,
        source: str = "search",
        channel_id: str | None = None,
    ) -> AffiliateLink:
        """Generate a direct link for a shop URL pasted by a user.

        Raises:
            InvalidURLError: If the URL is not an http(s) URL.
            StoreNotFoundError: If no active store covers the URL's host.
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise InvalidURLError(url)

        store = self.repository.get_store_by_domain(parsed.hostname)
        if store is None:
            raise StoreNotFoundError(parsed.hostname)

        return self.generate_affiliate_link(
            user_id=user_id,
            original_url=url,
            store_id=store.id,
            link_type="direct",
            source=source,
            channel_id=channel_id,
        )

    def generate_bulk_links(
        self,
        user_id: str,
        store_id: str,
        coupon_ids: list[str],
        source: str,
        channel_id: str | None = None,
    ) -> list[AffiliateLink]:
        """Generate coupon links, skipping coupons that fail."""
        store = self.repository.get_store_by_id(store_id)
        if store is None or not store.is_active:
            raise StoreNotFoundError(store_id)

        coupon_template = store.link_formats.get(
            "coupon", "https://{domain}/coupon/{coupon_id}"
        )
        links = []
        for coupon_id in coupon_ids:
            coupon_url = coupon_template.replace("{coupon_id}", str(coupon_id)).replace(
                "{domain}", store.domain
            )
            try:
                links.append(
                    self.generate_affiliate_link(
                        user_id=user_id,
                        original_url=coupon_url,
                        store_id=store_id,
                        link_type="coupon",
                        source=source,
                        coupon_id=str(coupon_id),
                        channel_id=channel_id,
                    )
                )
            except Exception as e:
                logger.error(f"Failed to generate link for coupon {coupon_id}: {e}")

        logger.info(f"Generated {len(links)}/{len(coupon_ids)} bulk links for user {user_id}")
        return links

    def track_link_click(
        self,
        sub_id: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        referrer: str | None = None,
        session_id: str | None = None,
        device_info: DeviceInfo | None = None,
    ) -> LinkClick | None:
        """Record a click on an active, unexpired link.

        Returns:
            The stored click, or None when the link is unknown or expired.
        """
        link = self.repository.get_link_by_sub_id(sub_id)
        if link is None:
            logger.warning(f"Click on unknown SubID: {sub_id}")
            return None

        now = datetime.now()
        if link.is_expired(now):
            logger.warning(f"Click on expired link: {sub_id}")
            return None

        self.repository.touch_sub_id_mapping(sub_id, now)
        click = self.repository.record_click(
            LinkClick(
                affiliate_link_id=link.id,
                user_id=link.user_id,
                telegram_sub_id=sub_id,
                ip_address=ip_address,
                user_agent=user_agent,
                referrer=referrer,
                clicked_at=now,
                session_id=session_id,
                device_info=device_info or DeviceInfo(),
            )
        )
        self.repository.upsert_traffic_attribution(link, click, config.affiliate.campaign)
        runtime_stats.clicks_tracked += 1
        logger.info(f"Tracked click {click.id} on {sub_id}")
        return click

    def update_conversion(
        self,
        sub_id: str,
        order_id: str,
        order_value: Decimal,
        commission: Decimal | None = None,
        conversion_time: datetime | None = None,
    ) -> LinkClick | None:
        """Attribute an order to the latest unconverted click of a SubID.

        Repeated postbacks for the same order id return the already converted
        click unchanged. Each further order takes the next newest click, so
        earlier orders are never overwritten.

        Returns:
            The converted click, or None when the SubID has no unconverted
            click left.
        """
        existing = self.repository.find_conversion_by_order_id(order_id)
        if existing is not None:
            logger.info(f"Order {order_id} already attributed to click {existing.id}")
            return existing

        link = self.repository.get_link_by_sub_id(sub_id)
        if link is None:
            logger.warning(f"Conversion for unknown SubID: {sub_id}")
            return None

        order_value = Decimal(str(order_value))
        if commission is None:
            store = self.repository.get_store_by_id(link.store_id)
            rate = store.commission_rate if store else Decimal("0")
            commission = (order_value * rate / 100).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
        else:
            commission = Decimal(str(commission))

        conversion = ConversionData(
            converted=True,
            order_id=order_id,
            order_value=order_value,
            commission=commission,
            conversion_time=conversion_time or datetime.now(),
        )
        click, converted = self.repository.convert_latest_click(link.id, conversion)
        if click is None:
            logger.warning(f"No unconverted click for SubID {sub_id}, order {order_id} dropped")
            return None
        if not converted:
            logger.info(f"Order {order_id} already attributed to click {click.id}")
            return click

        self.repository.set_attribution_conversion(
            sub_id, AttributedConversion(**conversion.model_dump())
        )
        runtime_stats.conversions += 1
        logger.info(f"Conversion {order_id} attributed to {sub_id}: commission {commission}")
        return click

    def get_user_link_stats(self, user_id: str, days: int = 30) -> LinkStats:
        """Summarize clicks, conversions and commission of a user's links."""
        user_id = str(user_id)
        totals = self.repository.get_click_stats_by_user(user_id, days)
        conversions = totals["conversions"]

        average_order_value = Decimal("0")
        if conversions:
            average_order_value = (totals["total_order_value"] / conversions).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )

        top_links = [
            TopLink(
                **row,
                conversion_rate=_percent(row["conversions"], row["clicks"]),
            )
            for row in self.repository.get_top_performing_links(user_id, limit=10)
        ]

        return LinkStats(
            period=f"{days} days",
            total_clicks=totals["total_clicks"],
            unique_links=totals["unique_links"],
            conversions=conversions,
            conversion_rate=_percent(conversions, totals["total_clicks"]),
            average_order_value=average_order_value,
            total_commission=totals["total_commission"],
            top_performing_links=top_links,
        )

    def get_link_info(self, sub_id: str) -> dict[str, Any] | None:
        """Return a link with its SubID mapping and recent clicks."""
        link = self.repository.get_link_by_sub_id(sub_id)
        if link is None:
            return None
        return {
            "link": link,
            "mapping": self.repository.get_sub_id_mapping(sub_id),
            "clicks": self.repository.get_clicks_by_link(link.id),
            "attribution": self.repository.get_traffic_attribution(sub_id),
        }

    def get_user_links(self, user_id: str, limit: int = 50) -> list[AffiliateLink]:
        return self.repository.get_links_by_user(str(user_id), limit)

    def resolve_short_code(self, short_code: str) -> AffiliateLink | None:
        return self.repository.get_link_by_short_code(short_code)

    def deactivate_link(self, link_id: int) -> bool:
        link = self.repository.update_link(link_id, is_active=False)
        if link is None:
            return False
        logger.info(f"Deactivated affiliate link {link_id}")
        return True

    def cleanup_expired_links(self) -> int:
        """Deactivate expired links and return how many were affected."""
        count = self.repository.deactivate_expired_links(datetime.now())
        logger.info(f"Deactivated {count} expired affiliate links")
        return count


# Create global affiliate service instance
affiliate_service = AffiliateService()
