"""SQLite storage for affiliate stores, links, clicks and attribution.

All timestamps are stored as ISO-8601 text with microseconds so that range
filters can compare them as strings. Monetary values are stored as text to
keep ``Decimal`` precision. Nested models are stored as JSON text.
"""

import json
import logging
import sqlite3
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

from ..exceptions import SubIdCollisionError
from ..models import (
    AffiliateLink,
    AffiliateStore,
    AttributedConversion,
    ConversionData,
    DeviceInfo,
    LinkClick,
    LinkMetadata,
    SubIdMapping,
    TrafficAttribution,
)

logger = logging.getLogger(__name__)

_LINK_COLUMNS = {
    "original_url",
    "affiliate_url",
    "short_url",
    "short_code",
    "coupon_id",
    "link_type",
    "source",
    "metadata",
    "is_active",
    "expires_at",
}


def _ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


def _dt(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _dec(value: str | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(value)


class AffiliateRepository:
    """SQLite-backed persistence for the affiliate tracking data.

    Attributes:
        db_path: Path to SQLite database file.
    """

    def __init__(self, db_path: str | None = None):
        """Initialize repository and create the schema.

        Args:
            db_path: Path to SQLite database file. Uses config default if None.
        """
        if db_path is None:
            from ..config import config
            db_path = config.affiliate.db_path

        self.db_path = db_path
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_database()
        logger.info(f"Affiliate repository initialized with database: {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_database(self) -> None:
        """Create affiliate tables and indexes if they don't exist."""
        with self._connect() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS affiliate_stores (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    domain TEXT NOT NULL,
                    affiliate_network TEXT,
                    tracking_template TEXT NOT NULL,
                    sub_id_parameter TEXT NOT NULL,
                    commission_rate TEXT NOT NULL,
                    cookie_duration INTEGER NOT NULL,
                    is_active BOOLEAN NOT NULL DEFAULT 1,
                    supported_countries TEXT,
                    link_formats TEXT,
                    custom_parameters TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS affiliate_links (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    original_url TEXT NOT NULL,
                    affiliate_url TEXT NOT NULL,
                    short_url TEXT,
                    short_code TEXT UNIQUE,
                    telegram_sub_id TEXT NOT NULL UNIQUE,
                    user_id TEXT NOT NULL,
                    coupon_id TEXT,
                    store_id TEXT NOT NULL REFERENCES affiliate_stores(id),
                    link_type TEXT NOT NULL,
                    source TEXT NOT NULL,
                    metadata TEXT,
                    is_active BOOLEAN NOT NULL DEFAULT 1,
                    expires_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS link_clicks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    affiliate_link_id INTEGER NOT NULL REFERENCES affiliate_links(id),
                    user_id TEXT NOT NULL,
                    telegram_sub_id TEXT NOT NULL,
                    ip_address TEXT,
                    user_agent TEXT,
                    referrer TEXT,
                    clicked_at TEXT NOT NULL,
                    session_id TEXT,
                    device_info TEXT,
                    converted BOOLEAN NOT NULL DEFAULT 0,
                    order_id TEXT,
                    order_value TEXT,
                    commission TEXT,
                    conversion_time TEXT
                );

                CREATE TABLE IF NOT EXISTS sub_id_mappings (
                    telegram_sub_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    channel_id TEXT,
                    source TEXT NOT NULL,
                    metadata TEXT,
                    is_active BOOLEAN NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    last_used_at TEXT
                );

                CREATE TABLE IF NOT EXISTS traffic_attribution (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    telegram_sub_id TEXT NOT NULL UNIQUE,
                    user_id TEXT NOT NULL,
                    affiliate_link_id INTEGER NOT NULL,
                    click_id INTEGER NOT NULL,
                    source TEXT NOT NULL,
                    medium TEXT,
                    campaign TEXT,
                    content TEXT,
                    term TEXT,
                    first_click TEXT NOT NULL,
                    last_click TEXT NOT NULL,
                    click_count INTEGER NOT NULL DEFAULT 1,
                    conversion_data TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_stores_domain ON affiliate_stores(domain);
                CREATE INDEX IF NOT EXISTS idx_links_user ON affiliate_links(user_id);
                CREATE INDEX IF NOT EXISTS idx_links_store ON affiliate_links(store_id);
                CREATE INDEX IF NOT EXISTS idx_clicks_link ON link_clicks(affiliate_link_id);
                CREATE INDEX IF NOT EXISTS idx_clicks_user ON link_clicks(user_id);
                CREATE INDEX IF NOT EXISTS idx_clicks_time ON link_clicks(clicked_at);
                CREATE UNIQUE INDEX IF NOT EXISTS idx_clicks_order_unique
                    ON link_clicks(order_id) WHERE order_id IS NOT NULL;
            """)
            conn.commit()

    # Stores

    def create_store(self, store: AffiliateStore) -> AffiliateStore:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO affiliate_stores
                (id, name, domain, affiliate_network, tracking_template,
                 sub_id_parameter, commission_rate, cookie_duration, is_active,
                 supported_countries, link_formats, custom_parameters,
                 created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._store_params(store),
            )
            conn.commit()
        return store

    def upsert_store(self, store: AffiliateStore) -> AffiliateStore:
        """Insert a store or refresh its settings, keeping created_at."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO affiliate_stores
                (id, name, domain, affiliate_network, tracking_template,
                 sub_id_parameter, commission_rate, cookie_duration, is_active,
                 supported_countries, link_formats, custom_parameters,
                 created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    domain = excluded.domain,
                    affiliate_network = excluded.affiliate_network,
                    tracking_template = excluded.tracking_template,
                    sub_id_parameter = excluded.sub_id_parameter,
                    commission_rate = excluded.commission_rate,
                    cookie_duration = excluded.cookie_duration,
                    is_active = excluded.is_active,
                    supported_countries = excluded.supported_countries,
                    link_formats = excluded.link_formats,
                    custom_parameters = excluded.custom_parameters,
                    updated_at = excluded.updated_at
                """,
                self._store_params(store),
            )
            conn.commit()
        return store

    def get_store_by_id(self, store_id: str) -> AffiliateStore | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM affiliate_stores WHERE id = ?", (store_id,)
            ).fetchone()
        return self._row_to_store(row) if row else None

    def get_store_by_domain(self, domain: str) -> AffiliateStore | None:
        """Find the active store covering a host name.

        Matches the bare domain and any of its subdomains, so
        ``www.flipkart.com`` resolves to the store registered for
        ``flipkart.com``.
        """
        host = domain.lower().strip(".")
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM affiliate_stores
                WHERE is_active = 1 AND (domain = ? OR ? LIKE '%.' || domain)
                ORDER BY LENGTH(domain) DESC
                LIMIT 1
                """,
                (host, host),
            ).fetchone()
        return self._row_to_store(row) if row else None

    def get_all_active_stores(self) -> list[AffiliateStore]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM affiliate_stores WHERE is_active = 1 ORDER BY name"
            ).fetchall()
        return [self._row_to_store(row) for row in rows]

    # Links

    def create_link(self, link: AffiliateLink) -> AffiliateLink:
        """Persist a new link and return it with its database id.

        Raises:
            SubIdCollisionError: If the SubID or short code is already taken.
        """
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO affiliate_links
                    (original_url, affiliate_url, short_url, short_code,
                     telegram_sub_id, user_id, coupon_id, store_id, link_type,
                     source, metadata, is_active, expires_at, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        link.original_url,
                        link.affiliate_url,
                        link.short_url,
                        link.short_code,
                        link.telegram_sub_id,
                        link.user_id,
                        link.coupon_id,
                        link.store_id,
                        link.link_type,
                        link.source,
                        link.metadata.model_dump_json(),
                        link.is_active,
                        _ts(link.expires_at),
                        _ts(link.created_at),
                        _ts(link.updated_at),
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as e:
            if "telegram_sub_id" in str(e) or "short_code" in str(e):
                raise SubIdCollisionError(
                    f"SubID or short code already exists: {link.telegram_sub_id}"
                ) from e
            raise

        return link.model_copy(update={"id": cursor.lastrowid})

    def get_link_by_id(self, link_id: int) -> AffiliateLink | None:
        return self._fetch_link("l.id = ?", (link_id,))

    def get_link_by_sub_id(self, sub_id: str) -> AffiliateLink | None:
        return self._fetch_link("l.telegram_sub_id = ? AND l.is_active = 1", (sub_id,))

    def get_link_by_short_code(self, short_code: str) -> AffiliateLink | None:
        return self._fetch_link("l.short_code = ? AND l.is_active = 1", (short_code,))

    def get_links_by_user(self, user_id: str, limit: int = 50) -> list[AffiliateLink]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT l.*, s.name AS store_name
                FROM affiliate_links l
                JOIN affiliate_stores s ON s.id = l.store_id
                WHERE l.user_id = ? AND l.is_active = 1
                ORDER BY l.created_at DESC, l.id DESC
                LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        return [self._row_to_link(row) for row in rows]

    def update_link(self, link_id: int, **fields: Any) -> AffiliateLink | None:
        """Update selected link columns and touch updated_at.

        Raises:
            ValueError: If a field is not an updatable link column.
        """
        unknown = set(fields) - _LINK_COLUMNS
        if unknown:
            raise ValueError(f"Unknown link fields: {', '.join(sorted(unknown))}")

        values: dict[str, Any] = {}
        for key, value in fields.items():
            if key == "metadata" and isinstance(value, LinkMetadata):
                value = value.model_dump_json()
            elif isinstance(value, datetime):
                value = _ts(value)
            values[key] = value
        values["updated_at"] = _ts(datetime.now())

        assignments = ", ".join(f"{key} = ?" for key in values)
        with self._connect() as conn:
            conn.execute(
                f"UPDATE affiliate_links SET {assignments} WHERE id = ?",
                (*values.values(), link_id),
            )
            conn.commit()

        return self.get_link_by_id(link_id)

    def deactivate_expired_links(self, now: datetime | None = None) -> int:
        """Deactivate active links past their expiry and return the count."""
        now = now or datetime.now()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE affiliate_links
                SET is_active = 0, updated_at = ?
                WHERE is_active = 1 AND expires_at IS NOT NULL AND expires_at < ?
                """,
                (_ts(now), _ts(now)),
            )
            conn.commit()
        return cursor.rowcount

    # Clicks

    def record_click(self, click: LinkClick) -> LinkClick:
        conversion = click.conversion_data
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO link_clicks
                (affiliate_link_id, user_id, telegram_sub_id, ip_address,
                 user_agent, referrer, clicked_at, session_id, device_info,
                 converted, order_id, order_value, commission, conversion_time)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    click.affiliate_link_id,
                    click.user_id,
                    click.telegram_sub_id,
                    click.ip_address,
                    click.user_agent,
                    click.referrer,
                    _ts(click.clicked_at),
                    click.session_id,
                    click.device_info.model_dump_json(),
                    conversion.converted,
                    conversion.order_id,
                    str(conversion.order_value) if conversion.order_value is not None else None,
                    str(conversion.commission) if conversion.commission is not None else None,
                    _ts(conversion.conversion_time),
                ),
            )
            conn.commit()
        return click.model_copy(update={"id": cursor.lastrowid})

    def get_clicks_by_link(self, link_id: int, limit: int = 100) -> list[LinkClick]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM link_clicks
                WHERE affiliate_link_id = ?
                ORDER BY clicked_at DESC, id DESC
                LIMIT ?
                """,
                (link_id, limit),
            ).fetchall()
        return [self._row_to_click(row) for row in rows]

    def convert_latest_click(
        self, link_id: int, conversion: ConversionData
    ) -> tuple[LinkClick | None, bool]:
        """Attribute an order to the newest unconverted click of a link.

        Runs in one write transaction, so concurrent postbacks cannot convert
        the same click twice or attribute one order twice.

        Returns:
            The click holding the order and whether this call converted it.
            A known order id returns its click unchanged. ``(None, False)``
            when the link has no unconverted click left.
        """
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT * FROM link_clicks WHERE order_id = ? AND converted = 1 LIMIT 1",
                (conversion.order_id,),
            ).fetchone()
            if row is not None:
                conn.rollback()
                return self._row_to_click(row), False

            row = conn.execute(
                """
                SELECT id FROM link_clicks
                WHERE affiliate_link_id = ? AND converted = 0
                ORDER BY clicked_at DESC, id DESC
                LIMIT 1
                """,
                (link_id,),
            ).fetchone()
            if row is None:
                conn.rollback()
                return None, False

            conn.execute(
                """
                UPDATE link_clicks
                SET converted = 1, order_id = ?, order_value = ?, commission = ?,
                    conversion_time = ?
                WHERE id = ?
                """,
                (
                    conversion.order_id,
                    str(conversion.order_value) if conversion.order_value is not None else None,
                    str(conversion.commission) if conversion.commission is not None else None,
                    _ts(conversion.conversion_time),
                    row["id"],
                ),
            )
            updated = conn.execute(
                "SELECT * FROM link_clicks WHERE id = ?", (row["id"],)
            ).fetchone()
            conn.commit()
        return self._row_to_click(updated), True

    def find_conversion_by_order_id(self, order_id: str) -> LinkClick | None:
        """Return the click already converted with this order id, if any."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM link_clicks WHERE order_id = ? AND converted = 1 LIMIT 1",
                (order_id,),
            ).fetchone()
        return self._row_to_click(row) if row else None

    # SubID mappings

    def create_sub_id_mapping(self, mapping: SubIdMapping) -> SubIdMapping:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO sub_id_mappings
                (telegram_sub_id, user_id, channel_id, source, metadata,
                 is_active, created_at, last_used_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    mapping.telegram_sub_id,
                    mapping.user_id,
                    mapping.channel_id,
                    mapping.source,
                    json.dumps(mapping.metadata, default=str),
                    mapping.is_active,
                    _ts(mapping.created_at),
                    _ts(mapping.last_used_at),
                ),
            )
            conn.commit()
        return mapping

    def get_sub_id_mapping(self, sub_id: str) -> SubIdMapping | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM sub_id_mappings WHERE telegram_sub_id = ?", (sub_id,)
            ).fetchone()
        if not row:
            return None
        return SubIdMapping(
            telegram_sub_id=row["telegram_sub_id"],
            user_id=row["user_id"],
            channel_id=row["channel_id"],
            source=row["source"],
            metadata=json.loads(row["metadata"] or "{}"),
            is_active=bool(row["is_active"]),
            created_at=_dt(row["created_at"]),
            last_used_at=_dt(row["last_used_at"]),
        )

    def touch_sub_id_mapping(self, sub_id: str, when: datetime | None = None) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE sub_id_mappings SET last_used_at = ? WHERE telegram_sub_id = ?",
                (_ts(when or datetime.now()), sub_id),
            )
            conn.commit()

    # Traffic attribution

    def upsert_traffic_attribution(
        self, link: AffiliateLink, click: LinkClick, campaign: str | None = None
    ) -> TrafficAttribution:
        """Create the attribution row of a SubID or register another click on it."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO traffic_attribution
                (telegram_sub_id, user_id, affiliate_link_id, click_id, source,
                 medium, campaign, content, term, first_click, last_click, click_count)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
                ON CONFLICT(telegram_sub_id) DO UPDATE SET
                    click_id = excluded.click_id,
                    last_click = excluded.last_click,
                    click_count = traffic_attribution.click_count + 1
                """,
                (
                    link.telegram_sub_id,
                    link.user_id,
                    link.id,
                    click.id,
                    link.source,
                    link.metadata.medium or "bot",
                    link.metadata.campaign_id or campaign,
                    link.metadata.content or link.link_type,
                    link.metadata.term,
                    _ts(click.clicked_at),
                    _ts(click.clicked_at),
                ),
            )
            conn.commit()
        return self.get_traffic_attribution(link.telegram_sub_id)

    def get_traffic_attribution(self, sub_id: str) -> TrafficAttribution | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM traffic_attribution WHERE telegram_sub_id = ?", (sub_id,)
            ).fetchone()
        if not row:
            return None
        conversion = None
        if row["conversion_data"]:
            conversion = AttributedConversion.model_validate_json(row["conversion_data"])
        return TrafficAttribution(
            id=row["id"],
            telegram_sub_id=row["telegram_sub_id"],
            user_id=row["user_id"],
            affiliate_link_id=row["affiliate_link_id"],
            click_id=row["click_id"],
            source=row["source"],
            medium=row["medium"] or "bot",
            campaign=row["campaign"],
            content=row["content"],
            term=row["term"],
            first_click=_dt(row["first_click"]),
            last_click=_dt(row["last_click"]),
            click_count=row["click_count"],
            conversion_data=conversion,
        )

    def set_attribution_conversion(
        self, sub_id: str, conversion: AttributedConversion
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE traffic_attribution SET conversion_data = ? WHERE telegram_sub_id = ?",
                (conversion.model_dump_json(), sub_id),
            )
            conn.commit()

    # Analytics

    def get_click_stats_by_user(self, user_id: str, days: int = 30) -> dict[str, Any]:
        """Aggregate click and conversion totals of a user's links.

        Returns:
            Dictionary with total_clicks, unique_links, conversions,
            total_order_value and total_commission.
        """
        cutoff = datetime.now() - timedelta(days=days)
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT c.affiliate_link_id, c.converted, c.order_value, c.commission
                FROM link_clicks c
                JOIN affiliate_links l ON l.id = c.affiliate_link_id
                WHERE l.user_id = ? AND c.clicked_at >= ?
                """,
                (user_id, _ts(cutoff)),
            ).fetchall()

        converted = [row for row in rows if row["converted"]]
        return {
            "total_clicks": len(rows),
            "unique_links": len({row["affiliate_link_id"] for row in rows}),
            "conversions": len(converted),
            "total_order_value": sum(
                (_dec(row["order_value"]) or Decimal("0") for row in converted), Decimal("0")
            ),
            "total_commission": sum(
                (_dec(row["commission"]) or Decimal("0") for row in converted), Decimal("0")
            ),
        }

    def get_top_performing_links(self, user_id: str, limit: int = 10) -> list[dict[str, Any]]:
        """Rank a user's links by clicks, then conversions."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT
                    l.id AS link_id,
                    s.name AS store_name,
                    l.link_type,
                    l.source,
                    COUNT(c.id) AS clicks,
                    COALESCE(SUM(CASE WHEN c.converted = 1 THEN 1 ELSE 0 END), 0)
                        AS conversions
                FROM affiliate_links l
                JOIN affiliate_stores s ON s.id = l.store_id
                LEFT JOIN link_clicks c ON c.affiliate_link_id = l.id
                WHERE l.user_id = ?
                GROUP BY l.id
                ORDER BY clicks DESC, conversions DESC, l.id DESC
                LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()

            result = []
            for row in rows:
                commissions = conn.execute(
                    """
                    SELECT commission FROM link_clicks
                    WHERE affiliate_link_id = ? AND converted = 1
                    """,
                    (row["link_id"],),
                ).fetchall()
                item = dict(row)
                item["commission"] = sum(
                    (_dec(c["commission"]) or Decimal("0") for c in commissions), Decimal("0")
                )
                result.append(item)
        return result

    # Row mapping

    @staticmethod
    def _store_params(store: AffiliateStore) -> tuple:
        return (
            store.id,
            store.name,
            store.domain.lower(),
            store.affiliate_network,
            store.tracking_template,
            store.sub_id_parameter,
            str(store.commission_rate),
            store.cookie_duration,
            store.is_active,
            json.dumps(store.supported_countries),
            json.dumps(store.link_formats),
            json.dumps(store.custom_parameters),
            _ts(store.created_at),
            _ts(store.updated_at),
        )

    @staticmethod
    def _row_to_store(row: sqlite3.Row) -> AffiliateStore:
        return AffiliateStore(
            id=row["id"],
            name=row["name"],
            domain=row["domain"],
            affiliate_network=row["affiliate_network"] or "",
            tracking_template=row["tracking_template"],
            sub_id_parameter=row["sub_id_parameter"],
            commission_rate=Decimal(row["commission_rate"]),
            cookie_duration=row["cookie_duration"],
            is_active=bool(row["is_active"]),
            supported_countries=json.loads(row["supported_countries"] or "[]"),
            link_formats=json.loads(row["link_formats"] or "{}"),
            custom_parameters=json.loads(row["custom_parameters"] or "{}"),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    def _fetch_link(self, where: str, params: tuple) -> AffiliateLink | None:
        with self._connect() as conn:
            row = conn.execute(
                f"""
                SELECT l.*, s.name AS store_name
                FROM affiliate_links l
                JOIN affiliate_stores s ON s.id = l.store_id
                WHERE {where}
                """,
                params,
            ).fetchone()
        return self._row_to_link(row) if row else None

    @staticmethod
    def _row_to_link(row: sqlite3.Row) -> AffiliateLink:
        metadata = LinkMetadata()
        if row["metadata"]:
            metadata = LinkMetadata.model_validate_json(row["metadata"])
        return AffiliateLink(
            id=row["id"],
            original_url=row["original_url"],
            affiliate_url=row["affiliate_url"],
            short_url=row["short_url"],
            short_code=row["short_code"],
            telegram_sub_id=row["telegram_sub_id"],
            user_id=row["user_id"],
            coupon_id=row["coupon_id"],
            store_id=row["store_id"],
            store_name=row["store_name"],
            link_type=row["link_type"],
            source=row["source"],
            metadata=metadata,
            is_active=bool(row["is_active"]),
            expires_at=_dt(row["expires_at"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    @staticmethod
    def _row_to_click(row: sqlite3.Row) -> LinkClick:
        device = DeviceInfo()
        if row["device_info"]:
            device = DeviceInfo.model_validate_json(row["device_info"])
        return LinkClick(
            id=row["id"],
            affiliate_link_id=row["affiliate_link_id"],
            user_id=row["user_id"],
            telegram_sub_id=row["telegram_sub_id"],
            ip_address=row["ip_address"],
            user_agent=row["user_agent"],
            referrer=row["referrer"],
            clicked_at=_dt(row["clicked_at"]),
            session_id=row["session_id"],
            device_info=device,
            conversion_data=ConversionData(
                converted=bool(row["converted"]),
                order_id=row["order_id"],
                order_value=_dec(row["order_value"]),
                commission=_dec(row["commission"]),
                conversion_time=_dt(row["conversion_time"]),
            ),
        )
