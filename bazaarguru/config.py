"""Configuration management for the bazaarGuru deals bot.

Handles all application configuration including environment variables, YAML
catalog files, and default settings. Provides structured configuration classes
for different aspects of the application (bot, affiliate tracking, cache,
data sync, operational tooling).
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

DEFAULT_CATEGORIES = ["electronics", "fashion", "food", "accessories", "shoes"]

DEFAULT_LOCATIONS = {
    "delhi": {"lat": 28.6139, "lng": 77.2090},
    "mumbai": {"lat": 19.0760, "lng": 72.8777},
    "bangalore": {"lat": 12.9716, "lng": 77.5946},
    "chennai": {"lat": 13.0827, "lng": 80.2707},
    "kolkata": {"lat": 22.5726, "lng": 88.3639},
}


class BotConfig(BaseSettings):
    """Main Telegram bot configuration.

    Attributes:
        bot_token: Telegram bot API token from environment.
        admin_chat_id: Telegram user ID allowed to run admin commands (0 = none).
        webhook_url: Public base URL for webhook mode, polling when empty.
        port: Server port for webhook mode.
        listen_host: Interface the webhook server binds to.
        timeout: HTTP request timeout in seconds.
        polling_retry_delay: Seconds to wait before retrying a failed poll.
    """
    bot_token: str = Field(default="", validation_alias="TELEGRAM_BOT_TOKEN")
    admin_chat_id: int = Field(default=0, validation_alias="ADMIN_CHAT_ID")
    webhook_url: str | None = Field(default=None, validation_alias="WEBHOOK_URL")
    port: int = Field(default=8443, validation_alias="BOT_PORT")
    listen_host: str = Field(default="127.0.0.1", validation_alias="BOT_LISTEN_HOST")
    timeout: int = Field(default=20, validation_alias="BOT_TIMEOUT")
    polling_retry_delay: float = Field(default=5.0, validation_alias="POLLING_RETRY_DELAY")

    @property
    def use_webhook(self) -> bool:
        """Determine if webhook mode should be used.

        Returns:
            True if a webhook URL is configured, False for polling mode.
        """
        return bool(self.webhook_url)


class AffiliateConfig(BaseSettings):
    """Affiliate link generation and tracking settings.

    Attributes:
        db_path: Path to the SQLite affiliate database.
        short_domain: Domain used for generated short links.
        campaign: Value of the utm_campaign parameter.
        tracking_base_url: Public base URL of the click redirect server.
        postback_secret: Shared secret required on conversion postbacks.
    """
    db_path: str = Field(default="data/affiliate.db", validation_alias="AFFILIATE_DB_PATH")
    short_domain: str = Field(default="zabardoo.com", validation_alias="AFFILIATE_SHORT_DOMAIN")
    campaign: str = Field(default="zabardoo", validation_alias="AFFILIATE_CAMPAIGN")
    tracking_base_url: str = Field(
        default="http://localhost:3000", validation_alias="TRACKING_BASE_URL"
    )
    postback_secret: str | None = Field(default=None, validation_alias="POSTBACK_SECRET")


class AnalyticsConfig(BaseSettings):
    """Bot usage analytics configuration.

    Attributes:
        enabled: Whether to collect analytics data.
        db_path: Path to SQLite analytics database.
        export_enabled: Whether CSV export is available.
        retention_days: Number of days to retain analytics data.
    """
    enabled: bool = Field(default=True, validation_alias="ANALYTICS_ENABLED")
    db_path: str = Field(default="data/analytics.db", validation_alias="ANALYTICS_DB_PATH")
    export_enabled: bool = Field(default=True, validation_alias="ANALYTICS_EXPORT_ENABLED")
    retention_days: int = Field(default=365, validation_alias="ANALYTICS_RETENTION_DAYS")


class CacheConfig(BaseSettings):
    """Redis cache settings for catalog data.

    TTLs are in seconds and keyed by catalog kind.
    """
    redis_url: str = Field(default="redis://localhost:6379", validation_alias="REDIS_URL")
    enabled: bool = Field(default=True, validation_alias="CACHE_ENABLED")
    products_ttl: int = 30 * 60
    food_ttl: int = 15 * 60
    promocodes_ttl: int = 60 * 60
    maps_ttl: int = 24 * 60 * 60

    def ttl_for(self, kind: str) -> int:
        """Return TTL for a cache kind, defaulting to one hour."""
        return {
            "products": self.products_ttl,
            "food": self.food_ttl,
            "restaurants": self.food_ttl,
            "food_deals": self.food_ttl,
            "promocodes": self.promocodes_ttl,
            "all_promocodes": self.promocodes_ttl,
            "maps": self.maps_ttl,
            "stores": self.maps_ttl,
        }.get(kind, 3600)


class BackendConfig(BaseSettings):
    """Remote deals/coupon backend connection settings."""
    base_url: str = Field(default="http://localhost:8080/api", validation_alias="DEALS_API_URL")
    api_key: str | None = Field(default=None, validation_alias="DEALS_API_KEY")
    timeout: int = Field(default=15, validation_alias="DEALS_API_TIMEOUT")


class SyncConfig(BaseSettings):
    """Data synchronisation schedule."""
    interval_minutes: float = Field(default=30, validation_alias="SYNC_INTERVAL_MINUTES")


class ServerConfig(BaseSettings):
    """Tracking server (redirects, postbacks, /health, /stats) settings.

    Attributes:
        host: Interface to bind.
        port: Port to bind.
        memory_limit_mb: Memory limit reported as total on /health.
    """
    host: str = Field(default="0.0.0.0", validation_alias="TRACKING_HOST")
    port: int = Field(default=3000, validation_alias="TRACKING_PORT")
    memory_limit_mb: int = Field(default=512, validation_alias="MEMORY_LIMIT_MB")


class MonitorConfig(BaseSettings):
    """Bot monitor settings."""
    base_url: str = Field(default="http://localhost:3000", validation_alias="MONITOR_URL")
    interval: float = Field(default=30, validation_alias="MONITOR_INTERVAL")
    resources_interval: float = Field(default=60, validation_alias="MONITOR_RESOURCES_INTERVAL")
    export_path: str = Field(default="logs/metrics.json", validation_alias="MONITOR_EXPORT_PATH")
    request_timeout: float = 5.0


class ServiceTarget(BaseModel):
    """HTTP service probed by the health check."""

    name: str
    url: str
    port: int
    critical: bool


class HealthCheckConfig(BaseSettings):
    """Ports of the services probed by the health check."""
    api_gateway_port: int = Field(default=8080, validation_alias="API_GATEWAY_PORT")
    bot_port: int = Field(default=3000, validation_alias="BOT_HEALTH_PORT")
    admin_panel_port: int = Field(default=3010, validation_alias="ADMIN_PANEL_PORT")
    dashboard_port: int = Field(default=3020, validation_alias="DASHBOARD_PORT")
    host: str = Field(default="localhost", validation_alias="HEALTH_CHECK_HOST")
    timeout: float = 5.0

    @property
    def services(self) -> list[ServiceTarget]:
        """Build the list of probed services from the configured ports."""
        targets = [
            ("API Gateway", self.api_gateway_port, True),
            ("Telegram Bot", self.bot_port, True),
            ("Admin Panel", self.admin_panel_port, False),
            ("Business Dashboard", self.dashboard_port, False),
        ]
        return [
            ServiceTarget(
                name=name,
                url=f"http://{self.host}:{port}/health",
                port=port,
                critical=critical,
            )
            for name, port, critical in targets
        ]


class Config:
    """Application configuration manager.

    Centralizes loading and management of all configuration sources including
    environment variables, YAML files, and default values. Provides typed
    access to configuration sections for different application components.
    """

    def __init__(self, config_dir: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_dir: Path to configuration directory, defaults to bazaarguru/config.
        """
        if config_dir is None:
            config_dir = Path(__file__).parent / "config"

        self.config_dir = Path(config_dir)

        self.bot = BotConfig()
        self.affiliate = AffiliateConfig()
        self.analytics = AnalyticsConfig()
        self.cache = CacheConfig()
        self.backend = BackendConfig()
        self.sync = SyncConfig()
        self.server = ServerConfig()
        self.monitor = MonitorConfig()
        self.health = HealthCheckConfig()

        catalog_data = self._load_yaml("catalog.yml")
        self.categories: list[str] = catalog_data.get("categories", DEFAULT_CATEGORIES)
        self.locations: dict[str, dict[str, float]] = catalog_data.get(
            "locations", DEFAULT_LOCATIONS
        )

        self.stores: list[dict[str, Any]] = self._load_yaml("stores.yml").get("stores", [])

    def _load_yaml(self, filename: str) -> dict[str, Any]:
        """Load a YAML file from the configuration directory.

        Returns:
            Parsed mapping, empty when the file does not exist.
        """
        path = self.config_dir / filename
        if not path.exists():
            return {}

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        return data or {}

    @property
    def default_category(self) -> str:
        """First configured catalog category."""
        return self.categories[0] if self.categories else "electronics"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for an entry point.

    Args:
        level: Level name, defaults to the LOG_LEVEL environment variable or INFO.
    """
    logging.basicConfig(
        format="%(asctime)s - %(levelname)s - %(message)s",
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
    )


# Global configuration instance
config = Config()
