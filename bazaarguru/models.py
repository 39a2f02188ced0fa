"""Data models for the bazaarGuru deals bot.

Defines Pydantic models for all data structures used throughout the application
including affiliate stores, links, clicks and conversions, catalog entries from
the deals backend, bot usage analytics, and operational tooling results. All
models include validation and type checking.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

LinkType = Literal["coupon", "offer", "direct"]
LinkSource = Literal["personal_channel", "group", "ai_recommendation", "search"]


class AffiliateStore(BaseModel):
    """Store enrolled in an affiliate network.

    Attributes:
        id: Store identifier.
        name: Display name.
        domain: Bare shop domain, subdomains are matched too.
        affiliate_network: Network the store is enrolled through.
        tracking_template: Redirect template with {original_url}, {sub_id},
            {link_type} and {domain} placeholders.
        sub_id_parameter: Query parameter carrying the SubID.
        commission_rate: Commission in percent of the order value.
        cookie_duration: Attribution window in days.
        is_active: Whether new links may be generated.
        supported_countries: ISO country codes.
        link_formats: URL templates per link type.
        custom_parameters: Extra query parameters, {sub_id} is substituted.
    """

    id: str
    name: str
    domain: str
    affiliate_network: str = ""
    tracking_template: str
    sub_id_parameter: str = "subid"
    commission_rate: Decimal = Decimal("0")
    cookie_duration: int = 30
    is_active: bool = True
    supported_countries: list[str] = Field(default_factory=list)
    link_formats: dict[str, str] = Field(default_factory=dict)
    custom_parameters: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class LinkMetadata(BaseModel):
    """Campaign metadata attached to an affiliate link."""

    campaign_id: str | None = None
    medium: str | None = None
    content: str | None = None
    term: str | None = None
    custom_params: dict[str, str] = Field(default_factory=dict)


class AffiliateLink(BaseModel):
    """Generated affiliate link bound to one SubID."""

    id: int | None = None
    original_url: str
    affiliate_url: str
    short_url: str | None = None
    short_code: str | None = None
    telegram_sub_id: str
    user_id: str
    coupon_id: str | None = None
    store_id: str
    store_name: str
    link_type: LinkType
    source: LinkSource
    metadata: LinkMetadata = Field(default_factory=LinkMetadata)
    is_active: bool = True
    expires_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the attribution window has passed."""
        if self.expires_at is None:
            return False
        return (now or datetime.now()) > self.expires_at


class ConversionData(BaseModel):
    """Conversion state of a click."""

    converted: bool = False
    order_id: str | None = None
    order_value: Decimal | None = None
    commission: Decimal | None = None
    conversion_time: datetime | None = None


class DeviceInfo(BaseModel):
    """Client device details captured on click."""

    platform: str | None = None
    browser: str | None = None
    is_mobile: bool | None = None
    country: str | None = None
    city: str | None = None


class LinkClick(BaseModel):
    """Single click on an affiliate link."""

    id: int | None = None
    affiliate_link_id: int
    user_id: str
    telegram_sub_id: str
    ip_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    clicked_at: datetime = Field(default_factory=datetime.now)
    session_id: str | None = None
    device_info: DeviceInfo = Field(default_factory=DeviceInfo)
    conversion_data: ConversionData = Field(default_factory=ConversionData)


class SubIdMapping(BaseModel):
    """Owner and origin of a SubID."""

    telegram_sub_id: str
    user_id: str
    channel_id: str | None = None
    source: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)
    last_used_at: datetime | None = None


class AttributedConversion(ConversionData):
    """Conversion data recorded on the traffic attribution row."""

    attribution_model: Literal["first_click", "last_click", "linear", "time_decay"] = (
        "last_click"
    )


class TrafficAttribution(BaseModel):
    """Aggregated traffic of one SubID."""

    id: int | None = None
    telegram_sub_id: str
    user_id: str
    affiliate_link_id: int
    click_id: int
    source: str
    medium: str = "bot"
    campaign: str | None = None
    content: str | None = None
    term: str | None = None
    first_click: datetime
    last_click: datetime
    click_count: int = 1
    conversion_data: AttributedConversion | None = None


class TopLink(BaseModel):
    """Performance of a single link in user statistics."""

    link_id: int
    store_name: str
    link_type: str
    source: str
    clicks: int = 0
    conversions: int = 0
    commission: Decimal = Decimal("0")
    conversion_rate: str = "0.00"


class LinkStats(BaseModel):
    """Aggregated affiliate statistics for a user."""

    period: str
    total_clicks: int = 0
    unique_links: int = 0
    conversions: int = 0
    conversion_rate: str = "0.00"
    average_order_value: Decimal = Decimal("0")
    total_commission: Decimal = Decimal("0")
    top_performing_links: list[TopLink] = Field(default_factory=list)


class Deal(BaseModel):
    """Product deal from the deals backend.

    Attributes:
        id: Backend identifier.
        title: Product title.
        url: Product page URL in the store.
        store: Store display name.
        price: Sale price in INR.
        original_price: List price in INR.
        category: Catalog category.
        image_url: Product image for rich messages.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    title: str
    url: str
    store: str | None = None
    price: Decimal | None = None
    original_price: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("original_price", "originalPrice")
    )
    category: str | None = None
    image_url: str | None = Field(
        default=None, validation_alias=AliasChoices("image_url", "imageUrl")
    )

    @property
    def discount_percent(self) -> int:
        """Discount in whole percent, 0 when prices are unknown."""
        if not self.price or not self.original_price or self.original_price <= 0:
            return 0
        discount = (self.original_price - self.price) / self.original_price * 100
        return int(discount.to_integral_value(rounding=ROUND_HALF_UP))


class Promocode(BaseModel):
    """Coupon code from the deals backend."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    code: str
    store: str
    description: str = ""
    discount: str | None = None
    category: str | None = None
    url: str | None = None
    expiry_date: datetime | None = Field(
        default=None, validation_alias=AliasChoices("expiry_date", "expiryDate")
    )


class BotInteraction(BaseModel):
    """Analytics row for a bot interaction.

    Attributes:
        user_id: Telegram user ID.
        username: Telegram username (if available).
        timestamp: When the interaction happened.
        action: Interaction kind ('command', 'button', 'callback', 'link').
        name: Command, button or store name.
        success: Whether the interaction completed successfully.
        processing_time_ms: Handler processing time.
        error_message: Error details if the interaction failed.
    """

    user_id: int
    username: str | None = None
    timestamp: datetime = Field(default_factory=datetime.now)
    action: str
    name: str
    success: bool = True
    processing_time_ms: int | None = None
    error_message: str | None = None


class ServiceHealth(BaseModel):
    """Result of probing an HTTP service."""

    name: str
    status: Literal["healthy", "unhealthy", "unreachable", "timeout"]
    port: int
    critical: bool
    status_code: int | None = None
    response: dict[str, Any] | None = None
    error: str | None = None


class DependencyHealth(BaseModel):
    """Result of probing an infrastructure dependency."""

    name: str
    check: str
    status: Literal["healthy", "unhealthy", "unknown"]
    critical: bool
    error: str | None = None


class Alert(BaseModel):
    """Monitor alert."""

    level: Literal["CRITICAL", "WARNING", "INFO"]
    title: str
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)


class StressStepResult(BaseModel):
    """Outcome of one stress test step."""

    concurrency: int
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    success_rate: float = 0.0
    requests_per_second: float = 0.0
    avg_response_time: float = 0.0
    min_response_time: float = 0.0
    max_response_time: float = 0.0
    errors: dict[str, int] = Field(default_factory=dict)
    status_codes: dict[str, int] = Field(default_factory=dict)


class SyncReport(BaseModel):
    """Summary of a full data sync run."""

    started_at: datetime = Field(default_factory=datetime.now)
    duration_ms: int = 0
    products: int = 0
    restaurants: int = 0
    food_deals: int = 0
    stores: int = 0
    promocodes: int = 0
    active_promocodes: int = 0
    errors: list[str] = Field(default_factory=list)
