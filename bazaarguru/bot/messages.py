"""Telegram bot message templates and constants.

Contains all user-facing message templates, error messages and formatting
helpers for bot responses. Messages are sent with HTML parse mode because
SubIDs and affiliate URLs contain underscores.
"""

from html import escape

from ..models import AffiliateLink, Deal, LinkStats, Promocode

PARSE_MODE = "HTML"

START_MESSAGE = (
    "🎉 Welcome to bazaarGuru, {first_name}! 🛍️\n\n"
    "🇮🇳 Your shopping companion for the best deals from top Indian stores.\n\n"
    "✨ <b>What I can do for you:</b>\n"
    "• 🔍 Find products with live prices\n"
    "• 💰 Earn cashback through personal links\n"
    "• 🎟️ Share working coupon codes\n"
    "• 🎲 Surprise you with a random deal\n\n"
    "🏪 <b>Supported stores:</b> {stores}\n\n"
    "💡 Paste any product link from these stores and I will turn it into your "
    "personal cashback link. Use the menu below to get started!"
)

MENU_PROMPT = "📋 <b>Main menu</b>\nChoose an option:"

HELP_MESSAGE = (
    "🆘 <b>Help</b>\n\n"
    "/start - main menu\n"
    "/deals [category] - top deals in a category\n"
    "/random - a random deal\n"
    "/mylinks - your affiliate links\n"
    "/link &lt;url&gt; - personal cashback link for a product\n"
    "/help - this message\n\n"
    "Categories: {categories}"
)

GUIDE_MESSAGE = (
    "📖 <b>How bazaarGuru works</b>\n\n"
    "1. Find a product with 🔍 Find Deals or paste a store link.\n"
    "2. Open the personal link I send you and buy as usual.\n"
    "3. The store pays a commission for your order and you see it in 💰 Cashback.\n\n"
    "Links stay valid for the store's cookie period."
)

ASK_MESSAGE = (
    "🧠 <b>Ask Zabardoo</b>\n\n"
    "Send me a product link from a supported store, or use /deals &lt;category&gt; "
    "to see what is hot right now."
)

SETTINGS_MESSAGE = (
    "⚙️ <b>Settings</b>\n\n"
    "Notifications: on\n"
    "Region: India 🇮🇳\n"
    "Currency: INR (₹)"
)

LANGUAGE_MESSAGE = "🌐 <b>Language</b>\n\nbazaarGuru currently speaks English 🇬🇧."

DEALS_HEADER = "🔥 <b>Top deals in {category}</b>\n"
DEALS_EMPTY = "😔 No deals in <b>{category}</b> right now. Try another category: {categories}"
DEALS_UNKNOWN_CATEGORY = "❓ Unknown category <b>{category}</b>. Available: {categories}"
RANDOM_HEADER = "🎲 <b>Random deal</b>\n"
RANDOM_EMPTY = "😔 No deals available right now. Please try again later."
PROMOCODES_HEADER = "\n🎟️ <b>Coupons</b>"

PROFILE_MESSAGE = (
    "🎮 <b>My Profile</b> ({period})\n\n"
    "🔗 Links clicked: {unique_links}\n"
    "👆 Clicks: {total_clicks}\n"
    "🛒 Orders: {conversions}\n"
    "📈 Conversion rate: {conversion_rate}%"
)

CASHBACK_MESSAGE = (
    "💰 <b>Cashback</b> ({period})\n\n"
    "Total commission: ₹{total_commission}\n"
    "Average order: ₹{average_order_value}"
)

MY_LINKS_HEADER = "🔗 <b>Your links</b>\n"
MY_LINKS_EMPTY = "You have no active links yet. Paste a product link to create one."

LINK_USAGE = "Usage: /link &lt;product url&gt;"
LINK_UNSUPPORTED_STORE = (
    "😔 <b>{host}</b> is not a partner store yet. Supported stores: {stores}"
)
LINK_INVALID_URL = "❌ This does not look like a valid product link."

ERROR_GENERIC = "❌ Sorry, something went wrong. Please try again."
UNKNOWN_INPUT = "🤔 I did not get that. Paste a product link or use the menu below."


def format_price(value) -> str:
    return f"₹{value:,.0f}" if value is not None else "n/a"


def format_deal(deal: Deal, link: AffiliateLink | None = None) -> str:
    """Render one deal, linking to the personal affiliate URL when present."""
    url = (link.short_url or link.affiliate_url) if link else deal.url
    lines = [f"<b>{escape(deal.title)}</b>"]
    price_line = f"💵 {format_price(deal.price)}"
    if deal.original_price and deal.discount_percent > 0:
        price_line += f" <s>{format_price(deal.original_price)}</s> (-{deal.discount_percent}%)"
    lines.append(price_line)
    if deal.store:
        lines.append(f"🏪 {escape(deal.store)}")
    lines.append(f'<a href="{escape(url, quote=True)}">🛒 Buy now</a>')
    return "\n".join(lines)


def format_promocode(code: Promocode) -> str:
    text = f"• <code>{escape(code.code)}</code> - {escape(code.store)}"
    if code.description:
        text += f": {escape(code.description)}"
    return text


def format_affiliate_link(link: AffiliateLink) -> str:
    text = (
        f"✅ <b>Your {escape(link.store_name)} cashback link</b>\n"
        f"{escape(link.short_url or link.affiliate_url)}"
    )
    if link.expires_at:
        text += f"\n\n<i>Valid until {link.expires_at:%d %b %Y}</i>"
    return text


def format_profile(stats: LinkStats) -> str:
    return PROFILE_MESSAGE.format(
        period=stats.period,
        unique_links=stats.unique_links,
        total_clicks=stats.total_clicks,
        conversions=stats.conversions,
        conversion_rate=stats.conversion_rate,
    )


def format_cashback(stats: LinkStats) -> str:
    text = CASHBACK_MESSAGE.format(
        period=stats.period,
        total_commission=stats.total_commission,
        average_order_value=stats.average_order_value,
    )
    if stats.top_performing_links:
        text += "\n\n🏆 <b>Top links</b>"
        for top in stats.top_performing_links[:5]:
            text += (
                f"\n• {escape(top.store_name)} ({top.link_type}): {top.clicks} clicks, "
                f"{top.conversions} orders, ₹{top.commission}"
            )
    return text


def format_link_list(links: list[AffiliateLink]) -> str:
    if not links:
        return MY_LINKS_EMPTY
    lines = [MY_LINKS_HEADER]
    for link in links:
        lines.append(
            f"• {escape(link.store_name)}: {escape(link.short_url or link.affiliate_url)}"
        )
    return "\n".join(lines)


def format_analytics(stats: dict, title: str) -> str:
    """Format bot usage statistics for admins."""
    if not stats:
        return "❌ Could not load statistics"

    message = f"📊 <b>{escape(title)}</b>\n\n"
    message += f"💬 Interactions: {stats['total_interactions']}\n"
    message += f"✅ Successful: {stats['successful_interactions']}\n"
    message += f"📈 Success rate: {stats['success_rate']:.1%}\n"
    message += f"👥 Unique users: {stats['unique_users']}\n"
    message += f"⏱️ Average time: {stats['avg_processing_time_ms']:.0f}ms\n\n"

    if stats.get("top_interactions"):
        message += "<b>Top interactions:</b>\n"
        for key, count in stats["top_interactions"].items():
            message += f"• {escape(key)}: {count}\n"
    else:
        message += "<b>Top interactions:</b> no data\n"

    return message


def format_user_analytics(stats: dict) -> str:
    message = f"📊 <b>User {stats['user_id']}</b>"
    if stats.get("username"):
        message += f" (@{escape(stats['username'])})"
    message += "\n\n"
    message += f"💬 Interactions: {stats['total_interactions']}\n"
    message += f"📈 Success rate: {stats['success_rate']:.1%}\n"
    message += f"🕐 First seen: {stats['first_seen']}\n"
    message += f"🕐 Last seen: {stats['last_seen']}\n"
    for key, count in stats["actions"].items():
        message += f"• {escape(key)}: {count}\n"
    return message
