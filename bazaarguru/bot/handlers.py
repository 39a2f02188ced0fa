"""Telegram bot handlers.

Commands, main menu buttons, inline callbacks, pasted shop links and admin
analytics commands. Reply keyboard buttons and their inline twins are routed
through ``render_action`` so both produce the same answer.
"""

import asyncio
import logging
import os
import time
from datetime import datetime
from html import escape

from telegram import Update
from telegram.constants import ChatType
from telegram.error import BadRequest
from telegram.ext import ContextTypes

from ..config import config
from ..exceptions import AffiliateError, InvalidURLError, StoreNotFoundError
from ..models import AffiliateLink, Deal
from ..services.affiliate import affiliate_service
from ..services.analytics import analytics_service
from ..services.catalog import get_catalog_service
from ..services.runtime import runtime_stats
from . import messages
from .analytics_tracker import analytics_tracker
from .keyboards import MENU_ACTIONS, action_for_text, main_inline_keyboard, main_reply_keyboard
from .url_processor import url_processor

logger = logging.getLogger(__name__)

DEALS_PER_PAGE = 5
PROMOCODES_PER_PAGE = 3
MY_LINKS_LIMIT = 10


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _store_names() -> str:
    return ", ".join(store["name"] for store in config.stores)


async def _wrap_deal(user_id: int, deal: Deal, source: str) -> AffiliateLink | None:
    """Personal affiliate link for a deal, or None when no store covers it."""
    try:
        return await asyncio.to_thread(
            affiliate_service.generate_link_for_url, str(user_id), deal.url, source=source
        )
    except (StoreNotFoundError, InvalidURLError):
        return None
    except AffiliateError as e:
        logger.warning(f"Could not wrap deal {deal.id}: {e}")
        return None


async def render_deals(user_id: int, category: str) -> str:
    """Top deals and coupons of a category with personal links."""
    catalog = await get_catalog_service()
    deals = await catalog.get_deals(category, limit=DEALS_PER_PAGE)
    if not deals:
        return messages.DEALS_EMPTY.format(
            category=category, categories=", ".join(config.categories)
        )

    blocks = [messages.DEALS_HEADER.format(category=category)]
    for deal in deals:
        blocks.append(messages.format_deal(deal, await _wrap_deal(user_id, deal, "search")))

    codes = await catalog.get_promocode_models(category)
    if codes:
        blocks.append(messages.PROMOCODES_HEADER)
        blocks.extend(messages.format_promocode(code) for code in codes[:PROMOCODES_PER_PAGE])

    return "\n\n".join(blocks)


async def render_random_deal(user_id: int) -> str:
    catalog = await get_catalog_service()
    deal = await catalog.get_random_deal()
    if deal is None:
        return messages.RANDOM_EMPTY
    link = await _wrap_deal(user_id, deal, "ai_recommendation")
    return messages.RANDOM_HEADER + "\n" + messages.format_deal(deal, link)


async def render_action(action: str, user_id: int) -> str:
    """Answer text for a main menu action.

    Args:
        action: Menu action id from the keyboard.
        user_id: Telegram user ID the answer is personalised for.

    Returns:
        HTML formatted message text.
    """
    if action == "find_deals":
        return await render_deals(user_id, config.default_category)
    if action == "random_deal":
        return await render_random_deal(user_id)
    if action in ("profile", "cashback"):
        stats = await asyncio.to_thread(affiliate_service.get_user_link_stats, str(user_id))
        if action == "profile":
            return messages.format_profile(stats)
        return messages.format_cashback(stats)
    if action == "guide":
        return messages.GUIDE_MESSAGE
    if action == "ask":
        return messages.ASK_MESSAGE
    if action == "settings":
        return messages.SETTINGS_MESSAGE
    if action == "language":
        return messages.LANGUAGE_MESSAGE
    return messages.HELP_MESSAGE.format(categories=", ".join(config.categories))


async def count_update(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Count every incoming update for the runtime stats."""
    runtime_stats.messages_processed += 1


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start command.

    Sends the welcome message with the reply keyboard, then the inline menu.
    """
    message = update.effective_message
    user = update.effective_user
    if message is None:
        return

    first_name = escape(user.first_name) if user else "friend"
    await message.reply_text(
        messages.START_MESSAGE.format(first_name=first_name, stores=_store_names()),
        parse_mode=messages.PARSE_MODE,
        reply_markup=main_reply_keyboard(),
    )
    await message.reply_text(
        messages.MENU_PROMPT,
        parse_mode=messages.PARSE_MODE,
        reply_markup=main_inline_keyboard(),
    )

    if user:
        analytics_tracker.log_command_usage(
            user_id=user.id,
            username=user.username,
            command="start",
        )


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command."""
    message = update.effective_message
    if message is None:
        return

    await message.reply_text(
        messages.HELP_MESSAGE.format(categories=", ".join(config.categories)),
        parse_mode=messages.PARSE_MODE,
        reply_markup=main_inline_keyboard(),
    )

    if update.effective_user:
        analytics_tracker.log_command_usage(
            user_id=update.effective_user.id,
            username=update.effective_user.username,
            command="help",
        )


async def deals(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /deals [category] command."""
    message = update.effective_message
    user = update.effective_user
    if message is None or user is None:
        return

    started = time.monotonic()
    category = context.args[0].lower() if context.args else config.default_category
    if category not in config.categories:
        await message.reply_text(
            messages.DEALS_UNKNOWN_CATEGORY.format(
                category=escape(category), categories=", ".join(config.categories)
            ),
            parse_mode=messages.PARSE_MODE,
        )
        analytics_tracker.log_command_usage(user.id, user.username, "deals", success=False)
        return

    text = await render_deals(user.id, category)
    await message.reply_text(
        text, parse_mode=messages.PARSE_MODE, disable_web_page_preview=True
    )
    analytics_tracker.log_command_usage(
        user.id, user.username, "deals", processing_time_ms=_elapsed_ms(started)
    )


async def random_deal(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /random command."""
    message = update.effective_message
    user = update.effective_user
    if message is None or user is None:
        return

    started = time.monotonic()
    await message.reply_text(
        await render_random_deal(user.id),
        parse_mode=messages.PARSE_MODE,
        disable_web_page_preview=True,
    )
    analytics_tracker.log_command_usage(
        user.id, user.username, "random", processing_time_ms=_elapsed_ms(started)
    )


async def my_links(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /mylinks command."""
    message = update.effective_message
    user = update.effective_user
    if message is None or user is None:
        return

    links = await asyncio.to_thread(
        affiliate_service.get_user_links, str(user.id), limit=MY_LINKS_LIMIT
    )
    await message.reply_text(
        messages.format_link_list(links),
        parse_mode=messages.PARSE_MODE,
        disable_web_page_preview=True,
    )
    analytics_tracker.log_command_usage(user.id, user.username, "mylinks")


async def link_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /link <url> command."""
    message = update.effective_message
    user = update.effective_user
    if message is None or user is None:
        return

    urls = url_processor.extract_urls(" ".join(context.args or []))
    if not urls:
        await message.reply_text(messages.LINK_USAGE, parse_mode=messages.PARSE_MODE)
        return

    await _reply_with_links(update, urls, "search", None)
    analytics_tracker.log_command_usage(user.id, user.username, "link")


def _link_source(update: Update) -> tuple[str, str | None]:
    """Link source and channel id derived from the chat the URL came from."""
    chat = update.effective_chat
    if chat is None:
        return "search", None
    if chat.type == ChatType.CHANNEL:
        return "personal_channel", str(chat.id)
    if chat.type in (ChatType.GROUP, ChatType.SUPERGROUP):
        return "group", str(chat.id)
    return "search", None


async def _reply_with_links(
    update: Update, urls: list[str], source: str, channel_id: str | None
) -> None:
    message = update.effective_message
    if message is None:
        return

    user = update.effective_user
    chat = update.effective_chat
    if user is not None:
        user_id, username = user.id, user.username
    else:
        user_id, username = (chat.id if chat else 0), None

    result = url_processor.match_stores(urls)

    for matched in result["matched"]:
        started = time.monotonic()
        try:
            link = await asyncio.to_thread(
                affiliate_service.generate_link_for_url,
                str(user_id), matched["url"], source=source, channel_id=channel_id,
            )
        except AffiliateError as e:
            logger.warning(f"Affiliate link generation failed for {matched['url']}: {e}")
            analytics_tracker.log_link_generation(
                user_id, username, matched["store"].name, False, _elapsed_ms(started), str(e)
            )
            await message.reply_text(messages.LINK_INVALID_URL)
            continue

        await message.reply_text(
            messages.format_affiliate_link(link),
            parse_mode=messages.PARSE_MODE,
            disable_web_page_preview=True,
        )
        analytics_tracker.log_link_generation(
            user_id, username, link.store_name, True, _elapsed_ms(started)
        )

    for host in result["unsupported_hosts"]:
        await message.reply_text(
            messages.LINK_UNSUPPORTED_STORE.format(host=escape(host), stores=_store_names()),
            parse_mode=messages.PARSE_MODE,
        )
        analytics_tracker.log_link_generation(
            user_id, username, host, False, 0, "unsupported_store"
        )


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle free text: main menu buttons and pasted shop URLs."""
    message = update.effective_message
    if message is None:
        return

    text = message.text or message.caption or ""
    user = update.effective_user

    action = action_for_text(text)
    if action is not None and user is not None:
        started = time.monotonic()
        await message.reply_text(
            await render_action(action, user.id),
            parse_mode=messages.PARSE_MODE,
            disable_web_page_preview=True,
            reply_markup=main_inline_keyboard(),
        )
        analytics_tracker.log_button_press(
            user.id, user.username, action, via_callback=False,
            processing_time_ms=_elapsed_ms(started),
        )
        return

    urls = url_processor.extract_urls(text)
    if urls:
        source, channel_id = _link_source(update)
        await _reply_with_links(update, urls, source, channel_id)
        return

    chat = update.effective_chat
    if chat is not None and chat.type == ChatType.PRIVATE:
        await message.reply_text(messages.UNKNOWN_INPUT, reply_markup=main_reply_keyboard())


async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle inline menu presses by editing the menu message in place."""
    query = update.callback_query
    if query is None:
        return

    await query.answer()

    action = query.data
    if action not in MENU_ACTIONS:
        logger.warning(f"Unknown callback data: {action}")
        return

    started = time.monotonic()
    text = await render_action(action, query.from_user.id)
    try:
        await query.edit_message_text(
            text,
            parse_mode=messages.PARSE_MODE,
            disable_web_page_preview=True,
            reply_markup=main_inline_keyboard(),
        )
    except BadRequest as e:
        # Pressing the same button twice leaves the text unchanged
        if "not modified" not in str(e).lower():
            raise

    analytics_tracker.log_button_press(
        query.from_user.id, query.from_user.username, action, via_callback=True,
        processing_time_ms=_elapsed_ms(started),
    )


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log handler errors and ask the user to retry."""
    logger.error("Exception while handling an update", exc_info=context.error)
    runtime_stats.errors += 1

    if isinstance(update, Update) and update.effective_message:
        try:
            await update.effective_message.reply_text(messages.ERROR_GENERIC)
        except Exception as e:
            logger.error(f"Failed to send error message: {e}")


# === ADMIN COMMANDS ===


async def analytics_daily(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /analytics_daily command for admin."""
    if not _check_admin_permissions(update):
        return

    message = update.message
    if message is None:
        return

    try:
        stats = analytics_service.get_daily_stats(days=1)
        response = messages.format_analytics(stats, "Statistics for today")
        await message.reply_text(response, parse_mode=messages.PARSE_MODE)

    except Exception as e:
        logger.error(f"Error getting daily analytics: {e}")
        await message.reply_text("❌ Error while loading statistics")


async def analytics_week(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /analytics_week command for admin."""
    if not _check_admin_permissions(update):
        return

    message = update.message
    if message is None:
        return

    try:
        stats = analytics_service.get_daily_stats(days=7)
        response = messages.format_analytics(stats, "Statistics for the week")
        await message.reply_text(response, parse_mode=messages.PARSE_MODE)

    except Exception as e:
        logger.error(f"Error getting weekly analytics: {e}")
        await message.reply_text("❌ Error while loading statistics")


async def analytics_user(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /analytics_user command for admin."""
    if not _check_admin_permissions(update):
        return

    message = update.message
    if message is None:
        return

    if not context.args or len(context.args) != 1:
        await message.reply_text("❌ Usage: /analytics_user <user_id>")
        return

    try:
        user_id = int(context.args[0])
        stats = analytics_service.get_user_stats(user_id, days=30)

        if not stats.get("total_interactions"):
            await message.reply_text(f"❌ No data for user {user_id}")
            return

        await message.reply_text(
            messages.format_user_analytics(stats), parse_mode=messages.PARSE_MODE
        )

    except ValueError:
        await message.reply_text("❌ Invalid user_id")
    except Exception as e:
        logger.error(f"Error getting user analytics: {e}")
        await message.reply_text("❌ Error while loading statistics")


async def analytics_export(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /analytics_export command for admin."""
    if not _check_admin_permissions(update):
        return

    message = update.message
    if message is None:
        return

    days = None
    if context.args and len(context.args) == 1:
        try:
            days = int(context.args[0])
        except ValueError:
            await message.reply_text("❌ Invalid number of days")
            return

    try:
        filename = f"analytics_export_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"
        success = analytics_service.export_to_csv(filename, days)

        if success:
            try:
                with open(filename, "rb") as f:
                    await message.reply_document(
                        document=f,
                        filename=filename,
                        caption=f"📊 Analytics export for {days or 'all'} days",
                    )
            finally:
                os.remove(filename)
        else:
            await message.reply_text("❌ Error while exporting data")

    except Exception as e:
        logger.error(f"Error exporting analytics: {e}")
        await message.reply_text("❌ Error while exporting data")


async def cleanup_links(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /cleanup_links: deactivate expired links and prune old analytics."""
    if not _check_admin_permissions(update):
        return

    message = update.message
    if message is None:
        return

    try:
        expired = await asyncio.to_thread(affiliate_service.cleanup_expired_links)
        pruned = analytics_service.cleanup_old_records()
        await message.reply_text(
            f"🧹 Deactivated {expired} expired links, removed {pruned} old analytics records"
        )

    except Exception as e:
        logger.error(f"Error cleaning up links: {e}")
        await message.reply_text("❌ Error while cleaning up")


# === HELPER FUNCTIONS ===


def _check_admin_permissions(update: Update) -> bool:
    """Check if user has admin permissions.

    Args:
        update: Telegram update object.

    Returns:
        True if user is admin, False otherwise.
    """
    if not update.effective_user or not update.message:
        return False

    if not config.bot.admin_chat_id:
        return False

    return update.effective_user.id == config.bot.admin_chat_id
