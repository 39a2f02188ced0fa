"""Application entry point.

Main module that initializes and runs the Telegram bot application together
with the click tracking server. Handles both webhook mode (production) and
polling mode (local development) and registers bot handlers for commands,
menu buttons, callbacks and pasted shop links.
"""

import logging
import time

from aiohttp import web
from telegram import Update
from telegram.error import NetworkError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    MessageHandler,
    TypeHandler,
    filters,
)

from .bot.handlers import (
    analytics_daily,
    analytics_export,
    analytics_user,
    analytics_week,
    cleanup_links,
    count_update,
    deals,
    error_handler,
    handle_callback,
    handle_message,
    help_command,
    link_command,
    my_links,
    random_deal,
    start,
)
from .bot.menu_setup import setup_menu
from .config import config, configure_logging
from .services.affiliate import affiliate_service
from .services.cache_service import shutdown_cache_service
from .services.catalog import get_catalog_service, shutdown_catalog_service
from .services.runtime import runtime_stats
from .web.server import start_tracking_server

logger = logging.getLogger(__name__)

_tracking_runner: web.AppRunner | None = None


async def initialize_resources(application: Application) -> None:
    """Initialize application resources."""
    global _tracking_runner

    runtime_stats.reset()
    affiliate_service.seed_stores(config.stores)

    try:
        _tracking_runner = await start_tracking_server()
    except OSError as e:
        logger.error(f"Tracking server failed to start: {e}")

    try:
        await setup_menu(application.bot)
    except Exception as e:
        logger.warning(f"Failed to set up bot menu: {e}")

    catalog = await get_catalog_service()
    if catalog.cache.connected:
        logger.info("Redis cache connected")
    else:
        logger.info("Redis cache unavailable, running without caching")


async def cleanup_resources(application: Application) -> None:
    """Cleanup application resources."""
    global _tracking_runner

    try:
        await shutdown_catalog_service()
        await shutdown_cache_service()
        logger.info("Catalog and cache services closed")

        if _tracking_runner is not None:
            await _tracking_runner.cleanup()
            _tracking_runner = None
            logger.info("Tracking server stopped")

    except Exception as e:
        logger.warning(f"Error during cleanup: {e}")


def build_application() -> Application:
    """Create the bot application with all handlers registered."""
    app = (
        Application.builder()
        .token(config.bot.bot_token)
        .post_init(initialize_resources)
        .post_shutdown(cleanup_resources)
        .build()
    )

    app.add_handler(TypeHandler(Update, count_update), group=-1)

    app.add_handler(CommandHandler("start", start))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("deals", deals))
    app.add_handler(CommandHandler("random", random_deal))
    app.add_handler(CommandHandler("mylinks", my_links))
    app.add_handler(CommandHandler("link", link_command))

    # Admin commands
    app.add_handler(CommandHandler("analytics_daily", analytics_daily))
    app.add_handler(CommandHandler("analytics_week", analytics_week))
    app.add_handler(CommandHandler("analytics_user", analytics_user))
    app.add_handler(CommandHandler("analytics_export", analytics_export))
    app.add_handler(CommandHandler("cleanup_links", cleanup_links))

    app.add_handler(CallbackQueryHandler(handle_callback))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))

    app.add_error_handler(error_handler)
    return app


def main() -> None:
    """Main application entry point.

    Starts the bot in webhook mode when WEBHOOK_URL is set, otherwise in
    long-polling mode. Network errors while starting to poll are retried
    after POLLING_RETRY_DELAY seconds.

    Raises:
        RuntimeError: If TELEGRAM_BOT_TOKEN environment variable is not set.
    """
    configure_logging()

    if not config.bot.bot_token:
        raise RuntimeError("Set TELEGRAM_BOT_TOKEN environment variable")

    if config.bot.use_webhook:
        app = build_application()
        path = f"/{config.bot.bot_token}"
        webhook_url = f"{config.bot.webhook_url.rstrip('/')}{path}"
        logger.info(f"Starting webhook on {config.bot.listen_host}:{config.bot.port}")
        app.run_webhook(
            listen=config.bot.listen_host,
            port=config.bot.port,
            url_path=path,
            webhook_url=webhook_url,
        )
        return

    logger.warning("No webhook URL configured; using long-polling")
    # The loop stays open so a rebuilt Application can reuse it.
    while True:
        try:
            build_application().run_polling(
                allowed_updates=Update.ALL_TYPES, close_loop=False
            )
            return
        except NetworkError as e:
            runtime_stats.errors += 1
            logger.error(
                f"Polling failed: {e}; retrying in {config.bot.polling_retry_delay}s"
            )
            time.sleep(config.bot.polling_retry_delay)


if __name__ == "__main__":
    main()
