"""Apply the bot command list and menu button once."""

import asyncio
import logging
import sys

from telegram import Bot
from telegram.error import TelegramError

from ..bot.menu_setup import setup_menu
from ..config import config, configure_logging

logger = logging.getLogger(__name__)


async def run() -> int:
    try:
        async with Bot(config.bot.bot_token) as bot:
            await setup_menu(bot)
    except TelegramError as e:
        logger.error(f"Menu setup failed: {e}")
        return 1
    print("Bot menu configured")
    return 0


def main() -> None:
    configure_logging()
    if not config.bot.bot_token:
        logger.error("Set TELEGRAM_BOT_TOKEN environment variable")
        sys.exit(1)
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
