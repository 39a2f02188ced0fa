"""Bot command list and chat menu button."""

import logging

from telegram import Bot, BotCommand, MenuButtonCommands

logger = logging.getLogger(__name__)

PUBLIC_COMMANDS = (
    BotCommand("start", "Main menu"),
    BotCommand("deals", "Top deals in a category"),
    BotCommand("random", "A random deal"),
    BotCommand("mylinks", "Your affiliate links"),
    BotCommand("link", "Cashback link for a product URL"),
    BotCommand("help", "How to use the bot"),
)


async def setup_menu(bot: Bot) -> None:
    """Publish the public commands and show them behind the menu button."""
    await bot.set_my_commands(list(PUBLIC_COMMANDS))
    await bot.set_chat_menu_button(menu_button=MenuButtonCommands())
    logger.info(f"Bot menu configured with {len(PUBLIC_COMMANDS)} commands")
