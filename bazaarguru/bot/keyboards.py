"""Main menu keyboards.

The menu is defined once and rendered both as the persistent reply keyboard
and as the inline keyboard attached to menu messages. A reply button and its
inline twin resolve to the same action id.
"""

from typing import Final

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, ReplyKeyboardMarkup

MAIN_MENU: Final[tuple[tuple[tuple[str, str], ...], ...]] = (
    (("🔍 Find Deals", "find_deals"), ("🎮 My Profile", "profile"), ("📖 Guide", "guide")),
    (("💰 Cashback", "cashback"), ("🎲 Random Deal", "random_deal"), ("🧠 Ask Zabardoo", "ask")),
    (("⚙️ Settings", "settings"), ("🌐 Language", "language"), ("🆘 Help", "help")),
)

BUTTON_ACTIONS: Final[dict[str, str]] = {
    label: action for row in MAIN_MENU for label, action in row
}
MENU_ACTIONS: Final[frozenset[str]] = frozenset(BUTTON_ACTIONS.values())


def main_reply_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        [[label for label, _ in row] for row in MAIN_MENU],
        resize_keyboard=True,
        one_time_keyboard=False,
    )


def main_inline_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [InlineKeyboardButton(label, callback_data=action) for label, action in row]
            for row in MAIN_MENU
        ]
    )


def action_for_text(text: str | None) -> str | None:
    """Return the menu action of a reply keyboard label, if any."""
    if not text:
        return None
    return BUTTON_ACTIONS.get(text.strip())
