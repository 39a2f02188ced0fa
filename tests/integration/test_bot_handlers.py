"""Integration tests for the Telegram handlers with a real affiliate database."""

import threading
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram import InlineKeyboardMarkup, ReplyKeyboardMarkup, Update
from telegram.error import BadRequest

from bazaarguru.bot import handlers, messages
from bazaarguru.bot.url_processor import URLProcessor
from bazaarguru.config import config
from bazaarguru.models import Deal, Promocode
from bazaarguru.services.runtime import runtime_stats

ADMIN_ID = 12345


@pytest.fixture
def catalog():
    catalog = AsyncMock()
    catalog.get_deals.return_value = [
        Deal(id="1", title="Kurta", url="https://www.myntra.com/kurta/1", price=799,
             original_price=1599, store="Myntra"),
        Deal(id="2", title="Lamp", url="https://shop.example.com/lamp", price=499),
    ]
    catalog.get_promocode_models.return_value = [Promocode(code="SAVE10", store="Myntra")]
    catalog.get_random_deal.return_value = Deal(
        id="3", title="Watch", url="https://www.flipkart.com/watch/3", price=1999
    )
    return catalog


@pytest.fixture
def wired(affiliate, catalog, disabled_tracking):
    """Point the handlers at the test database and a stub catalog."""
    with (
        patch.object(handlers, "affiliate_service", affiliate),
        patch.object(handlers, "url_processor", URLProcessor(affiliate)),
        patch.object(handlers, "get_catalog_service", AsyncMock(return_value=catalog)),
    ):
        yield affiliate


def _sent_texts(update) -> list[str]:
    return [call.args[0] for call in update.effective_message.reply_text.await_args_list]


class TestStart:
    @pytest.mark.asyncio
    async def test_welcome_then_inline_menu(self, wired, make_update, make_context) -> None:
        update = make_update("/start")

        await handlers.start(update, make_context())

        calls = update.effective_message.reply_text.await_args_list
        assert len(calls) == 2
        assert "Welcome to bazaarGuru, Asha" in calls[0].args[0]
        assert "Myntra" in calls[0].args[0]
        assert isinstance(calls[0].kwargs["reply_markup"], ReplyKeyboardMarkup)
        assert calls[1].args[0] == messages.MENU_PROMPT
        assert isinstance(calls[1].kwargs["reply_markup"], InlineKeyboardMarkup)

    @pytest.mark.asyncio
    async def test_start_is_tracked(self, wired, make_update, make_context) -> None:
        tracker = MagicMock()
        with patch.object(handlers, "analytics_tracker", tracker):
            await handlers.start(make_update("/start"), make_context())

        tracker.log_command_usage.assert_called_once_with(
            user_id=98765, username="shopper", command="start"
        )

    @pytest.mark.asyncio
    async def test_first_name_is_html_escaped(self, wired, make_update, make_context) -> None:
        update = make_update("/start")
        update.effective_user.first_name = "Tom & <Jerry>"

        await handlers.start(update, make_context())

        text = _sent_texts(update)[0]
        assert "Welcome to bazaarGuru, Tom &amp; &lt;Jerry&gt;!" in text
        assert "<Jerry>" not in text


class TestMenu:
    @pytest.mark.asyncio
    async def test_find_deals_button_wraps_known_stores(
        self, wired, catalog, make_update, make_context
    ) -> None:
        update = make_update("🔍 Find Deals")

        await handlers.handle_message(update, make_context())

        text = _sent_texts(update)[0]
        catalog.get_deals.assert_awaited_once_with(config.default_category, limit=5)
        links = wired.get_user_links("98765")
        assert [link.store_id for link in links] == ["myntra"]
        assert links[0].source == "search"
        assert "https://shop.example.com/lamp" in text
        assert "<code>SAVE10</code>" in text

    @pytest.mark.asyncio
    async def test_button_and_callback_give_the_same_answer(
        self, wired, make_update, make_context
    ) -> None:
        update = make_update("📖 Guide")
        await handlers.handle_message(update, make_context())

        query = AsyncMock()
        query.data = "guide"
        query.from_user = MagicMock(id=98765, username="shopper")
        callback_update = make_update()
        callback_update.callback_query = query
        await handlers.handle_callback(callback_update, make_context())

        query.answer.assert_awaited_once()
        assert query.edit_message_text.await_args.args[0] == _sent_texts(update)[0]
        assert query.edit_message_text.await_args.args[0] == messages.GUIDE_MESSAGE

    @pytest.mark.asyncio
    async def test_random_deal_uses_recommendation_source(
        self, wired, make_update, make_context
    ) -> None:
        update = make_update("🎲 Random Deal")

        await handlers.handle_message(update, make_context())

        assert _sent_texts(update)[0].startswith(messages.RANDOM_HEADER)
        assert wired.get_user_links("98765")[0].source == "ai_recommendation"

    @pytest.mark.asyncio
    async def test_unchanged_menu_is_not_an_error(self, wired, make_update, make_context) -> None:
        query = AsyncMock()
        query.data = "settings"
        query.from_user = MagicMock(id=1, username=None)
        query.edit_message_text.side_effect = BadRequest("Message is not modified")
        update = make_update()
        update.callback_query = query

        await handlers.handle_callback(update, make_context())

        query.answer.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_callback_is_answered_only(self, wired, make_update, make_context) -> None:
        query = AsyncMock()
        query.data = "bogus"
        update = make_update()
        update.callback_query = query

        await handlers.handle_callback(update, make_context())

        query.answer.assert_awaited_once()
        query.edit_message_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_private_chatter_gets_a_hint(self, wired, make_update, make_context) -> None:
        update = make_update("hello there")

        await handlers.handle_message(update, make_context())

        assert _sent_texts(update) == [messages.UNKNOWN_INPUT]

    @pytest.mark.asyncio
    async def test_group_chatter_is_ignored(self, wired, make_update, make_context) -> None:
        update = make_update("hello there", chat_type="group", chat_id=-100)

        await handlers.handle_message(update, make_context())

        update.effective_message.reply_text.assert_not_awaited()


class TestPastedLinks:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("chat_type", "chat_id", "source"),
        [("private", None, "search"), ("group", -100, "group"), ("supergroup", -200, "group")],
    )
    async def test_source_follows_chat_type(
        self, wired, make_update, make_context, chat_type, chat_id, source
    ) -> None:
        update = make_update(
            "look https://www.myntra.com/shirts/1", chat_type=chat_type, chat_id=chat_id
        )

        await handlers.handle_message(update, make_context())

        link = wired.get_user_links("98765")[0]
        assert link.source == source
        assert "Your Myntra cashback link" in _sent_texts(update)[0]
        assert runtime_stats.links_generated == 1

    @pytest.mark.asyncio
    async def test_channel_post_without_user(self, wired, make_update, make_context) -> None:
        update = make_update(
            "https://www.ajio.com/p/9", chat_type="channel", chat_id=-1001, with_user=False
        )

        await handlers.handle_message(update, make_context())

        link = wired.get_user_links("-1001")[0]
        assert link.source == "personal_channel"
        assert link.telegram_sub_id.split("_")[3] != "gen"

    @pytest.mark.asyncio
    async def test_unknown_store_is_refused(self, wired, make_update, make_context) -> None:
        update = make_update("https://shop.example.com/a and https://shop.example.com/b")

        await handlers.handle_message(update, make_context())

        texts = _sent_texts(update)
        assert len(texts) == 1
        assert "<b>shop.example.com</b> is not a partner store" in texts[0]
        assert wired.get_user_links("98765") == []

    @pytest.mark.asyncio
    async def test_unsupported_host_is_html_escaped(self, wired, make_update, make_context) -> None:
        update = make_update("https://deals&more.example.com/x")

        await handlers.handle_message(update, make_context())

        assert "<b>deals&amp;more.example.com</b> is not a partner store" in _sent_texts(update)[0]

    @pytest.mark.asyncio
    async def test_link_generation_runs_off_the_event_loop(
        self, wired, make_update, make_context
    ) -> None:
        loop_thread = threading.get_ident()
        threads = []
        generate = wired.generate_link_for_url

        def recording(*args, **kwargs):
            threads.append(threading.get_ident())
            return generate(*args, **kwargs)

        with patch.object(wired, "generate_link_for_url", side_effect=recording):
            await handlers.handle_message(
                make_update("https://www.flipkart.com/p/1"), make_context()
            )

        assert threads and loop_thread not in threads

    @pytest.mark.asyncio
    async def test_link_command(self, wired, make_update, make_context) -> None:
        update = make_update("/link")

        await handlers.link_command(update, make_context(["https://www.nykaa.com/lipstick/5"]))

        assert wired.get_user_links("98765")[0].store_id == "nykaa"

    @pytest.mark.asyncio
    async def test_link_command_without_url(self, wired, make_update, make_context) -> None:
        update = make_update("/link")

        await handlers.link_command(update, make_context())

        assert _sent_texts(update) == [messages.LINK_USAGE]


class TestCommands:
    @pytest.mark.asyncio
    async def test_deals_unknown_category(self, wired, catalog, make_update, make_context) -> None:
        update = make_update("/deals")

        await handlers.deals(update, make_context(["gadgets"]))

        assert "Unknown category <b>gadgets</b>" in _sent_texts(update)[0]
        catalog.get_deals.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_category_is_html_escaped(
        self, wired, catalog, make_update, make_context
    ) -> None:
        update = make_update("/deals")

        await handlers.deals(update, make_context(["<x"]))

        assert "Unknown category <b>&lt;x</b>" in _sent_texts(update)[0]

    @pytest.mark.asyncio
    async def test_deals_without_results(self, wired, catalog, make_update, make_context) -> None:
        catalog.get_deals.return_value = []
        update = make_update("/deals")

        await handlers.deals(update, make_context(["Fashion"]))

        assert "No deals in <b>fashion</b>" in _sent_texts(update)[0]

    @pytest.mark.asyncio
    async def test_my_links(self, wired, make_update, make_context) -> None:
        wired.generate_link_for_url("98765", "https://www.flipkart.com/p/1")
        update = make_update("/mylinks")

        await handlers.my_links(update, make_context())

        assert "Flipkart" in _sent_texts(update)[0]


class TestAdminCommands:
    @pytest.fixture
    def admin(self, analytics, wired):
        with (
            patch.object(config.bot, "admin_chat_id", ADMIN_ID),
            patch.object(handlers, "analytics_service", analytics),
        ):
            yield analytics

    @pytest.mark.asyncio
    async def test_non_admin_is_ignored(self, admin, make_update, make_context) -> None:
        update = make_update("/analytics_daily", user_id=1)

        await handlers.analytics_daily(update, make_context())

        update.effective_message.reply_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_admin_configured(self, analytics, make_update, make_context) -> None:
        with patch.object(config.bot, "admin_chat_id", 0):
            update = make_update("/analytics_daily", user_id=0)
            await handlers.analytics_daily(update, make_context())

        update.effective_message.reply_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_daily_stats(self, admin, make_update, make_context) -> None:
        update = make_update("/analytics_daily", user_id=ADMIN_ID)

        await handlers.analytics_daily(update, make_context())

        assert "Statistics for today" in _sent_texts(update)[0]

    @pytest.mark.asyncio
    async def test_user_stats_usage(self, admin, make_update, make_context) -> None:
        update = make_update("/analytics_user", user_id=ADMIN_ID)

        await handlers.analytics_user(update, make_context(["abc"]))
        await handlers.analytics_user(update, make_context(["404"]))

        assert _sent_texts(update) == ["❌ Invalid user_id", "❌ No data for user 404"]

    @pytest.mark.asyncio
    async def test_export_sends_document(
        self, admin, make_update, make_context, tmp_path, monkeypatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        update = make_update("/analytics_export", user_id=ADMIN_ID)

        await handlers.analytics_export(update, make_context(["7"]))

        update.effective_message.reply_document.assert_awaited_once()
        assert list(tmp_path.glob("analytics_export_*.csv")) == []

    @pytest.mark.asyncio
    async def test_cleanup_links(self, admin, make_update, make_context) -> None:
        update = make_update("/cleanup_links", user_id=ADMIN_ID)

        await handlers.cleanup_links(update, make_context())

        assert _sent_texts(update)[0].startswith("🧹 Deactivated 0 expired links")


class TestErrorHandler:
    @pytest.mark.asyncio
    async def test_counts_and_apologises(self, make_context) -> None:
        update = MagicMock(spec=Update)
        update.effective_message = AsyncMock()
        context = make_context()
        context.error = RuntimeError("boom")

        await handlers.error_handler(update, context)

        assert runtime_stats.errors == 1
        update.effective_message.reply_text.assert_awaited_once_with(messages.ERROR_GENERIC)

    @pytest.mark.asyncio
    async def test_non_update_errors_are_counted(self, make_context) -> None:
        await handlers.error_handler(None, make_context())

        assert runtime_stats.errors == 1


@pytest.mark.asyncio
async def test_every_update_is_counted(make_update, make_context) -> None:
    await handlers.count_update(make_update(), make_context())
    await handlers.count_update(make_update(), make_context())

    assert runtime_stats.messages_processed == 2
