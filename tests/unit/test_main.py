"""Tests for the application entry point."""

from unittest.mock import MagicMock, patch

import pytest
from telegram.error import NetworkError
from telegram.ext import CommandHandler, TypeHandler

from bazaarguru import main as main_module
from bazaarguru.config import config


@pytest.fixture
def polling_config() -> MagicMock:
    cfg = MagicMock()
    cfg.bot.bot_token = "123456:TEST"
    cfg.bot.use_webhook = False
    cfg.bot.polling_retry_delay = 0
    return cfg


class TestMain:
    def test_polling_retries_after_network_error(self, polling_config) -> None:
        failing, working = MagicMock(), MagicMock()
        failing.run_polling.side_effect = NetworkError("boom")

        with patch.object(main_module, "config", polling_config), \
                patch.object(main_module, "configure_logging"), \
                patch.object(main_module, "build_application", side_effect=[failing, working]), \
                patch.object(main_module.time, "sleep") as sleep:
            main_module.main()

        sleep.assert_called_once_with(0)
        for app in (failing, working):
            assert app.run_polling.call_args.kwargs["close_loop"] is False
        working.run_polling.assert_called_once()

    def test_missing_token_raises(self, polling_config) -> None:
        polling_config.bot.bot_token = ""

        with patch.object(main_module, "config", polling_config), \
                patch.object(main_module, "configure_logging"):
            with pytest.raises(RuntimeError, match="TELEGRAM_BOT_TOKEN"):
                main_module.main()

    def test_webhook_mode(self, polling_config) -> None:
        polling_config.bot.use_webhook = True
        polling_config.bot.webhook_url = "https://bot.example.com/"
        app = MagicMock()

        with patch.object(main_module, "config", polling_config), \
                patch.object(main_module, "configure_logging"), \
                patch.object(main_module, "build_application", return_value=app):
            main_module.main()

        kwargs = app.run_webhook.call_args.kwargs
        assert kwargs["webhook_url"] == "https://bot.example.com/123456:TEST"
        app.run_polling.assert_not_called()


def test_build_application_registers_handlers(monkeypatch) -> None:
    monkeypatch.setattr(config.bot, "bot_token", "123456:TEST")

    app = main_module.build_application()

    assert isinstance(app.handlers[-1][0], TypeHandler)
    commands = {
        command
        for handler in app.handlers[0]
        if isinstance(handler, CommandHandler)
        for command in handler.commands
    }
    assert {"start", "help", "deals", "random", "mylinks", "link", "cleanup_links"} <= commands
    assert app.error_handlers
