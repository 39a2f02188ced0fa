"""Tests for bot usage analytics storage and the interaction tracker."""

import csv
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

from bazaarguru.bot.analytics_tracker import AnalyticsTracker
from bazaarguru.config import config
from bazaarguru.models import BotInteraction


def _interaction(**overrides) -> BotInteraction:
    data = dict(user_id=1, username="asha", action="command", name="start", success=True)
    data.update(overrides)
    return BotInteraction(**data)


class TestAnalyticsService:
    def test_daily_stats(self, analytics) -> None:
        analytics.log_interaction(_interaction(processing_time_ms=100))
        analytics.log_interaction(_interaction(user_id=2, action="button", name="profile"))
        analytics.log_interaction(
            _interaction(action="link", name="Myntra", success=False, error_message="boom",
                         processing_time_ms=300)
        )

        stats = analytics.get_daily_stats(days=1)

        assert stats["total_interactions"] == 3
        assert stats["successful_interactions"] == 2
        assert stats["unique_users"] == 2
        assert stats["actions"] == {"command": 1, "button": 1, "link": 1}
        assert stats["top_interactions"]["command:start"] == 1
        assert stats["avg_processing_time_ms"] == 200

    def test_old_rows_are_outside_the_window(self, analytics) -> None:
        analytics.log_interaction(_interaction(timestamp=datetime.now() - timedelta(days=3)))

        assert analytics.get_daily_stats(days=1)["total_interactions"] == 0
        assert analytics.get_daily_stats(days=7)["total_interactions"] == 1

    def test_user_stats(self, analytics) -> None:
        analytics.log_interaction(_interaction())
        analytics.log_interaction(_interaction(action="callback", name="cashback"))

        stats = analytics.get_user_stats(1)

        assert stats["total_interactions"] == 2
        assert stats["username"] == "asha"
        assert stats["actions"] == {"command:start": 1, "callback:cashback": 1}

    def test_user_without_data(self, analytics) -> None:
        assert analytics.get_user_stats(404) == {"user_id": 404, "total_interactions": 0}

    def test_error_analysis(self, analytics) -> None:
        analytics.log_interaction(_interaction(action="link", success=False, error_message="x"))
        analytics.log_interaction(_interaction(action="link"))

        result = analytics.get_error_analysis(days=1)

        assert result["common_errors"][0]["error_message"] == "x"
        assert result["action_failure_rates"] == [
            {"action": "link", "total": 2, "failures": 1, "failure_rate": 0.5}
        ]

    def test_export_to_csv(self, analytics, tmp_path) -> None:
        analytics.log_interaction(_interaction())
        target = tmp_path / "export.csv"

        assert analytics.export_to_csv(str(target)) is True

        with open(target, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["action"] == "command"

    def test_disabled_analytics_logs_nothing(self, analytics) -> None:
        with patch.object(config.analytics, "enabled", False):
            analytics.log_interaction(_interaction())

        assert analytics.get_daily_stats()["total_interactions"] == 0

    def test_cleanup_old_records(self, analytics) -> None:
        old = datetime.now() - timedelta(days=config.analytics.retention_days + 1)
        analytics.log_interaction(_interaction(timestamp=old))
        analytics.log_interaction(_interaction())

        assert analytics.cleanup_old_records() == 1


class TestAnalyticsTracker:
    def test_button_press_kinds(self) -> None:
        service = MagicMock()
        tracker = AnalyticsTracker(service)

        tracker.log_button_press(1, "asha", "profile", via_callback=True)
        tracker.log_button_press(1, "asha", "profile", via_callback=False)

        logged = [call.args[0] for call in service.log_interaction.call_args_list]
        assert [(i.action, i.name) for i in logged] == [
            ("callback", "profile"),
            ("button", "profile"),
        ]

    def test_link_generation_failure(self) -> None:
        service = MagicMock()
        tracker = AnalyticsTracker(service)

        tracker.log_link_generation(1, None, "shop.example", False, 12, "unsupported_store")

        interaction = service.log_interaction.call_args.args[0]
        assert interaction.action == "link"
        assert interaction.success is False
        assert interaction.error_message == "unsupported_store"

    def test_errors_never_propagate(self) -> None:
        service = MagicMock()
        service.log_interaction.side_effect = RuntimeError("db locked")
        tracker = AnalyticsTracker(service)

        tracker.log_command_usage(1, "asha", "start")

    def test_disabled_tracker_skips_logging(self) -> None:
        service = MagicMock()
        tracker = AnalyticsTracker(service)
        tracker.disable_tracking()

        tracker.log_command_usage(1, "asha", "start")

        service.log_interaction.assert_not_called()
