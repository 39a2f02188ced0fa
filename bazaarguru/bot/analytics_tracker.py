"""Analytics tracking for bot interactions.

Records commands, menu buttons, inline callbacks and affiliate link requests
with their processing time and outcome.
"""

import logging
from datetime import datetime

from ..models import BotInteraction
from ..services.analytics import AnalyticsService, analytics_service

logger = logging.getLogger(__name__)


class AnalyticsTracker:
    """Logs bot interactions to the analytics service.

    Logging never raises; failures are written to the application log.
    """

    def __init__(self, analytics_service: "AnalyticsService"):
        """Initialize analytics tracker."""
        self.analytics_service = analytics_service
        self.enabled = True

    def _log(
        self,
        action: str,
        name: str,
        user_id: int,
        username: str | None,
        success: bool,
        processing_time_ms: int,
        error_message: str | None = None,
    ) -> None:
        if not self.enabled:
            return

        try:
            self.analytics_service.log_interaction(
                BotInteraction(
                    user_id=user_id,
                    username=username,
                    timestamp=datetime.now(),
                    action=action,
                    name=name,
                    success=success,
                    processing_time_ms=processing_time_ms,
                    error_message=error_message,
                )
            )
            logger.debug(f"Logged {action} {name} by user {user_id}")

        except Exception as e:
            logger.error(f"Failed to log {action} analytics: {e}")

    def log_command_usage(
        self,
        user_id: int,
        username: str | None,
        command: str,
        success: bool = True,
        processing_time_ms: int = 0,
    ) -> None:
        """Log bot command usage.

        Args:
            user_id: User ID who used the command.
            username: Username (if available).
            command: Command name (start, deals, analytics_*).
            success: Whether command executed successfully.
            processing_time_ms: Processing time in milliseconds.
        """
        self._log("command", command, user_id, username, success, processing_time_ms)

    def log_button_press(
        self,
        user_id: int,
        username: str | None,
        action: str,
        via_callback: bool,
        processing_time_ms: int = 0,
    ) -> None:
        """Log a main menu press from the reply keyboard or its inline twin."""
        kind = "callback" if via_callback else "button"
        self._log(kind, action, user_id, username, True, processing_time_ms)

    def log_link_generation(
        self,
        user_id: int,
        username: str | None,
        store: str,
        success: bool,
        processing_time_ms: int,
        error_type: str | None = None,
    ) -> None:
        """Log an affiliate link request for a pasted shop URL.

        Args:
            user_id: User ID who sent the URL.
            username: Username (if available).
            store: Store name, or the host when no store matched.
            success: Whether a link was generated.
            processing_time_ms: Processing time in milliseconds.
            error_type: Error description if failed.
        """
        self._log("link", store, user_id, username, success, processing_time_ms, error_type)

    def disable_tracking(self) -> None:
        """Disable analytics tracking (for testing/privacy)."""
        self.enabled = False
        logger.info("Analytics tracking disabled")

    def enable_tracking(self) -> None:
        """Enable analytics tracking."""
        self.enabled = True
        logger.info("Analytics tracking enabled")


analytics_tracker = AnalyticsTracker(analytics_service)
