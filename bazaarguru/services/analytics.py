"""Analytics service for tracking bot usage patterns.

Provides SQLite-based storage and retrieval of bot interaction data including
commands, menu buttons, callback queries and affiliate link requests, with
performance metrics for business intelligence and optimization purposes.
"""

import sqlite3
import logging
from pathlib import Path
from datetime import datetime, timedelta
from typing import List, Dict, Any, Optional

from ..models import BotInteraction

logger = logging.getLogger(__name__)


class AnalyticsService:
    """SQLite-based analytics service for tracking bot interactions.

    Attributes:
        db_path: Path to SQLite database file.
    """

    def __init__(self, db_path: str | None = None):
        """Initialize analytics service with database connection.

        Args:
            db_path: Path to SQLite database file. Uses config default if None.
        """
        if db_path is None:
            from ..config import config
            db_path = config.analytics.db_path

        self.db_path = db_path
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_database()
        logger.info(f"Analytics service initialized with database: {self.db_path}")

    def _init_database(self) -> None:
        """Create the bot_interactions table and its indexes if missing."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bot_interactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    username TEXT,
                    timestamp TEXT NOT NULL,
                    action TEXT NOT NULL,
                    name TEXT NOT NULL,
                    success BOOLEAN NOT NULL,
                    processing_time_ms INTEGER,
                    error_message TEXT
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_interactions_user
                ON bot_interactions(user_id)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_interactions_action
                ON bot_interactions(action, name)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_interactions_timestamp
                ON bot_interactions(timestamp)
            """)

            conn.commit()

    def log_interaction(self, interaction: BotInteraction) -> None:
        """Record a bot interaction.

        Args:
            interaction: BotInteraction model with the interaction data.
        """
        from ..config import config
        if not config.analytics.enabled:
            return

        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO bot_interactions
                    (user_id, username, timestamp, action, name, success,
                     processing_time_ms, error_message)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    interaction.user_id,
                    interaction.username,
                    interaction.timestamp.isoformat(timespec="microseconds"),
                    interaction.action,
                    interaction.name,
                    interaction.success,
                    interaction.processing_time_ms,
                    interaction.error_message,
                ))
                conn.commit()

            logger.debug(f"Logged interaction: {interaction.action}:{interaction.name}")

        except Exception as e:
            logger.error(f"Failed to log bot interaction: {e}")

    def get_daily_stats(self, days: int = 1) -> Dict[str, Any]:
        """Get usage statistics for the last days.

        Args:
            days: Number of days to look back (default: 1 for today).

        Returns:
            Dictionary with interaction counts, success rate, unique users,
            top commands and buttons.
        """
        try:
            cutoff = (datetime.now() - timedelta(days=days)).isoformat(timespec="microseconds")

            with sqlite3.connect(self.db_path) as conn:
                conn.row_factory = sqlite3.Row

                totals = conn.execute("""
                    SELECT
                        COUNT(*) as count,
                        SUM(CASE WHEN success = 1 THEN 1 ELSE 0 END) as successful,
                        COUNT(DISTINCT user_id) as users,
                        AVG(processing_time_ms) as avg_ms
                    FROM bot_interactions
                    WHERE timestamp >= ?
                """, (cutoff,)).fetchone()

                actions = conn.execute("""
                    SELECT action, COUNT(*) as count
                    FROM bot_interactions
                    WHERE timestamp >= ?
                    GROUP BY action
                    ORDER BY count DESC
                """, (cutoff,)).fetchall()

                top_names = conn.execute("""
                    SELECT action || ':' || name as key, COUNT(*) as count
                    FROM bot_interactions
                    WHERE timestamp >= ?
                    GROUP BY action, name
                    ORDER BY count DESC
                    LIMIT 10
                """, (cutoff,)).fetchall()

                total = totals["count"]
                successful = totals["successful"] or 0
                return {
                    "total_interactions": total,
                    "successful_interactions": successful,
                    "success_rate": successful / total if total > 0 else 0,
                    "unique_users": totals["users"],
                    "actions": {row["action"]: row["count"] for row in actions},
                    "top_interactions": {row["key"]: row["count"] for row in top_names},
                    "avg_processing_time_ms": totals["avg_ms"] or 0,
                    "period_days": days,
                }

        except Exception as e:
            logger.error(f"Failed to get daily stats: {e}")
            return {}

    def get_user_stats(
        self,
        user_id: int,
        limit: int = 50,
        days: int | None = None,
    ) -> Dict[str, Any]:
        """Get statistics for specific user.

        Args:
            user_id: Telegram user ID.
            limit: Maximum number of recent interactions to analyze.
            days: Optional number of days to look back.

        Returns:
            Dictionary with user-specific statistics.
        """
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.row_factory = sqlite3.Row

                query = """
                    SELECT * FROM bot_interactions
                    WHERE user_id = ?
                """
                params: list[Any] = [user_id]

                if days is not None:
                    cutoff = datetime.now() - timedelta(days=days)
                    query += " AND timestamp >= ?"
                    params.append(cutoff.isoformat(timespec="microseconds"))

                query += " ORDER BY timestamp DESC LIMIT ?"
                params.append(limit)

                rows = conn.execute(query, params).fetchall()

                if not rows:
                    return {"user_id": user_id, "total_interactions": 0}

                total = len(rows)
                successful = sum(1 for row in rows if row["success"])

                actions: dict[str, int] = {}
                for row in rows:
                    key = f"{row['action']}:{row['name']}"
                    actions[key] = actions.get(key, 0) + 1

                return {
                    "user_id": user_id,
                    "username": rows[0]["username"],
                    "total_interactions": total,
                    "successful_interactions": successful,
                    "success_rate": successful / total,
                    "actions": actions,
                    "first_seen": rows[-1]["timestamp"],
                    "last_seen": rows[0]["timestamp"],
                }

        except Exception as e:
            logger.error(f"Failed to get user stats for {user_id}: {e}")
            return {"user_id": user_id, "error": str(e)}

    def export_to_csv(self, filename: str, days: Optional[int] = None) -> bool:
        """Export interaction data to CSV file.

        Args:
            filename: Output CSV filename.
            days: Number of days to export (None for all data).

        Returns:
            True if export successful, False otherwise.
        """
        from ..config import config
        if not config.analytics.export_enabled:
            logger.warning("Analytics export is disabled in configuration")
            return False

        try:
            import pandas as pd

            query = "SELECT * FROM bot_interactions"
            params = []

            if days:
                cutoff = datetime.now() - timedelta(days=days)
                query += " WHERE timestamp >= ?"
                params.append(cutoff.isoformat(timespec="microseconds"))

            query += " ORDER BY timestamp DESC"

            with sqlite3.connect(self.db_path) as conn:
                df = pd.read_sql_query(query, conn, params=params)
                df.to_csv(filename, index=False)

            logger.info(f"Exported {len(df)} records to {filename}")
            return True

        except Exception as e:
            logger.error(f"Failed to export to CSV: {e}")
            return False

    def get_error_analysis(self, days: int = 7) -> Dict[str, Any]:
        """Analyze common errors by interaction.

        Args:
            days: Number of days to analyze.

        Returns:
            Dictionary with the most common errors and failure rates per action.
        """
        try:
            cutoff = (datetime.now() - timedelta(days=days)).isoformat(timespec="microseconds")

            with sqlite3.connect(self.db_path) as conn:
                conn.row_factory = sqlite3.Row

                errors = conn.execute("""
                    SELECT
                        error_message,
                        COUNT(*) as count,
                        action,
                        name
                    FROM bot_interactions
                    WHERE timestamp >= ?
                        AND success = 0
                        AND error_message IS NOT NULL
                    GROUP BY error_message, action, name
                    ORDER BY count DESC
                    LIMIT 10
                """, (cutoff,)).fetchall()

                action_failures = conn.execute("""
                    SELECT
                        action,
                        COUNT(*) as total,
                        SUM(CASE WHEN success = 0 THEN 1 ELSE 0 END) as failures
                    FROM bot_interactions
                    WHERE timestamp >= ?
                    GROUP BY action
                """, (cutoff,)).fetchall()

                return {
                    "common_errors": [dict(error) for error in errors],
                    "action_failure_rates": [
                        {
                            "action": row["action"],
                            "total": row["total"],
                            "failures": row["failures"],
                            "failure_rate": row["failures"] / row["total"],
                        }
                        for row in action_failures
                    ],
                }

        except Exception as e:
            logger.error(f"Failed to get error analysis: {e}")
            return {}

    def cleanup_old_records(self) -> int:
        """Delete interactions older than the configured retention period."""
        from ..config import config

        try:
            cutoff = datetime.now() - timedelta(days=config.analytics.retention_days)
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute(
                    "DELETE FROM bot_interactions WHERE timestamp < ?",
                    (cutoff.isoformat(timespec="microseconds"),),
                )
                conn.commit()
            return cursor.rowcount

        except Exception as e:
            logger.error(f"Failed to clean up analytics records: {e}")
            return 0


# Create global analytics service instance
analytics_service = AnalyticsService()
