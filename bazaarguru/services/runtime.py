"""In-process counters reported by the tracking server's /health and /stats."""

import time
from typing import Any

import psutil

from ..config import config


class RuntimeStats:
    """Mutable process-wide counters.

    Attributes:
        messages_processed: Telegram updates handled.
        errors: Unhandled handler errors.
        active_jobs: Background jobs currently running.
        queue_size: Pending items in background queues.
        links_generated: Affiliate links created.
        clicks_tracked: Redirect clicks recorded.
        conversions: Postback conversions recorded.
    """

    def __init__(self, memory_limit_mb: int = 512):
        self.memory_limit_mb = memory_limit_mb
        self.reset()

    def reset(self) -> None:
        self.started_at = time.monotonic()
        self.messages_processed = 0
        self.errors = 0
        self.active_jobs = 0
        self.queue_size = 0
        self.links_generated = 0
        self.clicks_tracked = 0
        self.conversions = 0

    def uptime(self) -> float:
        """Seconds since the process started collecting stats."""
        return time.monotonic() - self.started_at

    def memory_usage(self) -> dict[str, int]:
        """Resident memory in bytes against the configured limit.

        ``used`` is the current resident set size of the process.
        """
        used = psutil.Process().memory_info().rss
        return {"used": used, "total": self.memory_limit_mb * 1024 * 1024}

    def health_payload(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "success": True,
            "uptime": round(self.uptime(), 3),
            "memory": self.memory_usage(),
            "stats": {
                "errors": self.errors,
                "messages_processed": self.messages_processed,
            },
        }

    def snapshot(self) -> dict[str, Any]:
        return {
            "messages_processed": self.messages_processed,
            "queue_size": self.queue_size,
            "active_jobs": self.active_jobs,
            "errors": self.errors,
            "links_generated": self.links_generated,
            "clicks_tracked": self.clicks_tracked,
            "conversions": self.conversions,
        }


runtime_stats = RuntimeStats(memory_limit_mb=config.server.memory_limit_mb)
