"""Polling monitor for the bot's /health and /stats endpoints.

Raises alerts when the bot is unreachable, when memory or error counts cross
their thresholds, and when the monitor process itself uses too many
resources. Alerts are kept newest first.
"""

import asyncio
import json
import logging
import platform
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import aiohttp
import psutil

from ..config import MonitorConfig, config
from ..models import Alert

logger = logging.getLogger(__name__)

MAX_ALERTS = 50
DISPLAYED_ALERTS = 5
EXPORTED_ALERTS = 10

MEMORY_CRITICAL_PERCENT = 85
MEMORY_WARNING_PERCENT = 70
ERRORS_CRITICAL = 100
ERRORS_WARNING = 50
RECENT_START_SECONDS = 300
RESOURCE_MEMORY_PERCENT = 80
RESOURCE_CPU_SECONDS = 10

ALERT_ICONS = {"CRITICAL": "🔴", "WARNING": "🟡", "INFO": "ℹ️"}


class BotMonitor:
    """Checks the bot's health endpoint and keeps a bounded alert log."""

    def __init__(self, settings: MonitorConfig | None = None, memory_limit_mb: int | None = None):
        self.settings = settings or config.monitor
        self.base_url = self.settings.base_url.rstrip("/")
        self.memory_limit_mb = memory_limit_mb or config.server.memory_limit_mb
        self.alerts: list[Alert] = []
        self._stop_event = asyncio.Event()

    def add_alert(self, level: str, title: str, message: str) -> Alert:
        alert = Alert(level=level, title=title, message=message)
        self.alerts.insert(0, alert)
        del self.alerts[MAX_ALERTS:]
        log = logger.error if level == "CRITICAL" else logger.warning if level == "WARNING" else logger.info
        log(f"{level}: {title} ({message})")
        return alert

    async def _request(self, path: str) -> dict[str, Any]:
        """GET a JSON endpoint of the bot.

        Raises:
            aiohttp.ClientError: On transport errors and non-200 answers.
            TimeoutError: When the bot does not answer in time.
        """
        timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(f"{self.base_url}{path}") as response:
                response.raise_for_status()
                return await response.json(content_type=None)

    async def check_health(self) -> dict[str, Any] | None:
        """Fetch /health and evaluate thresholds.

        Returns:
            The health payload, or None when the bot is unavailable.
        """
        try:
            health = await self._request("/health")
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            self.add_alert("CRITICAL", "Bot unavailable", str(e) or type(e).__name__)
            return None

        self.check_thresholds(health)
        return health

    async def check_stats(self) -> dict[str, Any] | None:
        try:
            return await self._request("/stats")
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            logger.error(f"Failed to fetch bot stats: {e}")
            return None

    def check_thresholds(self, health: dict[str, Any]) -> None:
        memory = health.get("memory") or {}
        used = memory.get("used", 0)
        total = memory.get("total", 0)
        if total:
            percent = used / total * 100
            if percent > MEMORY_CRITICAL_PERCENT:
                self.add_alert("CRITICAL", "Critical memory usage", f"{percent:.1f}%")
            elif percent > MEMORY_WARNING_PERCENT:
                self.add_alert("WARNING", "High memory usage", f"{percent:.1f}%")

        errors = (health.get("stats") or {}).get("errors", 0)
        if errors > ERRORS_CRITICAL:
            self.add_alert("CRITICAL", "Too many errors", f"{errors} errors")
        elif errors > ERRORS_WARNING:
            self.add_alert("WARNING", "Elevated error count", f"{errors} errors")

        uptime = health.get("uptime", 0)
        if uptime < RECENT_START_SECONDS:
            self.add_alert("INFO", "Bot recently started", f"{int(uptime // 60)} minutes")

    def check_system_resources(self) -> dict[str, float]:
        """Check the monitor process against the memory limit and CPU time."""
        process = psutil.Process()
        usage = process.cpu_times()
        memory_mb = process.memory_info().rss / 1024 / 1024
        memory_percent = memory_mb / self.memory_limit_mb * 100

        if memory_percent > RESOURCE_MEMORY_PERCENT:
            self.add_alert("WARNING", "High memory usage", f"{memory_percent:.0f}%")
        if usage.user > RESOURCE_CPU_SECONDS:
            self.add_alert("WARNING", "High CPU usage", f"{usage.user:.1f}s user CPU time")

        return {
            "memory_mb": round(memory_mb, 1),
            "memory_percent": round(memory_percent, 1),
            "cpu_user_seconds": usage.user,
            "cpu_system_seconds": usage.system,
        }

    @staticmethod
    def format_health(health: dict[str, Any]) -> str:
        memory = health.get("memory") or {}
        return "\n".join([
            f"🏥 Bot health: {str(health.get('status', 'unknown')).upper()}",
            f"⏱️  Uptime: {int(health.get('uptime', 0) // 60)} minutes",
            f"💾 Memory: {memory.get('used', 0) // 1024 // 1024}MB / "
            f"{memory.get('total', 0) // 1024 // 1024}MB",
            f"📊 Errors: {(health.get('stats') or {}).get('errors', 0)}",
        ])

    @staticmethod
    def format_stats(stats: dict[str, Any]) -> str:
        return "\n".join([
            "📈 Bot stats:",
            f"📨 Messages processed: {stats.get('messages_processed', 0)}",
            f"📋 Queue: {stats.get('queue_size', 0)}",
            f"⚙️  Active jobs: {stats.get('active_jobs', 0)}",
            f"🔗 Links generated: {stats.get('links_generated', 0)}",
            f"👆 Clicks tracked: {stats.get('clicks_tracked', 0)}",
            f"💰 Conversions: {stats.get('conversions', 0)}",
        ])

    def format_alerts(self) -> str:
        if not self.alerts:
            return ""
        lines = ["🚨 Alerts:"]
        for alert in self.alerts[:DISPLAYED_ALERTS]:
            lines.append(f"{ALERT_ICONS.get(alert.level, '⚪')} {alert.level}: {alert.title}")
            lines.append(f"   {alert.message}")
        return "\n".join(lines)

    async def export_metrics(self, path: str | None = None) -> Path | None:
        """Write health, stats, recent alerts and system info as JSON."""
        target = Path(path or self.settings.export_path)
        try:
            health = await self._request("/health")
            stats = await self._request("/stats")
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            logger.error(f"Failed to export metrics: {e}")
            return None

        metrics = {
            "timestamp": datetime.now().isoformat(),
            "health": health,
            "stats": stats,
            "alerts": [a.model_dump(mode="json") for a in self.alerts[:EXPORTED_ALERTS]],
            "system": {
                **self.check_system_resources(),
                "platform": sys.platform,
                "python_version": platform.python_version(),
            },
        }

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(metrics, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info(f"Metrics exported to {target}")
        return target

    def stop(self) -> None:
        logger.info("Stopping monitor")
        self._stop_event.set()

    async def _health_loop(self) -> None:
        while not self._stop_event.is_set():
            health = await self.check_health()
            if health:
                print(self.format_health(health))
            alerts = self.format_alerts()
            if alerts:
                print(alerts)
            await self._sleep(self.settings.interval)

    async def _resources_loop(self) -> None:
        while not self._stop_event.is_set():
            await self._sleep(self.settings.resources_interval)
            if not self._stop_event.is_set():
                self.check_system_resources()

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    async def start(self) -> None:
        """Monitor continuously until SIGINT or SIGTERM, then export metrics."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.stop)

        logger.info(f"Monitoring {self.base_url} every {self.settings.interval:g}s")
        try:
            await asyncio.gather(self._health_loop(), self._resources_loop())
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            await self.export_metrics()
