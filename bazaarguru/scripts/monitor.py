"""Bot monitor CLI.

Without options the monitor runs until interrupted. ``--once`` prints a
single health and stats report, ``--export`` writes the metrics file.
"""

import argparse
import asyncio
import sys

from ..config import configure_logging
from ..services.monitor import BotMonitor


async def run_once(monitor: BotMonitor) -> int:
    health = await monitor.check_health()
    if health:
        print(monitor.format_health(health))
    stats = await monitor.check_stats()
    if stats:
        print(monitor.format_stats(stats))
    monitor.check_system_resources()
    alerts = monitor.format_alerts()
    if alerts:
        print(alerts)
    return 0 if health else 1


async def run_export(monitor: BotMonitor) -> int:
    path = await monitor.export_metrics()
    if path is None:
        print("Failed to export metrics")
        return 1
    print(f"Metrics exported to {path}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="bazaarguru-monitor", description="Monitor the bot's /health and /stats endpoints"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="check once and exit")
    mode.add_argument("--export", action="store_true", help="export metrics and exit")
    args = parser.parse_args()

    configure_logging()
    monitor = BotMonitor()

    if args.once:
        sys.exit(asyncio.run(run_once(monitor)))
    if args.export:
        sys.exit(asyncio.run(run_export(monitor)))
    asyncio.run(monitor.start())


if __name__ == "__main__":
    main()
