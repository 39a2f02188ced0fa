"""Catalog data sync CLI.

Usage:
    bazaarguru-sync start                      continuous sync
    bazaarguru-sync once                       one full sync
    bazaarguru-sync sync <type> <category>     refresh one category
    bazaarguru-sync clear                      clear the catalog cache
"""

import argparse
import asyncio
import logging
import sys

from ..config import configure_logging
from ..exceptions import BackendError
from ..services.cache_service import shutdown_cache_service
from ..services.catalog import get_catalog_service, shutdown_catalog_service
from ..services.data_sync import SYNC_TYPES, DataSyncManager

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bazaarguru-sync", description="Keep the catalog cache in sync with the deals backend"
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("start", help="sync continuously until interrupted")
    commands.add_parser("once", help="run one full sync")
    sync = commands.add_parser("sync", help="force-refresh one category")
    sync.add_argument("type", choices=SYNC_TYPES)
    sync.add_argument("category")
    commands.add_parser("clear", help="delete all cached catalog entries")
    return parser


async def run(args: argparse.Namespace) -> int:
    manager = DataSyncManager(await get_catalog_service())
    try:
        if args.command == "start":
            await manager.start()
        elif args.command == "once":
            report = await manager.perform_full_sync()
            print(
                f"Synced {report.products} products, {report.restaurants} restaurants, "
                f"{report.food_deals} food deals, {report.stores} stores, "
                f"{report.promocodes} promocodes in {report.duration_ms}ms"
            )
            if report.errors:
                print(f"{len(report.errors)} errors:")
                for error in report.errors:
                    print(f"  - {error}")
        elif args.command == "sync":
            items = await manager.sync_category(args.category, args.type)
            print(f"Synced {len(items)} {args.type} for {args.category}")
        elif args.command == "clear":
            deleted = await manager.clear_all_cache()
            print(f"Cleared {deleted} cache entries")
        return 0

    except BackendError as e:
        logger.error(f"Sync failed: {e}")
        return 1
    finally:
        await shutdown_catalog_service()
        await shutdown_cache_service()


def main() -> None:
    configure_logging()
    try:
        args = build_parser().parse_args()
    except SystemExit as e:
        # argparse exits with 2 on bad usage
        sys.exit(1 if e.code else 0)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
