"""Health probes for the deployed services and their dependencies."""

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Any

import aiohttp
import redis.asyncio as redis
from telegram import Bot

from ..config import Config, ServiceTarget
from ..models import DependencyHealth, ServiceHealth
from .backend import DealsBackendClient

logger = logging.getLogger(__name__)


async def check_service(
    session: aiohttp.ClientSession, target: ServiceTarget, timeout: float
) -> ServiceHealth:
    """GET a service health URL and classify the answer."""
    base = {"name": target.name, "port": target.port, "critical": target.critical}
    try:
        async with session.get(target.url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            try:
                payload = await response.json(content_type=None)
            except ValueError:
                return ServiceHealth(
                    **base,
                    status="unhealthy",
                    status_code=response.status,
                    error="Invalid JSON response",
                )

            if response.status == 200 and isinstance(payload, dict):
                return ServiceHealth(
                    **base, status="healthy", status_code=response.status, response=payload
                )
            return ServiceHealth(
                **base,
                status="unhealthy",
                status_code=response.status,
                error=f"HTTP {response.status}",
            )

    except TimeoutError:
        return ServiceHealth(**base, status="timeout", error=f"No answer within {timeout:g}s")
    except aiohttp.ClientError as e:
        return ServiceHealth(**base, status="unreachable", error=str(e))


async def check_services(cfg: Config) -> list[ServiceHealth]:
    """Probe all configured services concurrently."""
    async with aiohttp.ClientSession() as session:
        return list(
            await asyncio.gather(
                *(check_service(session, target, cfg.health.timeout) for target in cfg.health.services)
            )
        )


def check_database(db_path: str) -> DependencyHealth:
    """Run a query against an existing database file without creating one."""
    uri = f"{Path(db_path).resolve().as_uri()}?mode=rw"
    try:
        with sqlite3.connect(uri, uri=True, timeout=5) as conn:
            conn.execute("SELECT 1").fetchone()
        return DependencyHealth(name="Database", check="SQLite SELECT 1", status="healthy", critical=True)
    except sqlite3.Error as e:
        return DependencyHealth(
            name="Database", check="SQLite SELECT 1", status="unhealthy", critical=True, error=str(e)
        )


async def check_redis(redis_url: str, enabled: bool) -> DependencyHealth:
    if not enabled:
        return DependencyHealth(
            name="Redis", check="PING", status="unknown", critical=False, error="Cache disabled"
        )

    client = redis.from_url(redis_url, socket_connect_timeout=5, socket_timeout=5)
    try:
        await client.ping()
        return DependencyHealth(name="Redis", check="PING", status="healthy", critical=False)
    except Exception as e:
        return DependencyHealth(
            name="Redis", check="PING", status="unhealthy", critical=False, error=str(e)
        )
    finally:
        await client.aclose()


async def check_telegram(bot_token: str) -> DependencyHealth:
    if not bot_token:
        return DependencyHealth(
            name="Telegram API",
            check="getMe",
            status="unhealthy",
            critical=True,
            error="TELEGRAM_BOT_TOKEN is not set",
        )

    try:
        async with Bot(bot_token) as bot:
            me = await bot.get_me()
        logger.debug(f"Telegram API reachable as @{me.username}")
        return DependencyHealth(name="Telegram API", check="getMe", status="healthy", critical=True)
    except Exception as e:
        return DependencyHealth(
            name="Telegram API", check="getMe", status="unhealthy", critical=True, error=str(e)
        )


async def check_backend(client: DealsBackendClient) -> DependencyHealth:
    try:
        healthy = await client.ping()
    finally:
        await client.close()
    return DependencyHealth(
        name="Deals backend",
        check="GET /health",
        status="healthy" if healthy else "unhealthy",
        critical=False,
    )


async def check_dependencies(cfg: Config) -> list[DependencyHealth]:
    """Probe the database, Redis, Telegram and the deals backend."""
    database = await asyncio.to_thread(check_database, cfg.affiliate.db_path)
    others = await asyncio.gather(
        check_redis(cfg.cache.redis_url, cfg.cache.enabled),
        check_telegram(cfg.bot.bot_token),
        check_backend(DealsBackendClient(cfg.backend)),
    )
    return [database, *others]


def summarize(
    services: list[ServiceHealth], dependencies: list[DependencyHealth]
) -> dict[str, Any]:
    """Count healthy services and list critical issues."""
    critical_issues = [
        f"{s.name}: {s.status}" for s in services if s.critical and s.status != "healthy"
    ]
    critical_issues += [
        f"{d.name}: {d.status}" for d in dependencies if d.critical and d.status == "unhealthy"
    ]
    healthy = sum(1 for s in services if s.status == "healthy")
    return {
        "healthy_services": healthy,
        "total_services": len(services),
        "critical_issues": critical_issues,
        "ok": not critical_issues,
    }


async def run_health_check(cfg: Config) -> dict[str, Any]:
    services, dependencies = await asyncio.gather(check_services(cfg), check_dependencies(cfg))
    return {
        "services": services,
        "dependencies": dependencies,
        "summary": summarize(services, dependencies),
    }
