"""Step-wise stress test against the tracking server.

Concurrency grows by ``step_size`` per step until ``max_concurrency`` or the
breaking point: success rate below 95 %, average response time above
5000 ms, or a failed health check after a step.
"""

import asyncio
import json
import logging
import os
import platform
import time
from datetime import datetime
from pathlib import Path
from typing import Any

import aiohttp

from ..exceptions import HealthCheckError
from ..models import StressStepResult

logger = logging.getLogger(__name__)

SCENARIOS = ("/health", "/stats")
MIN_SUCCESS_RATE = 95.0
MAX_AVG_RESPONSE_MS = 5000.0
REPORTS_DIR = "stress-test-reports"


def is_breaking_point(result: StressStepResult) -> bool:
    return result.success_rate < MIN_SUCCESS_RATE or result.avg_response_time > MAX_AVG_RESPONSE_MS


def step_score(result: StressStepResult) -> float:
    """Weighted score of success rate, throughput and latency."""
    latency_term = 1000 / result.avg_response_time if result.avg_response_time > 0 else 0.0
    return (
        result.success_rate * 0.4
        + (result.requests_per_second / 10) * 0.4
        + latency_term * 0.2
    )


def find_optimal(results: list[StressStepResult]) -> StressStepResult | None:
    if not results:
        return None
    return max(results, key=step_score)


def analyze_degradation(results: list[StressStepResult]) -> dict[str, Any] | None:
    """Compare the first and the last step.

    Returns:
        Changes in success rate, response time and throughput, or None with
        fewer than two steps.
    """
    if len(results) < 2:
        return None

    first, last = results[0], results[-1]

    def change(before: float, after: float) -> float:
        return (after - before) / before * 100 if before else 0.0

    return {
        "success_rate": (first.success_rate, last.success_rate),
        "success_rate_drop": first.success_rate - last.success_rate,
        "avg_response_time": (first.avg_response_time, last.avg_response_time),
        "response_time_change_percent": change(first.avg_response_time, last.avg_response_time),
        "requests_per_second": (first.requests_per_second, last.requests_per_second),
        "throughput_change_percent": change(first.requests_per_second, last.requests_per_second),
    }


def build_recommendations(
    results: list[StressStepResult],
    breaking_point: int | None,
    step_size: int,
    max_concurrency: int,
) -> list[str]:
    recommendations = []
    if breaking_point:
        recommendations.append(
            f"System handles up to {breaking_point - step_size} concurrent users reliably"
        )
        recommendations.append(f"Performance degrades significantly beyond {breaking_point} users")
    else:
        recommendations.append(f"System handled {max_concurrency} concurrent users without breaking")
        recommendations.append("Test with higher concurrency to find the actual limit")

    if results:
        last = results[-1]
        if last.avg_response_time > 1000:
            recommendations.append("High response times: optimize database queries and caching")
        if last.success_rate < 99:
            recommendations.append("High error rate: investigate failed requests")
        if last.requests_per_second < 100:
            recommendations.append("Low throughput: scale horizontally or optimize hot paths")

    recommendations.append("Monitor CPU, memory and database connections during peak load")
    return recommendations


class StressTestRunner:
    """Runs the stepped load and collects per-step results."""

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        max_concurrency: int = 1000,
        step_size: int = 50,
        step_duration: float = 30.0,
        pause: float = 10.0,
        request_timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_concurrency = max_concurrency
        self.step_size = step_size
        self.step_duration = step_duration
        self.pause = pause
        self.request_timeout = request_timeout
        self.results: list[StressStepResult] = []
        self.breaking_point: int | None = None

    async def health_check(self, session: aiohttp.ClientSession) -> None:
        """Require a 200 /health answer whose success flag is not false.

        Raises:
            HealthCheckError: If the service is unhealthy or unreachable.
        """
        try:
            async with session.get(
                f"{self.base_url}/health", timeout=aiohttp.ClientTimeout(total=5)
            ) as response:
                if response.status != 200:
                    raise HealthCheckError(f"Health check failed: HTTP {response.status}")
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            raise HealthCheckError(f"Health check failed: {e}") from e

        if isinstance(payload, dict) and payload.get("success") is False:
            raise HealthCheckError("Health check failed: invalid response")

    async def _worker(
        self,
        session: aiohttp.ClientSession,
        deadline: float,
        index: int,
        times: list[float],
        errors: dict[str, int],
        status_codes: dict[str, int],
        counters: dict[str, int],
    ) -> None:
        request_number = index
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        while time.monotonic() < deadline:
            path = SCENARIOS[request_number % len(SCENARIOS)]
            request_number += 1
            started = time.monotonic()
            counters["total"] += 1
            try:
                async with session.get(f"{self.base_url}{path}", timeout=timeout) as response:
                    await response.read()
                    elapsed = (time.monotonic() - started) * 1000
                    status_codes[str(response.status)] = status_codes.get(str(response.status), 0) + 1
                    if response.status < 400:
                        counters["success"] += 1
                        times.append(elapsed)
                    else:
                        key = f"HTTP {response.status}"
                        errors[key] = errors.get(key, 0) + 1
            except (aiohttp.ClientError, TimeoutError) as e:
                key = type(e).__name__
                errors[key] = errors.get(key, 0) + 1

    async def run_step(self, session: aiohttp.ClientSession, concurrency: int) -> StressStepResult:
        times: list[float] = []
        errors: dict[str, int] = {}
        status_codes: dict[str, int] = {}
        counters = {"total": 0, "success": 0}

        started = time.monotonic()
        deadline = started + self.step_duration
        await asyncio.gather(*(
            self._worker(session, deadline, i, times, errors, status_codes, counters)
            for i in range(concurrency)
        ))
        elapsed = max(time.monotonic() - started, 1e-9)

        total = counters["total"]
        successful = counters["success"]
        result = StressStepResult(
            concurrency=concurrency,
            total_requests=total,
            successful_requests=successful,
            failed_requests=total - successful,
            success_rate=successful / total * 100 if total else 0.0,
            requests_per_second=round(total / elapsed, 2),
            avg_response_time=round(sum(times) / len(times), 2) if times else 0.0,
            min_response_time=round(min(times), 2) if times else 0.0,
            max_response_time=round(max(times), 2) if times else 0.0,
            errors=errors,
            status_codes=status_codes,
        )
        logger.info(
            f"Step {concurrency}: {total} requests, {result.success_rate:.2f}% success, "
            f"{result.requests_per_second} RPS, {result.avg_response_time}ms avg"
        )
        return result

    async def run(self) -> list[StressStepResult]:
        """Run steps until the breaking point or max concurrency.

        Raises:
            HealthCheckError: If the pre-test health check fails.
        """
        connector = aiohttp.TCPConnector(limit=0)
        async with aiohttp.ClientSession(connector=connector) as session:
            await self.health_check(session)
            logger.info("Pre-test health check passed")

            concurrency = self.step_size
            while concurrency <= self.max_concurrency:
                result = await self.run_step(session, concurrency)
                self.results.append(result)

                if is_breaking_point(result):
                    logger.warning(f"Breaking point reached at {concurrency} concurrent users")
                    self.breaking_point = concurrency
                    break

                try:
                    await self.health_check(session)
                except HealthCheckError as e:
                    logger.warning(f"System became unhealthy at {concurrency} users: {e}")
                    self.breaking_point = concurrency
                    break

                concurrency += self.step_size
                if concurrency <= self.max_concurrency and self.pause > 0:
                    await asyncio.sleep(self.pause)

        return self.results

    def build_report(self) -> dict[str, Any]:
        optimal = find_optimal(self.results)
        return {
            "timestamp": datetime.now().isoformat(),
            "configuration": {
                "base_url": self.base_url,
                "max_concurrency": self.max_concurrency,
                "step_size": self.step_size,
                "step_duration": self.step_duration,
            },
            "breaking_point": self.breaking_point,
            "optimal_concurrency": optimal.concurrency if optimal else None,
            "degradation": analyze_degradation(self.results),
            "recommendations": build_recommendations(
                self.results, self.breaking_point, self.step_size, self.max_concurrency
            ),
            "results": [r.model_dump() for r in self.results],
            "environment": {
                "python_version": platform.python_version(),
                "platform": platform.platform(),
                "cpus": os.cpu_count(),
            },
        }

    def save_report(self, directory: str = REPORTS_DIR) -> Path:
        reports_dir = Path(directory)
        reports_dir.mkdir(parents=True, exist_ok=True)
        path = reports_dir / f"stress-test-{int(time.time() * 1000)}.json"
        path.write_text(json.dumps(self.build_report(), indent=2), encoding="utf-8")
        logger.info(f"Stress report saved: {path}")
        return path
