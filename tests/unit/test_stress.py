"""Tests for stress test analysis and the stepped runner."""

import json

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from bazaarguru.exceptions import HealthCheckError
from bazaarguru.models import StressStepResult
from bazaarguru.services.stress import (
    StressTestRunner,
    analyze_degradation,
    build_recommendations,
    find_optimal,
    is_breaking_point,
    step_score,
)


def _step(concurrency: int, success_rate: float = 100.0, rps: float = 500.0,
          avg_ms: float = 50.0) -> StressStepResult:
    return StressStepResult(
        concurrency=concurrency,
        success_rate=success_rate,
        requests_per_second=rps,
        avg_response_time=avg_ms,
    )


class TestAnalysis:
    @pytest.mark.parametrize(
        ("success_rate", "avg_ms", "expected"),
        [(100, 50, False), (94.9, 50, True), (99, 5001, True), (95, 5000, False)],
    )
    def test_breaking_point(self, success_rate, avg_ms, expected) -> None:
        assert is_breaking_point(_step(50, success_rate, avg_ms=avg_ms)) is expected

    def test_step_score(self) -> None:
        # 100 * 0.4 + 500 / 10 * 0.4 + 1000 / 50 * 0.2
        assert step_score(_step(50)) == pytest.approx(64.0)

    def test_zero_latency_does_not_divide(self) -> None:
        assert step_score(_step(50, avg_ms=0)) == pytest.approx(60.0)

    def test_find_optimal(self) -> None:
        results = [_step(50, rps=100), _step(100, rps=900), _step(150, success_rate=80, rps=950)]

        assert find_optimal(results).concurrency == 100
        assert find_optimal([]) is None

    def test_degradation(self) -> None:
        result = analyze_degradation([_step(50, 100, 200, 40), _step(100, 96, 300, 60)])

        assert result["success_rate_drop"] == pytest.approx(4.0)
        assert result["response_time_change_percent"] == pytest.approx(50.0)
        assert result["throughput_change_percent"] == pytest.approx(50.0)

    def test_degradation_needs_two_steps(self) -> None:
        assert analyze_degradation([_step(50)]) is None

    def test_recommendations_with_breaking_point(self) -> None:
        recs = build_recommendations([_step(100, 90, 50, 1500)], 100, 50, 1000)

        assert recs[0] == "System handles up to 50 concurrent users reliably"
        assert any("High response times" in r for r in recs)
        assert any("High error rate" in r for r in recs)
        assert any("Low throughput" in r for r in recs)

    def test_recommendations_without_breaking_point(self) -> None:
        recs = build_recommendations([_step(100)], None, 50, 100)

        assert recs[0] == "System handled 100 concurrent users without breaking"
        assert len(recs) == 3


def _server_app(health_status: int = 200, health_body: dict | None = None) -> web.Application:
    async def health(request: web.Request) -> web.Response:
        return web.json_response(health_body or {"success": True}, status=health_status)

    async def stats(request: web.Request) -> web.Response:
        return web.json_response({"messages_processed": 0})

    app = web.Application()
    app.router.add_get("/health", health)
    app.router.add_get("/stats", stats)
    return app


class TestRunner:
    @pytest.mark.asyncio
    async def test_runs_every_step(self, tmp_path) -> None:
        async with TestServer(_server_app()) as server:
            runner = StressTestRunner(
                base_url=str(server.make_url("")),
                max_concurrency=4,
                step_size=2,
                step_duration=0.2,
                pause=0,
            )
            results = await runner.run()

        assert [r.concurrency for r in results] == [2, 4]
        assert all(r.total_requests > 0 for r in results)
        assert all(r.success_rate == 100 for r in results)
        assert set(results[0].status_codes) == {"200"}
        assert runner.breaking_point is None

        report = json.loads(runner.save_report(str(tmp_path)).read_text(encoding="utf-8"))
        assert report["optimal_concurrency"] in {2, 4}
        assert len(report["results"]) == 2

    @pytest.mark.asyncio
    async def test_unhealthy_service_is_refused(self) -> None:
        async with TestServer(_server_app(health_body={"success": False})) as server:
            runner = StressTestRunner(base_url=str(server.make_url("")), pause=0)
            with pytest.raises(HealthCheckError):
                await runner.run()

    @pytest.mark.asyncio
    async def test_health_check_rejects_http_errors(self) -> None:
        async with TestServer(_server_app(health_status=503)) as server:
            runner = StressTestRunner(base_url=str(server.make_url("")))
            async with aiohttp.ClientSession() as session:
                with pytest.raises(HealthCheckError, match="HTTP 503"):
                    await runner.health_check(session)
