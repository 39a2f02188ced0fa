"""System health check CLI.

Exits 0 when no critical service or dependency is failing, 1 otherwise.
"""

import argparse
import asyncio
import json
import sys
from typing import Any

from ..config import config, configure_logging
from ..services.health import run_health_check

STATUS_ICONS = {
    "healthy": "✅",
    "unhealthy": "❌",
    "unreachable": "🔌",
    "timeout": "⏱️",
    "unknown": "❔",
}


def format_report(result: dict[str, Any]) -> str:
    summary = result["summary"]
    lines = ["🏥 bazaarGuru health check", "", "Services:"]
    for service in result["services"]:
        icon = STATUS_ICONS.get(service.status, "❔")
        line = f"  {icon} {service.name} (:{service.port}) {service.status}"
        if service.critical:
            line += " [critical]"
        if service.error:
            line += f" - {service.error}"
        lines.append(line)

    lines += ["", "Dependencies:"]
    for dependency in result["dependencies"]:
        icon = STATUS_ICONS.get(dependency.status, "❔")
        line = f"  {icon} {dependency.name}: {dependency.status} ({dependency.check})"
        if dependency.error:
            line += f" - {dependency.error}"
        lines.append(line)

    lines += [
        "",
        f"Summary: {summary['healthy_services']}/{summary['total_services']} services healthy",
    ]
    if summary["critical_issues"]:
        lines.append("Critical issues:")
        lines += [f"  - {issue}" for issue in summary["critical_issues"]]
    else:
        lines.append("No critical issues")

    available = [s for s in result["services"] if s.status == "healthy"]
    if available:
        lines += ["", "Available URLs:"]
        lines += [f"  {s.name}: http://{config.health.host}:{s.port}" for s in available]

    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="bazaarguru-health", description="Probe bazaarGuru services and dependencies"
    )
    parser.add_argument("--json", action="store_true", help="print the report as JSON")
    args = parser.parse_args()

    configure_logging("WARNING")
    result = asyncio.run(run_health_check(config))

    if args.json:
        print(json.dumps(
            {
                "services": [s.model_dump() for s in result["services"]],
                "dependencies": [d.model_dump() for d in result["dependencies"]],
                "summary": result["summary"],
            },
            indent=2,
            ensure_ascii=False,
        ))
    else:
        print(format_report(result))

    sys.exit(0 if result["summary"]["ok"] else 1)


if __name__ == "__main__":
    main()
