"""
Command line runner for scheduling scenarios.

Loads a JSON scenario (professionals, manual blocks, booking requests),
runs it through the orchestrator and prints the schedule outcomes, the
resulting daily routes, a conflict scan and occupancy per professional.

Usage:
    python main.py scenario.json
    python main.py scenario.json --offline --json
    python main.py scenario.json --report report.txt
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from src.catalog.professionals import ProfessionalDirectory
from src.config import AppConfig, load_config
from src.geo.estimator import StraightLineEstimator, build_estimator
from src.logging_context import RequestIdFilter
from src.schemas.route_schema import ConflictResponse, OccupancyResponse, RouteResponse
from src.schemas.scenario_schema import ScenarioSchema, ScheduleResponse
from src.scheduling.availability_store import AvailabilityStore
from src.scheduling.orchestrator import SchedulingOrchestrator
from src.scheduling.reports import format_occupancy_report

logger = logging.getLogger(__name__)


def _load_scenario(path: Path) -> ScenarioSchema:
    with path.open(encoding="utf-8") as f:
        return ScenarioSchema.model_validate(json.load(f))


async def run_scenario(scenario: ScenarioSchema, config: AppConfig, offline: bool = False) -> dict:
    """Execute a scenario and return a JSON-ready summary."""
    if offline:
        estimator = StraightLineEstimator(
            speed_kmh=config.estimator.fallback_speed_kmh,
            road_factor=config.estimator.road_factor,
        )
    else:
        estimator = build_estimator(config.estimator)

    directory = ProfessionalDirectory(config.working_hours)
    for pro in scenario.professionals:
        directory.register(
            pro.professional_id,
            pro.name,
            pro.home.to_location(),
            skills=pro.skills,
            working_hours=pro.to_hours(),
            active=pro.active,
        )

    store = AvailabilityStore()
    orchestrator = SchedulingOrchestrator(directory, store, estimator, config)

    for block in scenario.manual_blocks:
        result = await orchestrator.block_time(
            block.professional_id, block.start, block.end, block.reason
        )
        if not result.success:
            logger.warning("Manual block for %s rejected: %s", block.professional_id, result.error)

    outcomes = [
        await orchestrator.request_booking(request, auto_assign=scenario.auto_assign)
        for request in scenario.bookings
    ]

    for index in scenario.cancel:
        if not 0 <= index < len(outcomes):
            logger.warning("Ignoring cancel index %d, only %d booking(s)", index, len(outcomes))
            continue
        await orchestrator.cancel_booking(outcomes[index].booking.booking_id)

    retried = await orchestrator.reschedule_pending() if scenario.cancel and scenario.auto_assign else []

    days = sorted({o.booking.day for o in outcomes})
    routes = []
    for pro in directory.all():
        for day in days:
            route = await orchestrator.get_route(pro.professional_id, day)
            if route.stops:
                routes.append(route)

    occupancy = []
    if days:
        for pro in directory.all():
            occupancy.append(orchestrator.occupancy_report(pro.professional_id, days[0], days[-1]))

    return {
        "schedules": [ScheduleResponse.from_outcome(o).model_dump(mode="json") for o in outcomes],
        "retried": [ScheduleResponse.from_outcome(o).model_dump(mode="json") for o in retried],
        "routes": [RouteResponse.from_route(r).model_dump(mode="json") for r in routes],
        "conflicts": ConflictResponse.from_reports(orchestrator.scan_conflicts()).model_dump(mode="json"),
        "occupancy": [OccupancyResponse.from_report(r).model_dump(mode="json") for r in occupancy],
        "occupancy_text": [format_occupancy_report(r) for r in occupancy],
    }


def format_summary(summary: dict) -> str:
    """Human-readable rendering of a scenario run."""
    lines = ["=" * 60, "SCHEDULE", "=" * 60]
    for item in summary["schedules"] + summary["retried"]:
        booking = item["booking"]
        lines.append(f"  {booking['booking_id']}  {booking['status']:<10} {item['message']}")
    lines += ["", "=" * 60, "ROUTES", "=" * 60]
    for route in summary["routes"]:
        flag = "" if route["within_working_hours"] else "  (outside working hours)"
        lines.append(
            f"  {route['professional_id']} {route['day']}: {len(route['stops'])} stop(s), "
            f"{route['total_travel_minutes']:.0f} min travel{flag}"
        )
        for stop in route["stops"]:
            lines.append(
                f"    {stop['order']}. {stop['start'][11:16]}-{stop['end'][11:16]} "
                f"{stop['booking_id'] or 'blocked'} {stop['address']}"
            )
        for stop_id in route["unschedulable"]:
            lines.append(f"    ! unschedulable: {stop_id}")
        for stop_id in route["late"]:
            lines.append(f"    ! late: {stop_id}")
    lines += ["", "=" * 60, "CONFLICTS", "=" * 60]
    conflicts = summary["conflicts"]
    if conflicts["healthy"]:
        lines.append("  none")
    for conflict in conflicts["conflicts"]:
        lines.append(
            f"  {conflict['professional_id']}: {conflict['first_block_id']} "
            f"overlaps {conflict['second_block_id']}"
        )
    lines.append("")
    lines.extend(summary["occupancy_text"])
    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run a cleaning scheduling scenario through the engine."
    )
    parser.add_argument("scenario", type=str, help="Path to a scenario JSON file.")
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Use straight-line travel estimates instead of the routing service.",
    )
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON.")
    parser.add_argument(
        "--report",
        type=str,
        default=None,
        help="Path to write the output (default: stdout).",
    )
    args = parser.parse_args()

    config = load_config()
    for handler in logging.getLogger().handlers:
        handler.addFilter(RequestIdFilter())
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(name)s] %(levelname)s [%(request_id)s %(professional_id)s]: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    scenario_path = Path(args.scenario)
    if not scenario_path.exists():
        logger.error("Scenario file not found: %s", scenario_path)
        sys.exit(1)
    try:
        scenario = _load_scenario(scenario_path)
    except (json.JSONDecodeError, ValidationError) as exc:
        logger.error("Invalid scenario %s: %s", scenario_path, exc)
        sys.exit(1)

    summary = asyncio.run(run_scenario(scenario, config, offline=args.offline))
    if args.json:
        summary.pop("occupancy_text")
        output = json.dumps(summary, indent=2)
    else:
        output = format_summary(summary)

    if args.report:
        report_path = Path(args.report)
        report_path.write_text(output, encoding="utf-8")
        logger.info("Report written to %s", report_path)
    else:
        sys.stdout.write(output + "\n")


if __name__ == "__main__":
    main()
