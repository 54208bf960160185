"""Shared test fixtures and helpers."""

import asyncio
from datetime import date, datetime, time, timedelta
from typing import Optional

import pytest

from src.catalog.professionals import ProfessionalDirectory
from src.config import AppConfig
from src.geo.distance import Location
from src.geo.estimator import GeoEstimator, TravelEstimate
from src.schemas.booking_schema import BookingRequestSchema, LocationSchema
from src.scheduling.assignment_planner import AssignmentPlanner
from src.scheduling.availability_store import AvailabilityStore
from src.scheduling.conflict_detector import ConflictDetector
from src.scheduling.models import BlockKind, TimeBlock
from src.scheduling.orchestrator import SchedulingOrchestrator
from src.scheduling.route_optimizer import RouteOptimizer

MONDAY = date(2026, 10, 19)
SUNDAY = date(2026, 10, 25)

HOME = Location(-23.5505, -46.6333, "home")
CLIENT_A = Location(-23.5614, -46.6559, "client-a")
CLIENT_B = Location(-23.5329, -46.6395, "client-b")
CLIENT_C = Location(-23.5955, -46.6860, "client-c")
CLIENT_F = Location(-23.5874, -46.6576, "client-f")

# An hour from home, five minutes from each other on the FakeEstimator line.
SITE_X = Location(-23.6010, -46.7020, "site-x")
SITE_Y = Location(-23.6040, -46.7050, "site-y")
FAR_PAIR_POSITIONS = {"home": 0.0, "site-x": 6.0, "site-y": 6.5}

MON_TO_SAT = {day: (time(8, 0), time(18, 0)) for day in range(6)}


def at(clock: str, day: date = MONDAY) -> datetime:
    """``at("10:30")`` -> Monday 10:30."""
    hours, minutes = clock.split(":")
    return datetime.combine(day, time(int(hours), int(minutes)))


class FakeEstimator(GeoEstimator):
    """
    Deterministic travel keyed by location label.

    With ``positions`` the labels sit on a line and travel takes
    ``minutes_per_unit`` per unit of distance; otherwise every trip takes
    ``default_minutes``. Distance is 500 m per travel minute.
    """

    def __init__(
        self,
        default_minutes: float = 15.0,
        positions: Optional[dict[str, float]] = None,
        minutes_per_unit: float = 10.0,
        delay: float = 0.0,
        fail: bool = False,
    ) -> None:
        self.default_minutes = default_minutes
        self.positions = positions
        self.minutes_per_unit = minutes_per_unit
        self.delay = delay
        self.fail = fail
        self.calls = 0

    def minutes(self, origin: Location, destination: Location) -> float:
        if origin == destination:
            return 0.0
        if self.positions is not None:
            distance = abs(self.positions[origin.label] - self.positions[destination.label])
            return distance * self.minutes_per_unit
        return self.default_minutes

    async def estimate(self, origin: Location, destination: Location) -> TravelEstimate:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise OSError("routing service unavailable")
        minutes = self.minutes(origin, destination)
        return TravelEstimate(duration_seconds=minutes * 60, distance_meters=minutes * 500)


def make_request(
    start: Optional[str] = "10:00",
    end: Optional[str] = "12:00",
    location: Location = CLIENT_A,
    service_type: str = "quick clean",
    earliest: Optional[str] = None,
    latest: Optional[str] = None,
    duration_minutes: Optional[int] = None,
    day: date = MONDAY,
    **kwargs,
) -> BookingRequestSchema:
    """Fixed request by default; pass earliest/latest for a flexible one."""
    window: dict = {}
    if earliest is not None:
        window = {
            "earliest_start": at(earliest, day),
            "latest_start": at(latest, day),
            "duration_minutes": duration_minutes,
        }
    else:
        window = {"start": at(start, day), "end": at(end, day)}
    return BookingRequestSchema(
        service_type=service_type,
        location=LocationSchema.from_location(location),
        **window,
        **kwargs,
    )


def make_block(
    block_id: str,
    start: str,
    end: str,
    professional_id: str = "PRO-1",
    location: Optional[Location] = CLIENT_A,
    buffer_minutes: int = 0,
    kind: BlockKind = BlockKind.BOOKING,
    day: date = MONDAY,
) -> TimeBlock:
    buffer = timedelta(minutes=buffer_minutes)
    return TimeBlock(
        block_id=block_id,
        professional_id=professional_id,
        start=at(start, day),
        end=at(end, day),
        kind=kind,
        location=location,
        buffer_before=buffer,
        buffer_after=buffer,
    )


@pytest.fixture
def config():
    return AppConfig()


@pytest.fixture
def estimator():
    return FakeEstimator()


@pytest.fixture
def directory(config):
    directory = ProfessionalDirectory(config.working_hours)
    directory.register(
        "PRO-1", "Ana Souza", HOME, skills=["standard"], working_hours=MON_TO_SAT
    )
    return directory


@pytest.fixture
def professional(directory):
    return directory.get("PRO-1")


@pytest.fixture
def store():
    return AvailabilityStore()


@pytest.fixture
def detector(estimator):
    return ConflictDetector(estimator)


@pytest.fixture
def planner(directory, store, detector, config):
    return AssignmentPlanner(directory, store, detector, config.planner)


@pytest.fixture
def optimizer(config):
    return RouteOptimizer(config.routing)


@pytest.fixture
def orchestrator(directory, store, estimator, config):
    return SchedulingOrchestrator(directory, store, estimator, config)
