"""Scheduling domain models: professionals, bookings, time blocks and routes."""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from src.errors import UnschedulableStopError
from src.geo.distance import Location
from src.scheduling.state_machine import BookingStateMachine, BookingStatus, BookingTrigger


@dataclass(frozen=True)
class TimeWindow:
    """
    Requested time constraint for a booking.

    A fixed window has ``earliest == latest`` (the start cannot move); a
    flexible window allows any start in ``[earliest, latest]``. In both
    cases the service lasts ``duration``.
    """

    earliest: datetime
    latest: datetime
    duration: timedelta

    def __post_init__(self) -> None:
        if self.duration <= timedelta(0):
            raise ValueError(f"Duration must be positive, got {self.duration}")
        if self.latest < self.earliest:
            raise ValueError(
                f"Latest start {self.latest} is before earliest start {self.earliest}"
            )
        if self.latest.date() != self.earliest.date():
            raise ValueError("A time window must start and end on the same day")

    @classmethod
    def fixed(cls, start: datetime, end: datetime) -> "TimeWindow":
        if end <= start:
            raise ValueError(f"End {end} must be after start {start}")
        return cls(earliest=start, latest=start, duration=end - start)

    @classmethod
    def flexible(cls, earliest: datetime, latest: datetime, duration: timedelta) -> "TimeWindow":
        return cls(earliest=earliest, latest=latest, duration=duration)

    @property
    def is_fixed(self) -> bool:
        return self.earliest == self.latest

    @property
    def day(self) -> date:
        return self.earliest.date()

    def candidate_starts(self, granularity: timedelta) -> list[datetime]:
        """Every start time worth trying: one for fixed windows, a grid for flexible ones."""
        if self.is_fixed:
            return [self.earliest]
        starts = []
        current = self.earliest
        while current <= self.latest:
            starts.append(current)
            current += granularity
        return starts


@dataclass
class Professional:
    """A cleaning professional with a home base, skills and weekly working hours."""

    professional_id: str
    name: str
    home: Location
    skills: frozenset[str] = frozenset()
    working_hours: dict[int, tuple[time, time]] = field(default_factory=dict)
    active: bool = True

    def has_skill(self, skill: str) -> bool:
        return skill.lower().strip() in self.skills

    def working_window(self, day: date) -> Optional[tuple[datetime, datetime]]:
        """Working interval for a calendar day, or None on days off."""
        hours = self.working_hours.get(day.weekday())
        if hours is None:
            return None
        return datetime.combine(day, hours[0]), datetime.combine(day, hours[1])


class BlockKind(str, Enum):
    BOOKING = "booking"
    MANUAL = "manual"


@dataclass(frozen=True)
class TimeBlock:
    """
    A committed interval on a professional's calendar.

    ``[start, end)`` is the service itself; the travel buffers extend it to
    ``[buffered_start, buffered_end)``. Manual blocks (vacation, personal
    time) carry no location and no buffers.
    """

    block_id: str
    professional_id: str
    start: datetime
    end: datetime
    kind: BlockKind = BlockKind.BOOKING
    location: Optional[Location] = None
    buffer_before: timedelta = timedelta(0)
    buffer_after: timedelta = timedelta(0)
    booking_id: Optional[str] = None
    reason: str = ""

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError(f"Block {self.block_id} ends before it starts")

    @property
    def buffered_start(self) -> datetime:
        return self.start - self.buffer_before

    @property
    def buffered_end(self) -> datetime:
        return self.end + self.buffer_after

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def day(self) -> date:
        return self.start.date()


@dataclass
class Booking:
    """A customer's cleaning request and its assignment state."""

    booking_id: str
    service_type: str
    location: Location
    window: TimeWindow
    required_skill: str
    customer_name: Optional[str] = None
    preferred_professional_id: Optional[str] = None
    professional_id: Optional[str] = None
    block_id: Optional[str] = None
    lifecycle: BookingStateMachine = field(default_factory=BookingStateMachine)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def status(self) -> BookingStatus:
        return self.lifecycle.current_state

    @property
    def duration(self) -> timedelta:
        return self.window.duration

    @property
    def day(self) -> date:
        return self.window.day

    def apply(self, trigger: BookingTrigger) -> BookingStatus:
        status = self.lifecycle.transition(trigger)
        self.updated_at = datetime.now(timezone.utc)
        return status


@dataclass(frozen=True)
class Candidate:
    """A proposed placement of a booking on one professional's calendar."""

    professional_id: str
    block: TimeBlock
    travel_distance_meters: float
    idle_minutes: float
    daily_load_minutes: float
    preferred: bool = False
    prior_block_id: Optional[str] = None
    following_block_id: Optional[str] = None

    @property
    def neighbours(self) -> tuple[Optional[str], Optional[str]]:
        """Blocks the buffers were measured against; None means home base."""
        return (self.prior_block_id, self.following_block_id)

    @property
    def start(self) -> datetime:
        return self.block.start

    @property
    def end(self) -> datetime:
        return self.block.end

    def score_key(self) -> tuple:
        """Lower is better; start and professional id keep the order deterministic."""
        return (
            not self.preferred,
            round(self.travel_distance_meters, 3),
            self.idle_minutes,
            self.daily_load_minutes,
            self.block.start,
            self.professional_id,
        )


@dataclass(frozen=True)
class TravelSegment:
    """Travel leg between two consecutive stops."""

    duration_seconds: float
    distance_meters: float
    degraded: bool = False


@dataclass(frozen=True)
class Stop:
    """Input to the route optimizer: one visit with its allowed start range."""

    stop_id: str
    location: Optional[Location]
    duration: timedelta
    earliest: datetime
    latest: datetime
    fixed: bool = False
    booking_id: Optional[str] = None

    @classmethod
    def from_block(cls, block: TimeBlock, window: Optional[TimeWindow] = None) -> "Stop":
        """Fixed stop at the block's committed time unless a flexible window is given."""
        if window is not None and not window.is_fixed:
            return cls(
                stop_id=block.block_id,
                location=block.location,
                duration=block.duration,
                earliest=window.earliest,
                latest=window.latest,
                booking_id=block.booking_id,
            )
        return cls(
            stop_id=block.block_id,
            location=block.location,
            duration=block.duration,
            earliest=block.start,
            latest=block.start,
            fixed=True,
            booking_id=block.booking_id,
        )

    @classmethod
    def from_booking(cls, booking: Booking) -> "Stop":
        return cls(
            stop_id=booking.booking_id,
            location=booking.location,
            duration=booking.duration,
            earliest=booking.window.earliest,
            latest=booking.window.latest,
            fixed=booking.window.is_fixed,
            booking_id=booking.booking_id,
        )


@dataclass(frozen=True)
class RouteStop:
    """A scheduled visit in a Route."""

    sequence: int
    stop_id: str
    booking_id: Optional[str]
    location: Optional[Location]
    arrival: datetime
    start: datetime
    end: datetime
    fixed: bool
    travel: TravelSegment


@dataclass
class Route:
    """Ordered daily itinerary for one professional."""

    professional_id: str
    day: date
    stops: list[RouteStop]
    return_travel: Optional[TravelSegment]
    working_start: Optional[datetime]
    working_end: Optional[datetime]
    unschedulable: list[UnschedulableStopError] = field(default_factory=list)
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_travel_seconds(self) -> float:
        legs = sum(s.travel.duration_seconds for s in self.stops)
        return legs + (self.return_travel.duration_seconds if self.return_travel else 0.0)

    @property
    def total_distance_meters(self) -> float:
        legs = sum(s.travel.distance_meters for s in self.stops)
        return legs + (self.return_travel.distance_meters if self.return_travel else 0.0)

    @property
    def departure(self) -> Optional[datetime]:
        if not self.stops:
            return None
        first = self.stops[0]
        return first.start - timedelta(seconds=first.travel.duration_seconds)

    @property
    def return_at(self) -> Optional[datetime]:
        if not self.stops:
            return None
        back = self.return_travel.duration_seconds if self.return_travel else 0.0
        return self.stops[-1].end + timedelta(seconds=back)

    @property
    def total_elapsed(self) -> timedelta:
        if not self.stops:
            return timedelta(0)
        return self.return_at - self.departure

    @property
    def within_working_hours(self) -> bool:
        if not self.stops:
            return True
        if self.working_start is None or self.working_end is None:
            return False
        return self.working_start <= self.departure and self.return_at <= self.working_end

    @property
    def late_stops(self) -> list[RouteStop]:
        """Stops reached after their scheduled start."""
        return [s for s in self.stops if s.arrival > s.start]

    @property
    def feasible(self) -> bool:
        return (
            self.within_working_hours
            and not self.unschedulable
            and not self.late_stops
        )

    def stop_ids(self) -> list[str]:
        return [s.stop_id for s in self.stops]

    def itinerary(self) -> list[dict[str, Any]]:
        """Flat itinerary rows for a professional's day sheet."""
        return [
            {
                "order": s.sequence,
                "booking_id": s.booking_id,
                "address": str(s.location) if s.location else "",
                "start_time": s.start.strftime("%H:%M"),
                "end_time": s.end.strftime("%H:%M"),
                "duration_minutes": int((s.end - s.start).total_seconds() // 60),
                "travel_minutes": round(s.travel.duration_seconds / 60),
            }
            for s in self.stops
        ]
