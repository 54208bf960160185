"""
Diagnostic and utilization reports over the availability store.

- scan_conflicts: every pair of committed blocks that overlap once travel
  buffers are included. Empty in a healthy system; each hit is logged at
  ERROR as a ConsistencyError.
- build_occupancy_report: booked time over available time per day, where
  available time is working hours minus manually blocked time.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Optional

from src.config import ReportConfig
from src.errors import ConsistencyError
from src.scheduling.availability_store import AvailabilityStore
from src.scheduling.conflict_detector import find_overlapping_pairs
from src.scheduling.models import BlockKind, Professional, TimeBlock
from src.utils import daterange, minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConflictReport:
    """Two committed blocks of one professional that overlap."""

    professional_id: str
    first: TimeBlock
    second: TimeBlock

    def to_dict(self) -> dict[str, Any]:
        return {
            "professional_id": self.professional_id,
            "first_block_id": self.first.block_id,
            "second_block_id": self.second.block_id,
            "first_interval": [self.first.buffered_start.isoformat(), self.first.buffered_end.isoformat()],
            "second_interval": [self.second.buffered_start.isoformat(), self.second.buffered_end.isoformat()],
        }


def scan_conflicts(store: AvailabilityStore) -> list[ConflictReport]:
    reports = []
    for professional_id in sorted(store.professional_ids()):
        for first, second in find_overlapping_pairs(store.get_blocks(professional_id)):
            error = ConsistencyError(
                f"Committed blocks {first.block_id} and {second.block_id} "
                f"overlap for professional {professional_id}"
            )
            logger.error("%s", error)
            reports.append(ConflictReport(professional_id, first, second))
    if not reports:
        logger.info("Conflict scan clean")
    return reports


class LoadStatus(str, Enum):
    AVAILABLE = "available"
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


def load_status(booking_count: int, config: Optional[ReportConfig] = None) -> LoadStatus:
    """Classify a day by how many bookings it holds."""
    config = config or ReportConfig()
    if booking_count == 0:
        return LoadStatus.AVAILABLE
    if booking_count <= config.light_load_max_bookings:
        return LoadStatus.LIGHT
    if booking_count <= config.medium_load_max_bookings:
        return LoadStatus.MEDIUM
    return LoadStatus.HEAVY


@dataclass(frozen=True)
class DayOccupancy:
    day: date
    working_minutes: float
    blocked_minutes: float
    booked_minutes: float
    booking_count: int
    status: LoadStatus

    @property
    def available_minutes(self) -> float:
        return max(self.working_minutes - self.blocked_minutes, 0.0)

    @property
    def utilization(self) -> float:
        if self.available_minutes <= 0:
            return 0.0
        return self.booked_minutes / self.available_minutes


@dataclass
class OccupancyReport:
    professional_id: str
    start_date: date
    end_date: date
    days: list[DayOccupancy] = field(default_factory=list)

    @property
    def booked_minutes(self) -> float:
        return sum(d.booked_minutes for d in self.days)

    @property
    def available_minutes(self) -> float:
        return sum(d.available_minutes for d in self.days)

    @property
    def booking_count(self) -> int:
        return sum(d.booking_count for d in self.days)

    @property
    def utilization(self) -> float:
        available = self.available_minutes
        return self.booked_minutes / available if available > 0 else 0.0


def _clipped_minutes(block: TimeBlock, start: datetime, end: datetime) -> float:
    overlap = min(block.end, end) - max(block.start, start)
    return max(minutes(overlap), 0.0)


def build_occupancy_report(
    professional: Professional,
    store: AvailabilityStore,
    start_date: date,
    end_date: date,
    config: Optional[ReportConfig] = None,
) -> OccupancyReport:
    """Per-day booked versus available time for one professional."""
    if end_date < start_date:
        raise ValueError(f"end_date {end_date} is before start_date {start_date}")

    report = OccupancyReport(professional.professional_id, start_date, end_date)
    for day in daterange(start_date, end_date):
        window = professional.working_window(day)
        day_blocks = store.get_blocks(
            professional.professional_id,
            datetime.combine(day, time.min),
            datetime.combine(day + timedelta(days=1), time.min),
        )
        day_blocks = [b for b in day_blocks if b.day == day]
        bookings = [b for b in day_blocks if b.kind == BlockKind.BOOKING]

        if window is None:
            working = blocked = booked = 0.0
        else:
            work_start, work_end = window
            working = minutes(work_end - work_start)
            blocked = sum(
                _clipped_minutes(b, work_start, work_end)
                for b in day_blocks if b.kind == BlockKind.MANUAL
            )
            booked = sum(_clipped_minutes(b, work_start, work_end) for b in bookings)

        report.days.append(DayOccupancy(
            day=day,
            working_minutes=working,
            blocked_minutes=blocked,
            booked_minutes=booked,
            booking_count=len(bookings),
            status=load_status(len(bookings), config),
        ))
    return report


def format_occupancy_report(report: OccupancyReport) -> str:
    """Format an occupancy report as a plain-text table."""
    lines = [
        "=" * 60,
        f"OCCUPANCY REPORT  {report.professional_id}",
        f"{report.start_date.isoformat()} to {report.end_date.isoformat()}",
        "=" * 60,
        "",
        "  Day          Bookings  Booked   Available  Util    Load",
    ]
    for day in report.days:
        lines.append(
            f"  {day.day.isoformat()}   {day.booking_count:>8}  "
            f"{day.booked_minutes:>5.0f}m  {day.available_minutes:>8.0f}m  "
            f"{day.utilization:>5.1%}  {day.status.value}"
        )
    lines += [
        "",
        "TOTAL",
        f"  Bookings:               {report.booking_count}",
        f"  Booked time:            {report.booked_minutes:.0f} min",
        f"  Available time:         {report.available_minutes:.0f} min",
        f"  Utilization:            {report.utilization:.1%}",
        "=" * 60,
    ]
    return "\n".join(lines)
