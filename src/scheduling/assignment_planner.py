"""
Assignment planner: ranks professionals and start times for a booking.

    1. Keep active professionals with the required skill whose working
       hours can hold the requested window.
    2. Enumerate start times: one for a fixed window, a grid at the
       configured granularity for a flexible one.
    3. Drop starts whose travel buffers, measured against the actual prior
       and next stops, reach into another service or leave working hours.
    4. Rank by preference, travel distance to the nearest commitment,
       idle time introduced, then current daily load.

"No professional available" is a normal outcome returned on PlanResult,
not an exception.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from src.catalog.professionals import ProfessionalDirectory
from src.config import PlannerConfig
from src.errors import NoAvailabilityError
from src.geo.matrix import TravelMatrix
from src.logging_context import get_request_logger
from src.scheduling.availability_store import AvailabilityStore
from src.scheduling.conflict_detector import ConflictDetector, find_travel_conflicts
from src.scheduling.models import BlockKind, Booking, Candidate, Professional, TimeWindow
from src.utils import new_ref

logger = get_request_logger(__name__)


@dataclass
class PlanResult:
    """Ranked candidates for a booking, or the reason there are none."""

    booking_id: str
    candidates: list[Candidate] = field(default_factory=list)
    error: Optional[NoAvailabilityError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.candidates)

    @property
    def best(self) -> Optional[Candidate]:
        return self.candidates[0] if self.candidates else None


def covers_window(working: tuple[datetime, datetime], window: TimeWindow) -> bool:
    """True if some allowed start lets the whole service fit in working hours."""
    work_start, work_end = working
    first = max(window.earliest, work_start)
    last = min(window.latest, work_end - window.duration)
    return first <= last


class AssignmentPlanner:
    """Produces ranked (professional, interval) candidates for booking requests."""

    def __init__(
        self,
        directory: ProfessionalDirectory,
        store: AvailabilityStore,
        detector: ConflictDetector,
        config: Optional[PlannerConfig] = None,
    ) -> None:
        self._directory = directory
        self._store = store
        self._detector = detector
        self._config = config or PlannerConfig()

    def eligible(self, booking: Booking) -> list[tuple[Professional, tuple[datetime, datetime]]]:
        """Active professionals with the skill and working hours for the booking."""
        eligible = []
        for professional in self._directory.active():
            if not professional.has_skill(booking.required_skill):
                continue
            working = professional.working_window(booking.day)
            if working is None or not covers_window(working, booking.window):
                continue
            eligible.append((professional, working))
        return eligible

    async def plan(
        self,
        booking: Booking,
        limit: Optional[int] = None,
        travel: Optional[TravelMatrix] = None,
    ) -> PlanResult:
        """Return the top candidates for a booking, best first."""
        limit = limit or self._config.candidate_limit
        eligible = self.eligible(booking)
        if not eligible:
            reason = (
                f"no active professional with skill '{booking.required_skill}' "
                f"working on {booking.day.isoformat()} during the requested window"
            )
            logger.info("Booking %s: %s", booking.booking_id, reason)
            return PlanResult(booking.booking_id, error=NoAvailabilityError(booking.booking_id, reason))

        granularity = timedelta(minutes=self._config.slot_granularity_minutes)
        if travel is None:
            travel = self._detector.new_matrix()
        starts = booking.window.candidate_starts(granularity)
        candidates: list[Candidate] = []

        for professional, (work_start, work_end) in eligible:
            candidates.extend(await self._candidates_for(
                professional, booking, starts, work_start, work_end, travel,
            ))

        if not candidates:
            reason = "every candidate time conflicts with existing commitments"
            logger.info("Booking %s: %s", booking.booking_id, reason)
            return PlanResult(booking.booking_id, error=NoAvailabilityError(booking.booking_id, reason))

        candidates.sort(key=Candidate.score_key)
        logger.info(
            "Booking %s: %d candidate(s), best %s at %s",
            booking.booking_id, len(candidates),
            candidates[0].professional_id, candidates[0].start.isoformat(),
        )
        return PlanResult(booking.booking_id, candidates=candidates[:limit])

    async def _candidates_for(
        self,
        professional: Professional,
        booking: Booking,
        starts: list[datetime],
        work_start: datetime,
        work_end: datetime,
        travel: TravelMatrix,
    ) -> list[Candidate]:
        day_blocks = self._store.get_day_blocks(professional.professional_id, booking.day)
        load_minutes = sum(
            b.duration.total_seconds() / 60 for b in day_blocks if b.kind == BlockKind.BOOKING
        )
        preferred = booking.preferred_professional_id == professional.professional_id

        found = []
        for start in starts:
            end = start + booking.duration
            if start < work_start or end > work_end:
                continue
            placement = await self._detector.place(
                professional,
                day_blocks,
                start,
                end,
                booking.location,
                block_id=new_ref("TB", 8),
                booking_id=booking.booking_id,
                travel=travel,
            )
            block = placement.block
            if block.buffered_start < work_start or block.buffered_end > work_end:
                continue
            if find_travel_conflicts(block, day_blocks):
                continue
            found.append(Candidate(
                professional_id=professional.professional_id,
                block=block,
                travel_distance_meters=placement.nearest_distance_meters,
                idle_minutes=placement.idle_minutes,
                daily_load_minutes=load_minutes,
                preferred=preferred,
                prior_block_id=placement.prior.block_id if placement.prior else None,
                following_block_id=placement.following.block_id if placement.following else None,
            ))
        logger.debug(
            "Professional %s: %d of %d start(s) feasible",
            professional.professional_id, len(found), len(starts),
        )
        return found
