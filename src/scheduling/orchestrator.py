"""
Scheduling orchestrator: the public entry point of the engine.

Accepts booking requests, asks the assignment planner for ranked
candidates, commits the chosen block to the availability store and keeps a
per-(professional, day) route cache that the store invalidates on every
mutation.

Typical flow:
    1. request_booking -> Booking(requested) -> planner -> reserve -> assigned
    2. confirm_booking -> start_booking -> complete_booking
    3. cancel_booking at any non-terminal point releases the block and
       recomputes the affected route

Collaborators are constructed once and passed in; nothing here is global.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from src.catalog.professionals import ProfessionalDirectory
from src.catalog.services import match_service, required_skill
from src.config import AppConfig
from src.errors import ConflictError, NoAvailabilityError, NotFoundError
from src.geo.estimator import GeoEstimator
from src.geo.matrix import TravelMatrix
from src.logging_context import get_request_logger, scheduling_context, set_request_id
from src.schemas.booking_schema import BookingRequestSchema
from src.scheduling.assignment_planner import AssignmentPlanner
from src.scheduling.availability_store import AvailabilityStore, ReserveResult
from src.scheduling.conflict_detector import ConflictDetector
from src.scheduling.models import (
    BlockKind,
    Booking,
    Candidate,
    Route,
    Stop,
    TimeBlock,
)
from src.scheduling.reports import (
    ConflictReport,
    OccupancyReport,
    build_occupancy_report,
    scan_conflicts,
)
from src.scheduling.route_optimizer import RouteOptimizer
from src.scheduling.state_machine import BookingStatus, BookingTrigger, InvalidTransitionError
from src.utils import new_ref

logger = get_request_logger(__name__)

# Bookings whose visit can no longer move within their window.
_PINNED_STATES = frozenset({BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED})


@dataclass
class ScheduleOutcome:
    """Result of a scheduling call. ``error`` is set when nothing was committed."""

    booking: Booking
    candidates: list[Candidate] = field(default_factory=list)
    block: Optional[TimeBlock] = None
    error: Optional[Union[NoAvailabilityError, ConflictError]] = None
    route: Optional[Route] = None

    @property
    def assigned(self) -> bool:
        return self.block is not None and self.error is None


class SchedulingOrchestrator:
    """Coordinates planner, store and optimizer for booking requests."""

    def __init__(
        self,
        directory: ProfessionalDirectory,
        store: AvailabilityStore,
        estimator: GeoEstimator,
        config: Optional[AppConfig] = None,
        planner: Optional[AssignmentPlanner] = None,
        optimizer: Optional[RouteOptimizer] = None,
        detector: Optional[ConflictDetector] = None,
    ) -> None:
        self._config = config or AppConfig()
        self._directory = directory
        self._store = store
        self._estimator = estimator
        self._detector = detector or ConflictDetector(
            estimator, self._config.planner.min_travel_buffer_minutes
        )
        self._planner = planner or AssignmentPlanner(
            directory, store, self._detector, self._config.planner
        )
        self._optimizer = optimizer or RouteOptimizer(self._config.routing)
        self._bookings: dict[str, Booking] = {}
        self._routes: dict[tuple[str, date], Route] = {}
        store.subscribe(self._invalidate)

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    def get_booking(self, booking_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    def bookings(self) -> list[Booking]:
        return sorted(self._bookings.values(), key=lambda b: b.created_at)

    def pending_bookings(self) -> list[Booking]:
        """Bookings still waiting for a professional, oldest first."""
        return [b for b in self.bookings() if b.status == BookingStatus.REQUESTED]

    def _create_booking(self, request: BookingRequestSchema) -> Booking:
        service_type = match_service(request.service_type) or request.service_type.lower().strip()
        booking = Booking(
            booking_id=new_ref("BK"),
            service_type=service_type,
            location=request.location.to_location(),
            window=request.to_window(),
            required_skill=(request.required_skill or required_skill(service_type)).lower().strip(),
            customer_name=request.customer_name,
            preferred_professional_id=request.preferred_professional_id,
        )
        self._bookings[booking.booking_id] = booking
        return booking

    async def request_booking(
        self, request: BookingRequestSchema, auto_assign: bool = True
    ) -> ScheduleOutcome:
        """
        Create a booking and, in auto mode, commit the best available candidate.

        Manual mode returns the ranked candidates and leaves the booking
        requested; commit one with ``assign_booking``.
        """
        booking = self._create_booking(request)
        set_request_id(booking.booking_id)
        logger.info(
            "Booking %s requested: %s, skill %s, %s to %s",
            booking.booking_id, booking.service_type, booking.required_skill,
            booking.window.earliest.isoformat(), booking.window.latest.isoformat(),
        )
        if auto_assign:
            return await self._auto_assign(booking)

        plan = await self._planner.plan(booking)
        return ScheduleOutcome(booking, candidates=plan.candidates, error=plan.error)

    async def retry_booking(self, booking_id: str) -> ScheduleOutcome:
        """Re-plan a booking that is still waiting for a professional."""
        booking = self.get_booking(booking_id)
        set_request_id(booking.booking_id)
        self._require(booking, BookingTrigger.ASSIGN)
        logger.info("Retrying booking %s", booking_id)
        return await self._auto_assign(booking)

    async def assign_booking(self, booking_id: str, candidate: Candidate) -> ScheduleOutcome:
        """Commit a candidate chosen in manual mode."""
        booking = self.get_booking(booking_id)
        set_request_id(booking.booking_id)
        self._require(booking, BookingTrigger.ASSIGN)
        if candidate.block.booking_id != booking_id:
            raise ValueError(
                f"Candidate block {candidate.block.block_id} was planned for "
                f"{candidate.block.booking_id}, not {booking_id}"
            )
        result = await self._store.reserve(
            candidate.professional_id, candidate.block, candidate.neighbours
        )
        if not result.success:
            return ScheduleOutcome(booking, candidates=[candidate], error=result.error)
        return await self._commit(booking, candidate, [candidate])

    async def _auto_assign(self, booking: Booking) -> ScheduleOutcome:
        """Reserve the best candidate, replanning when every candidate went stale."""
        attempts = self._config.planner.max_plan_attempts
        for attempt in range(1, attempts + 1):
            plan = await self._planner.plan(booking)
            if not plan.ok:
                return ScheduleOutcome(booking, error=plan.error)

            last_conflict: Optional[ConflictError] = None
            for candidate in plan.candidates:
                with scheduling_context(professional_id=candidate.professional_id):
                    result = await self._store.reserve(
                        candidate.professional_id, candidate.block, candidate.neighbours
                    )
                if result.success:
                    return await self._commit(booking, candidate, plan.candidates)
                last_conflict = result.error
                logger.info(
                    "Candidate %s at %s lost to %s, trying next",
                    candidate.professional_id, candidate.start.isoformat(),
                    result.error.overlapping_block_id,
                )
            logger.info(
                "Booking %s: all %d candidate(s) taken (attempt %d/%d)",
                booking.booking_id, len(plan.candidates), attempt, attempts,
            )

        logger.warning("Booking %s stays requested", booking.booking_id)
        return ScheduleOutcome(booking, candidates=plan.candidates, error=last_conflict)

    async def _commit(
        self, booking: Booking, candidate: Candidate, candidates: list[Candidate]
    ) -> ScheduleOutcome:
        if not booking.lifecycle.can_transition(BookingTrigger.ASSIGN):
            await self._store.release(candidate.block.block_id)
            self._require(booking, BookingTrigger.ASSIGN)
        booking.professional_id = candidate.professional_id
        booking.block_id = candidate.block.block_id
        booking.apply(BookingTrigger.ASSIGN)
        with scheduling_context(professional_id=candidate.professional_id):
            logger.info(
                "Booking %s assigned to %s [%s, %s)",
                booking.booking_id, candidate.professional_id,
                candidate.start.isoformat(), candidate.end.isoformat(),
            )
        route = await self.recompute_route(candidate.professional_id, booking.day)
        return ScheduleOutcome(booking, candidates, candidate.block, None, route)

    @staticmethod
    def _require(booking: Booking, trigger: BookingTrigger) -> None:
        if not booking.lifecycle.can_transition(trigger):
            raise InvalidTransitionError(
                f"Booking {booking.booking_id} is {booking.status.value}; "
                f"cannot {trigger.value}"
            )

    def confirm_booking(self, booking_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        booking.apply(BookingTrigger.CONFIRM)
        logger.info("Booking %s confirmed", booking_id)
        return booking

    def start_booking(self, booking_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        booking.apply(BookingTrigger.START)
        self._invalidate(booking.professional_id, booking.day)
        logger.info("Booking %s in progress", booking_id)
        return booking

    def complete_booking(self, booking_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        booking.apply(BookingTrigger.COMPLETE)
        logger.info("Booking %s completed", booking_id)
        return booking

    async def cancel_booking(self, booking_id: str) -> Booking:
        """Cancel a booking, release its block and recompute the affected route."""
        booking = self.get_booking(booking_id)
        set_request_id(booking.booking_id)
        booking.apply(BookingTrigger.CANCEL)
        logger.info("Booking %s cancelled", booking_id)
        if booking.block_id is not None:
            await self._store.release(booking.block_id)
            await self.recompute_route(booking.professional_id, booking.day)
        return booking

    # ------------------------------------------------------------------ #
    # Manual blocks
    # ------------------------------------------------------------------ #

    async def block_time(
        self, professional_id: str, start: datetime, end: datetime, reason: str = ""
    ) -> ReserveResult:
        """Block time on a professional's calendar (vacation, personal time)."""
        self._directory.get(professional_id)
        block = TimeBlock(
            block_id=new_ref("TB", 8),
            professional_id=professional_id,
            start=start,
            end=end,
            kind=BlockKind.MANUAL,
            reason=reason,
        )
        result = await self._store.reserve(professional_id, block)
        if result.success:
            logger.info("Manual block %s for %s: %s", block.block_id, professional_id, reason or "-")
            await self.recompute_route(professional_id, block.day)
        return result

    async def unblock_time(self, block_id: str) -> bool:
        """Remove a manual block. Idempotent like ``AvailabilityStore.release``."""
        block = self._store.get_block(block_id) if self._store.is_active(block_id) else None
        if block is not None and block.kind != BlockKind.MANUAL:
            raise ValueError(f"Block {block_id} belongs to a booking; cancel the booking instead")
        released = await self._store.release(block_id)
        if released and block is not None:
            await self.recompute_route(block.professional_id, block.day)
        return released

    # ------------------------------------------------------------------ #
    # Routes
    # ------------------------------------------------------------------ #

    def _invalidate(self, professional_id: Optional[str], day: date) -> None:
        if professional_id is not None and self._routes.pop((professional_id, day), None):
            logger.debug("Route cache dropped for %s on %s", professional_id, day.isoformat())

    def _day_blocks(self, professional_id: str, day: date) -> list[TimeBlock]:
        day_start = datetime.combine(day, time.min)
        blocks = self._store.get_blocks(professional_id, day_start, day_start + timedelta(days=1))
        return [b for b in blocks if b.day == day]

    def _request_order(self, block: TimeBlock) -> tuple:
        # Manual blocks by start first, then bookings in the order they were requested.
        booking = self._bookings.get(block.booking_id) if block.booking_id else None
        if booking is None:
            return (0, block.start, block.block_id)
        return (1, booking.created_at, block.block_id)

    def _route_stops(self, professional_id: str, day: date) -> list[Stop]:
        blocks = sorted(self._day_blocks(professional_id, day), key=self._request_order)
        return [self._stop_for(b) for b in blocks]

    def _stop_for(self, block: TimeBlock) -> Stop:
        booking = self._bookings.get(block.booking_id) if block.booking_id else None
        if booking is None or booking.status in _PINNED_STATES:
            return Stop.from_block(block)
        return Stop.from_block(block, booking.window)

    async def recompute_route(self, professional_id: str, day: date) -> Route:
        """
        Rebuild and cache the route from the current block set.

        Travel is prefetched first; if the block set changes during the
        prefetch the prefetch is repeated for the new set (bounded). The
        final read of the blocks and the optimization run without
        suspending, so the cached route always matches the store.
        """
        with scheduling_context(professional_id=professional_id):
            return await self._recompute_route(professional_id, day)

    async def _recompute_route(self, professional_id: str, day: date) -> Route:
        professional = self._directory.get(professional_id)
        attempts = max(self._config.routing.max_recompute_attempts, 1)
        travel = TravelMatrix(self._estimator)

        for attempt in range(1, attempts + 1):
            version = self._store.version(professional_id, day)
            stops = self._route_stops(professional_id, day)
            await travel.prefetch(self._optimizer.locations(professional, stops))
            if self._store.version(professional_id, day) == version:
                break
            logger.info(
                "Blocks for %s on %s changed during route prefetch (attempt %d/%d)",
                professional_id, day.isoformat(), attempt, attempts,
            )

        stops = self._route_stops(professional_id, day)
        route = self._optimizer.optimize(professional, day, stops, travel)
        self._routes[(professional_id, day)] = route
        if route.unschedulable:
            logger.warning(
                "Route for %s on %s has %d unschedulable stop(s): %s",
                professional_id, day.isoformat(), len(route.unschedulable),
                ", ".join(e.stop_id for e in route.unschedulable),
            )
        return route

    async def get_route(self, professional_id: str, day: date) -> Route:
        cached = self._routes.get((professional_id, day))
        if cached is not None:
            return cached
        return await self.recompute_route(professional_id, day)

    async def optimize_bookings(self, professional_id: str, booking_ids: list[str]) -> Route:
        """Optimize an explicit set of bookings for one professional and day.

        The result is not cached: it describes a proposal, not the
        professional's committed day.
        """
        professional = self._directory.get(professional_id)
        bookings = [self.get_booking(bid) for bid in booking_ids]
        if not bookings:
            raise ValueError("At least one booking is required")
        days = {b.day for b in bookings}
        if len(days) > 1:
            raise ValueError(
                f"Bookings span several days: {sorted(d.isoformat() for d in days)}"
            )
        stops = [Stop.from_booking(b) for b in bookings]
        return await self._optimizer.plan_route(professional, days.pop(), stops, self._estimator)

    # ------------------------------------------------------------------ #
    # Queries and reports
    # ------------------------------------------------------------------ #

    def scan_conflicts(self) -> list[ConflictReport]:
        return scan_conflicts(self._store)

    def occupancy_report(
        self, professional_id: str, start_date: date, end_date: date
    ) -> OccupancyReport:
        professional = self._directory.get(professional_id)
        return build_occupancy_report(
            professional, self._store, start_date, end_date, self._config.reports
        )

    def available_slots(
        self, professional_id: str, day: date, duration: timedelta
    ) -> list[datetime]:
        """Start times on the planner grid where ``duration`` fits in free time.

        Travel to and from the slot is not included; the planner applies
        buffers when a booking is actually placed.
        """
        professional = self._directory.get(professional_id)
        window = professional.working_window(day)
        if window is None or not professional.active:
            return []
        work_start, work_end = window
        step = timedelta(minutes=self._config.planner.slot_granularity_minutes)

        slots = []
        for free_start, free_end in self._store.free_intervals(professional_id, work_start, work_end):
            offset = free_start - work_start
            steps = -(-offset // step)
            current = work_start + steps * step
            while current + duration <= free_end:
                slots.append(current)
                current += step
        return slots

    async def reschedule_pending(self) -> list[ScheduleOutcome]:
        """Retry every pending booking in request order."""
        outcomes = []
        for booking in self.pending_bookings():
            outcomes.append(await self.retry_booking(booking.booking_id))
        return outcomes
