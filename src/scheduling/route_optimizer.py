"""
Daily route optimizer for one professional.

Fixed stops are fences that split the working day into segments:

    home@start .. fixed#1 .. fixed#2 .. home@end

Each flexible stop goes into the segment and position with the cheapest
feasible insertion. Each segment is then ordered by nearest neighbour and
improved with 2-opt, simulating arrival times so every ordering respects
the stops' allowed start ranges and the segment's closing fence. Only
strict travel-time improvements are accepted, so equal-cost orderings keep
the original request sequence. Flexible stops that fit nowhere are
returned on ``Route.unschedulable``. A fixed stop that travel from the
previous stop cannot reach by its start keeps its place in the route and
is reported there as late.

Stops without a location (manual blocks) are treated as being at home base.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Optional

from src.config import RoutingConfig
from src.errors import UnschedulableStopError
from src.geo.distance import Location
from src.geo.estimator import GeoEstimator, TravelEstimate
from src.geo.matrix import TravelMatrix
from src.scheduling.models import Professional, Route, RouteStop, Stop, TravelSegment

logger = logging.getLogger(__name__)

_EPSILON = 1e-6


@dataclass
class _Segment:
    """Stretch of the day between two fences."""
    index: int
    start_time: datetime
    start_location: Location
    end_time: datetime
    end_location: Location
    members: list[Stop] = field(default_factory=list)


@dataclass
class _Visit:
    stop: Stop
    arrival: datetime
    start: datetime
    end: datetime
    leg: TravelEstimate


@dataclass
class _Timing:
    visits: list[_Visit]
    closing: TravelEstimate
    travel_seconds: float


class RouteOptimizer:
    """Segment-constrained nearest-neighbour + 2-opt route builder."""

    def __init__(self, config: Optional[RoutingConfig] = None) -> None:
        self._config = config or RoutingConfig()

    @staticmethod
    def locations(professional: Professional, stops: list[Stop]) -> list[Location]:
        """Every location the route can visit, home base first."""
        return [professional.home] + [s.location for s in stops if s.location is not None]

    async def plan_route(
        self,
        professional: Professional,
        day: date,
        stops: list[Stop],
        estimator: GeoEstimator,
    ) -> Route:
        """Prefetch travel for the stop set, then optimize."""
        travel = TravelMatrix(estimator)
        await travel.prefetch(self.locations(professional, stops))
        return self.optimize(professional, day, stops, travel)

    def optimize(
        self,
        professional: Professional,
        day: date,
        stops: list[Stop],
        travel: TravelMatrix,
    ) -> Route:
        """Order one day's stops. Pure given a prefetched travel matrix."""
        window = professional.working_window(day)
        if window is None:
            logger.warning(
                "Professional %s does not work on %s; routing over the whole day",
                professional.professional_id, day.isoformat(),
            )
            day_start = datetime.combine(day, time.min)
            day_end = day_start + timedelta(days=1)
        else:
            day_start, day_end = window

        order_index = {s.stop_id: i for i, s in enumerate(stops)}
        fixed = sorted(
            (s for s in stops if s.fixed), key=lambda s: (s.earliest, order_index[s.stop_id])
        )
        flexible = [s for s in stops if not s.fixed]
        home = professional.home

        segments = self._segments(home, day_start, day_end, fixed)
        unschedulable: list[UnschedulableStopError] = []
        for stop in flexible:
            if not self._insert(stop, segments, home, travel):
                logger.warning(
                    "Stop %s cannot be placed for %s on %s",
                    stop.stop_id, professional.professional_id, day.isoformat(),
                )
                unschedulable.append(UnschedulableStopError(stop.stop_id, stop.booking_id))

        for segment in segments:
            segment.members = self._improve(segment, home, travel, order_index)

        route = self._assemble(professional, day, segments, fixed, home, travel, window)
        route.unschedulable = unschedulable + route.unschedulable
        logger.info(
            "Route for %s on %s: %d stop(s), %.0f min travel, %d unschedulable",
            professional.professional_id, day.isoformat(), len(route.stops),
            route.total_travel_seconds / 60, len(unschedulable),
        )
        return route

    # ------------------------------------------------------------------ #
    # Segments and simulation
    # ------------------------------------------------------------------ #

    @staticmethod
    def _segments(
        home: Location, day_start: datetime, day_end: datetime, fixed: list[Stop]
    ) -> list[_Segment]:
        segments = []
        cursor_time, cursor_location = day_start, home
        for index, fence in enumerate(fixed):
            fence_location = fence.location or home
            segments.append(_Segment(index, cursor_time, cursor_location, fence.earliest, fence_location))
            cursor_time = max(cursor_time, fence.earliest + fence.duration)
            cursor_location = fence_location
        segments.append(_Segment(len(fixed), cursor_time, cursor_location, day_end, home))
        return segments

    @staticmethod
    def _simulate(
        segment: _Segment,
        order: list[Stop],
        home: Location,
        travel: TravelMatrix,
        strict: bool = True,
    ) -> Optional[_Timing]:
        """Walk the order from the segment start; None if a window or the fence is missed."""
        clock = segment.start_time
        here = segment.start_location
        visits = []
        total = 0.0
        for stop in order:
            there = stop.location or home
            leg = travel.lookup(here, there)
            arrival = clock + timedelta(seconds=leg.duration_seconds)
            start = max(arrival, stop.earliest)
            if strict and start > stop.latest:
                return None
            end = start + stop.duration
            visits.append(_Visit(stop, arrival, start, end, leg))
            total += leg.duration_seconds
            clock, here = end, there
        closing = travel.lookup(here, segment.end_location)
        if strict and clock + timedelta(seconds=closing.duration_seconds) > segment.end_time:
            return None
        return _Timing(visits, closing, total + closing.duration_seconds)

    # ------------------------------------------------------------------ #
    # Construction and improvement
    # ------------------------------------------------------------------ #

    def _insert(
        self, stop: Stop, segments: list[_Segment], home: Location, travel: TravelMatrix
    ) -> bool:
        """Cheapest feasible insertion across all segments."""
        best: Optional[tuple[float, _Segment, int]] = None
        for segment in segments:
            if stop.latest < segment.start_time or stop.earliest + stop.duration > segment.end_time:
                continue
            base = self._simulate(segment, segment.members, home, travel)
            if base is None:
                continue
            for position in range(len(segment.members) + 1):
                order = segment.members[:position] + [stop] + segment.members[position:]
                timing = self._simulate(segment, order, home, travel)
                if timing is None:
                    continue
                cost = timing.travel_seconds - base.travel_seconds
                if best is None or cost < best[0] - _EPSILON:
                    best = (cost, segment, position)
        if best is None:
            return False
        _, segment, position = best
        segment.members.insert(position, stop)
        return True

    def _improve(
        self,
        segment: _Segment,
        home: Location,
        travel: TravelMatrix,
        order_index: dict[str, int],
    ) -> list[Stop]:
        if len(segment.members) < 2:
            return segment.members
        original = sorted(segment.members, key=lambda s: order_index[s.stop_id])
        options = [
            original,
            list(segment.members),
            self._nearest_neighbour(segment, home, travel, order_index),
        ]
        best_order: list[Stop] = segment.members
        best_timing: Optional[_Timing] = None
        for option in options:
            timing = self._simulate(segment, option, home, travel)
            if timing is None:
                continue
            if best_timing is None or timing.travel_seconds < best_timing.travel_seconds - _EPSILON:
                best_order, best_timing = option, timing
        if best_timing is None:
            return segment.members
        return self._two_opt(segment, best_order, best_timing, home, travel)

    @staticmethod
    def _nearest_neighbour(
        segment: _Segment,
        home: Location,
        travel: TravelMatrix,
        order_index: dict[str, int],
    ) -> list[Stop]:
        remaining = sorted(segment.members, key=lambda s: order_index[s.stop_id])
        here = segment.start_location
        tour = []
        while remaining:
            nearest = min(
                remaining,
                key=lambda s: (
                    travel.lookup(here, s.location or home).duration_seconds,
                    order_index[s.stop_id],
                ),
            )
            tour.append(nearest)
            remaining.remove(nearest)
            here = nearest.location or home
        return tour

    def _two_opt(
        self,
        segment: _Segment,
        order: list[Stop],
        timing: _Timing,
        home: Location,
        travel: TravelMatrix,
    ) -> list[Stop]:
        """Reverse sub-sequences while that strictly shortens feasible travel."""
        order = list(order)
        passes = 0
        improved = True
        while improved and passes < self._config.two_opt_max_passes:
            improved = False
            passes += 1
            for i in range(len(order) - 1):
                for j in range(i + 1, len(order)):
                    candidate = order[:i] + order[i:j + 1][::-1] + order[j + 1:]
                    candidate_timing = self._simulate(segment, candidate, home, travel)
                    if candidate_timing is None:
                        continue
                    if candidate_timing.travel_seconds < timing.travel_seconds - _EPSILON:
                        order, timing = candidate, candidate_timing
                        improved = True
        logger.debug("2-opt on segment %d finished after %d pass(es)", segment.index, passes)
        return order

    # ------------------------------------------------------------------ #
    # Assembly
    # ------------------------------------------------------------------ #

    def _assemble(
        self,
        professional: Professional,
        day: date,
        segments: list[_Segment],
        fixed: list[Stop],
        home: Location,
        travel: TravelMatrix,
        window: Optional[tuple[datetime, datetime]],
    ) -> Route:
        route_stops: list[RouteStop] = []
        return_travel: Optional[TravelSegment] = None
        late: list[UnschedulableStopError] = []

        for segment in segments:
            timing = self._simulate(segment, segment.members, home, travel, strict=False)
            for visit in timing.visits:
                route_stops.append(_route_stop(len(route_stops) + 1, visit.stop, visit.arrival,
                                               visit.start, visit.end, visit.leg))

            last_end = timing.visits[-1].end if timing.visits else segment.start_time
            arrival = last_end + timedelta(seconds=timing.closing.duration_seconds)
            if segment.index < len(fixed):
                fence = fixed[segment.index]
                if arrival > fence.earliest:
                    logger.warning(
                        "Fixed stop %s is reached at %s, after its start %s",
                        fence.stop_id, arrival.isoformat(), fence.earliest.isoformat(),
                    )
                    late.append(UnschedulableStopError(fence.stop_id, fence.booking_id, late=True))
                route_stops.append(_route_stop(len(route_stops) + 1, fence, arrival,
                                               fence.earliest, fence.earliest + fence.duration,
                                               timing.closing))
            elif route_stops:
                return_travel = _segment(timing.closing)

        return Route(
            professional_id=professional.professional_id,
            day=day,
            stops=route_stops,
            return_travel=return_travel,
            working_start=window[0] if window else None,
            working_end=window[1] if window else None,
            unschedulable=late,
        )


def _segment(leg: TravelEstimate) -> TravelSegment:
    return TravelSegment(
        duration_seconds=leg.duration_seconds,
        distance_meters=leg.distance_meters,
        degraded=leg.degraded,
    )


def _route_stop(
    sequence: int,
    stop: Stop,
    arrival: datetime,
    start: datetime,
    end: datetime,
    leg: TravelEstimate,
) -> RouteStop:
    return RouteStop(
        sequence=sequence,
        stop_id=stop.stop_id,
        booking_id=stop.booking_id,
        location=stop.location,
        arrival=arrival,
        start=start,
        end=end,
        fixed=stop.fixed,
        travel=_segment(leg),
    )
