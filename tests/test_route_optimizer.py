"""Tests for the segment-constrained route optimizer."""

import random
from datetime import timedelta

import pytest

from src.config import RoutingConfig
from src.geo.matrix import TravelMatrix
from src.scheduling.conflict_detector import overlaps
from src.scheduling.models import BlockKind, Stop, TimeWindow
from src.scheduling.route_optimizer import RouteOptimizer
from src.schemas.route_schema import RouteResponse

from tests.conftest import (
    CLIENT_A,
    CLIENT_B,
    CLIENT_C,
    CLIENT_F,
    SUNDAY,
    FakeEstimator,
    at,
    make_block,
)

LINE = {"home": 0, "client-a": 1, "client-b": 2, "client-c": 3, "client-f": 2}


def flexible(stop_id, location, earliest="08:00", latest="16:00", minutes=60, day=None):
    kwargs = {"day": day} if day else {}
    return Stop(
        stop_id=stop_id,
        location=location,
        duration=timedelta(minutes=minutes),
        earliest=at(earliest, **kwargs),
        latest=at(latest, **kwargs),
        booking_id=stop_id,
    )


def fixed(stop_id, location, start, end):
    return Stop.from_block(make_block(stop_id, start, end, location=location))


def clock(minutes):
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


async def plan(professional, stops, estimator, day=None, passes=25):
    optimizer = RouteOptimizer(RoutingConfig(two_opt_max_passes=passes, max_recompute_attempts=3))
    return await optimizer.plan_route(professional, day or at("08:00").date(), stops, estimator)


def assert_feasible(route, stops):
    by_id = {s.stop_id: s for s in stops}
    for stop in route.stops:
        source = by_id[stop.stop_id]
        if source.fixed:
            assert stop.start == source.earliest
        else:
            assert source.earliest <= stop.start <= source.latest
        assert stop.arrival <= stop.start
    for first, second in zip(route.stops, route.stops[1:]):
        assert first.end <= second.arrival
    assert route.within_working_hours


class TestFixedFences:
    @pytest.mark.asyncio
    async def test_three_flexible_around_one_fixed(self, professional):
        stops = [
            flexible("C", CLIENT_C),
            flexible("A", CLIENT_A),
            flexible("B", CLIENT_B),
            fixed("F", CLIENT_F, "13:00", "14:00"),
        ]
        route = await plan(professional, stops, FakeEstimator(positions=LINE))

        assert route.stop_ids()[-1] == "F"
        assert set(route.stop_ids()[:3]) == {"A", "B", "C"}
        fence = route.stops[-1]
        assert (fence.start, fence.end) == (at("13:00"), at("14:00"))
        for stop in route.stops[:-1]:
            assert not overlaps(stop.start, stop.end, at("13:00"), at("14:00"))
        assert route.total_travel_seconds == 60 * 60
        assert route.unschedulable == []
        assert_feasible(route, stops)

    @pytest.mark.asyncio
    async def test_fixed_stop_is_never_moved(self, professional):
        stops = [
            fixed("F", CLIENT_F, "09:00", "10:00"),
            flexible("A", CLIENT_A, earliest="08:00", latest="15:00"),
        ]
        route = await plan(professional, stops, FakeEstimator(positions=LINE))
        fence = next(s for s in route.stops if s.stop_id == "F")
        assert fence.start == at("09:00")
        assert fence.fixed
        assert_feasible(route, stops)

    @pytest.mark.asyncio
    async def test_stop_that_fits_nowhere_is_reported(self, professional):
        stops = [
            fixed("F", CLIENT_F, "09:00", "17:00"),
            flexible("A", CLIENT_A, earliest="08:00", latest="10:00", minutes=120),
        ]
        route = await plan(professional, stops, FakeEstimator(positions=LINE))
        assert [e.stop_id for e in route.unschedulable] == ["A"]
        assert route.unschedulable[0].booking_id == "A"
        assert route.stop_ids() == ["F"]
        assert not route.feasible

    @pytest.mark.asyncio
    async def test_unreachable_fixed_stop_is_flagged_late(self, professional):
        stops = [
            fixed("A", CLIENT_A, "09:00", "10:00"),
            fixed("C", CLIENT_C, "10:05", "11:00"),  # 20 minutes from client-a
        ]
        route = await plan(professional, stops, FakeEstimator(positions=LINE))

        assert route.stop_ids() == ["A", "C"]
        late = route.stops[1]
        assert late.arrival == at("10:20")
        assert late.start == at("10:05")
        assert [s.stop_id for s in route.late_stops] == ["C"]
        assert [(e.stop_id, e.late) for e in route.unschedulable] == [("C", True)]
        assert route.within_working_hours
        assert not route.feasible

        response = RouteResponse.from_route(route)
        assert response.late == ["C"]
        assert response.unschedulable == []
        assert not response.feasible

    @pytest.mark.asyncio
    async def test_overlapping_fixed_stops_are_flagged(self, professional):
        stops = [
            fixed("A", CLIENT_A, "09:00", "11:00"),
            fixed("B", CLIENT_A, "10:00", "12:00"),
        ]
        route = await plan(professional, stops, FakeEstimator(positions=LINE))
        assert [e.stop_id for e in route.unschedulable if e.late] == ["B"]
        assert not route.feasible

    @pytest.mark.asyncio
    async def test_manual_block_is_a_fence_at_home(self, professional):
        lunch = Stop.from_block(
            make_block("LUNCH", "12:00", "13:00", location=None, kind=BlockKind.MANUAL)
        )
        stops = [lunch, flexible("A", CLIENT_A, earliest="11:00", latest="13:30")]
        route = await plan(professional, stops, FakeEstimator(positions=LINE))
        visit = next(s for s in route.stops if s.stop_id == "A")
        assert not overlaps(visit.start, visit.end, at("12:00"), at("13:00"))
        assert_feasible(route, stops)


class TestOrdering:
    @pytest.mark.asyncio
    async def test_equal_cost_keeps_request_order(self, professional):
        stops = [flexible("S1", CLIENT_C), flexible("S2", CLIENT_A), flexible("S3", CLIENT_B)]
        route = await plan(professional, stops, FakeEstimator(default_minutes=15))
        assert route.stop_ids() == ["S1", "S2", "S3"]

    @pytest.mark.asyncio
    async def test_reorders_to_cut_travel(self, professional):
        stops = [flexible("C", CLIENT_C), flexible("A", CLIENT_A), flexible("B", CLIENT_B)]
        route = await plan(professional, stops, FakeEstimator(positions=LINE))
        assert route.stop_ids() in (["A", "B", "C"], ["C", "B", "A"])
        assert route.total_travel_seconds == 60 * 60
        assert_feasible(route, stops)

    @pytest.mark.asyncio
    async def test_time_windows_override_distance(self, professional):
        stops = [
            flexible("A", CLIENT_A, earliest="14:00", latest="15:00"),
            flexible("C", CLIENT_C, earliest="08:00", latest="09:00"),
        ]
        route = await plan(professional, stops, FakeEstimator(positions=LINE))
        assert route.stop_ids() == ["C", "A"]
        assert_feasible(route, stops)

    @pytest.mark.asyncio
    async def test_zero_passes_still_feasible(self, professional):
        stops = [flexible("C", CLIENT_C), flexible("A", CLIENT_A), flexible("B", CLIENT_B)]
        route = await plan(professional, stops, FakeEstimator(positions=LINE), passes=0)
        assert_feasible(route, stops)


class TestRouteShape:
    @pytest.mark.asyncio
    async def test_empty_route(self, professional):
        route = await plan(professional, [], FakeEstimator())
        assert route.stops == []
        assert route.return_travel is None
        assert route.total_travel_seconds == 0
        assert route.within_working_hours

    @pytest.mark.asyncio
    async def test_departure_return_and_itinerary(self, professional):
        stops = [flexible("A", CLIENT_A, earliest="10:00", latest="10:00")]
        route = await plan(professional, stops, FakeEstimator(positions=LINE))
        assert route.departure == at("09:50")
        assert route.return_at == at("11:10")
        assert route.total_elapsed == timedelta(minutes=80)
        row = route.itinerary()[0]
        assert row["start_time"] == "10:00"
        assert row["travel_minutes"] == 10
        assert row["address"] == "client-a"

    @pytest.mark.asyncio
    async def test_day_off_is_outside_working_hours(self, professional):
        stops = [
            Stop.from_block(make_block("X", "10:00", "11:00", day=SUNDAY), None),
        ]
        route = await plan(professional, stops, FakeEstimator(), day=SUNDAY)
        assert route.stop_ids() == ["X"]
        assert not route.within_working_hours

    def test_optimize_is_synchronous_with_prefetched_matrix(self, professional):
        optimizer = RouteOptimizer()
        window = TimeWindow.fixed(at("10:00"), at("11:00"))
        stop = Stop(
            stop_id="A", location=CLIENT_A, duration=window.duration,
            earliest=window.earliest, latest=window.latest, fixed=True,
        )
        route = optimizer.optimize(professional, at("10:00").date(), [stop], TravelMatrix(FakeEstimator()))
        assert route.stops[0].travel.degraded


class TestRandomDays:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(16))
    async def test_route_is_feasible_or_flagged(self, professional, seed):
        rng = random.Random(seed)
        places = [CLIENT_A, CLIENT_B, CLIENT_C, CLIENT_F]
        stops = []
        for i in range(rng.randint(0, 3)):
            start = rng.randrange(8 * 60, 17 * 60, 15)
            end = min(start + rng.choice([30, 60, 90]), 18 * 60)
            stops.append(fixed(f"F{i}", rng.choice(places), clock(start), clock(end)))
        for i in range(rng.randint(1, 5)):
            earliest = rng.randrange(8 * 60, 15 * 60, 15)
            latest = min(earliest + rng.choice([0, 30, 60, 180]), 16 * 60)
            stops.append(flexible(
                f"S{i}", rng.choice(places), clock(earliest), clock(latest),
                minutes=rng.choice([30, 60, 90]),
            ))

        route = await plan(professional, stops, FakeEstimator(positions=LINE))

        ids = route.stop_ids()
        assert len(ids) == len(set(ids))
        assert set(ids) | {e.stop_id for e in route.unschedulable} == {s.stop_id for s in stops}
        assert {s.stop_id for s in route.late_stops} == {
            e.stop_id for e in route.unschedulable if e.late
        }
        if route.feasible:
            assert_feasible(route, stops)
        else:
            assert route.unschedulable or not route.within_working_hours
