"""Tests for request validation and response models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from src.schemas.booking_schema import BookingRequestSchema, LocationSchema
from src.schemas.professional_schema import ProfessionalSchema, WorkingHoursSchema
from src.schemas.route_schema import ConflictResponse, OccupancyQuery, RouteResponse
from src.schemas.scenario_schema import ScheduleResponse
from src.scheduling.reports import format_occupancy_report

from tests.conftest import CLIENT_A, MONDAY, at, make_request

LOCATION = {"lat": -23.56, "lon": -46.65, "label": "Rua Augusta 100"}


class TestBookingRequest:
    def test_fixed_window(self):
        request = make_request("10:00", "12:00")
        assert request.is_fixed
        window = request.to_window()
        assert window.is_fixed
        assert window.duration == timedelta(hours=2)

    def test_flexible_window_defaults_to_catalog_duration(self):
        request = make_request(earliest="09:00", latest="11:00")
        assert not request.is_fixed
        assert request.to_window().duration == timedelta(minutes=180)

    def test_both_windows_rejected(self):
        with pytest.raises(ValidationError, match="not both"):
            BookingRequestSchema(
                service_type="quick clean", location=LOCATION,
                start=at("10:00"), end=at("12:00"),
                earliest_start=at("09:00"), latest_start=at("11:00"),
            )

    def test_missing_window_rejected(self):
        with pytest.raises(ValidationError, match="time window is required"):
            BookingRequestSchema(service_type="quick clean", location=LOCATION)

    def test_half_fixed_window_rejected(self):
        with pytest.raises(ValidationError, match="both start and end"):
            BookingRequestSchema(service_type="quick clean", location=LOCATION, start=at("10:00"))

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            BookingRequestSchema(
                service_type="quick clean", location=LOCATION,
                start=at("12:00"), end=at("10:00"),
            )

    def test_timezone_is_dropped(self):
        aware = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)
        request = BookingRequestSchema(
            service_type="quick clean", location=LOCATION,
            start=aware, end=aware + timedelta(hours=1),
        )
        assert request.start == at("10:00")
        assert request.start.tzinfo is None

    def test_bad_coordinates_rejected(self):
        with pytest.raises(ValidationError):
            LocationSchema(lat=123.0, lon=0.0)

    def test_location_round_trip(self):
        assert LocationSchema.from_location(CLIENT_A).to_location() == CLIENT_A


class TestProfessionalSchema:
    def test_working_hours(self):
        schema = ProfessionalSchema(
            professional_id="PRO-9", name="Carla", home=LOCATION,
            working_hours={0: {"start": "07:30", "end": "16:00"}},
        )
        hours = schema.to_hours()
        assert hours[0][0].hour == 7 and hours[0][0].minute == 30

    def test_defaults_when_hours_omitted(self):
        schema = ProfessionalSchema(professional_id="PRO-9", name="Carla", home=LOCATION)
        assert schema.to_hours() is None

    def test_reversed_hours_rejected(self):
        with pytest.raises(ValidationError):
            WorkingHoursSchema(start="18:00", end="08:00")

    def test_bad_weekday_rejected(self):
        with pytest.raises(ValidationError, match="Weekdays"):
            ProfessionalSchema(
                professional_id="PRO-9", name="Carla", home=LOCATION,
                working_hours={7: {"start": "08:00", "end": "12:00"}},
            )


class TestResponses:
    @pytest.mark.asyncio
    async def test_assigned_outcome(self, orchestrator):
        outcome = await orchestrator.request_booking(make_request(customer_name="Maria"))
        response = ScheduleResponse.from_outcome(outcome)

        assert response.success
        assert "assigned to PRO-1" in response.message
        assert response.error_type is None
        assert response.booking.status == "assigned"
        assert response.booking.customer_name == "Maria"
        assert response.route.stops[0].travel_minutes == 15.0
        assert response.route.within_working_hours

    @pytest.mark.asyncio
    async def test_failed_outcome(self, orchestrator):
        outcome = await orchestrator.request_booking(make_request(service_type="office"))
        response = ScheduleResponse.from_outcome(outcome)
        assert not response.success
        assert response.error_type == "NoAvailabilityError"
        assert response.route is None

    @pytest.mark.asyncio
    async def test_route_and_reports(self, orchestrator):
        await orchestrator.request_booking(make_request())
        route = RouteResponse.from_route(await orchestrator.get_route("PRO-1", MONDAY))
        assert route.total_travel_minutes == 30.0
        assert route.total_elapsed_minutes == 150.0

        assert ConflictResponse.from_reports(orchestrator.scan_conflicts()).healthy

        text = format_occupancy_report(orchestrator.occupancy_report("PRO-1", MONDAY, MONDAY))
        assert "OCCUPANCY REPORT  PRO-1" in text
        assert "Utilization" in text

    def test_occupancy_query_order(self):
        with pytest.raises(ValidationError):
            OccupancyQuery(professional_id="PRO-1", start_date=MONDAY, end_date=MONDAY - timedelta(days=1))
