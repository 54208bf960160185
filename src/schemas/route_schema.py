"""Route, conflict and occupancy response models."""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from src.scheduling.models import Route, RouteStop
from src.scheduling.reports import ConflictReport, OccupancyReport


class RouteStopResponse(BaseModel):
    order: int
    stop_id: str
    booking_id: Optional[str] = None
    address: str = ""
    lat: Optional[float] = None
    lon: Optional[float] = None
    arrival: datetime
    start: datetime
    end: datetime
    fixed: bool
    travel_minutes: float
    travel_distance_meters: float
    degraded: bool = False

    @classmethod
    def from_stop(cls, stop: RouteStop) -> "RouteStopResponse":
        return cls(
            order=stop.sequence,
            stop_id=stop.stop_id,
            booking_id=stop.booking_id,
            address=str(stop.location) if stop.location else "",
            lat=stop.location.lat if stop.location else None,
            lon=stop.location.lon if stop.location else None,
            arrival=stop.arrival,
            start=stop.start,
            end=stop.end,
            fixed=stop.fixed,
            travel_minutes=round(stop.travel.duration_seconds / 60, 1),
            travel_distance_meters=round(stop.travel.distance_meters, 1),
            degraded=stop.travel.degraded,
        )


class RouteResponse(BaseModel):
    """A professional's ordered day."""
    professional_id: str
    day: date
    stops: list[RouteStopResponse] = Field(default_factory=list)
    total_travel_minutes: float = 0.0
    total_distance_meters: float = 0.0
    total_elapsed_minutes: float = 0.0
    within_working_hours: bool = True
    feasible: bool = True
    unschedulable: list[str] = Field(default_factory=list)
    late: list[str] = Field(default_factory=list)
    computed_at: Optional[datetime] = None

    @classmethod
    def from_route(cls, route: Route) -> "RouteResponse":
        return cls(
            professional_id=route.professional_id,
            day=route.day,
            stops=[RouteStopResponse.from_stop(s) for s in route.stops],
            total_travel_minutes=round(route.total_travel_seconds / 60, 1),
            total_distance_meters=round(route.total_distance_meters, 1),
            total_elapsed_minutes=round(route.total_elapsed.total_seconds() / 60, 1),
            within_working_hours=route.within_working_hours,
            feasible=route.feasible,
            unschedulable=[e.stop_id for e in route.unschedulable if not e.late],
            late=[e.stop_id for e in route.unschedulable if e.late],
            computed_at=route.computed_at,
        )


class OptimizeRouteRequest(BaseModel):
    """Optimize an explicit set of bookings for one professional."""
    professional_id: str
    booking_ids: list[str] = Field(min_length=1)


class ConflictResponse(BaseModel):
    healthy: bool
    conflicts: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_reports(cls, reports: list[ConflictReport]) -> "ConflictResponse":
        return cls(healthy=not reports, conflicts=[r.to_dict() for r in reports])


class OccupancyQuery(BaseModel):
    professional_id: str
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _ordered(self) -> "OccupancyQuery":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class DayOccupancyResponse(BaseModel):
    day: date
    booking_count: int
    booked_minutes: float
    available_minutes: float
    utilization: float
    status: str


class OccupancyResponse(BaseModel):
    """Booked time over available time across a date range."""
    professional_id: str
    start_date: date
    end_date: date
    booked_minutes: float
    available_minutes: float
    utilization: float
    days: list[DayOccupancyResponse] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: OccupancyReport) -> "OccupancyResponse":
        return cls(
            professional_id=report.professional_id,
            start_date=report.start_date,
            end_date=report.end_date,
            booked_minutes=report.booked_minutes,
            available_minutes=report.available_minutes,
            utilization=round(report.utilization, 4),
            days=[
                DayOccupancyResponse(
                    day=d.day,
                    booking_count=d.booking_count,
                    booked_minutes=d.booked_minutes,
                    available_minutes=d.available_minutes,
                    utilization=round(d.utilization, 4),
                    status=d.status.value,
                )
                for d in report.days
            ],
        )
