"""Booking request and scheduling outcome models."""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from src.catalog.services import default_duration_minutes
from src.geo.distance import Location
from src.scheduling.models import Booking, Candidate, TimeWindow


class LocationSchema(BaseModel):
    """Coordinates with an optional address label."""
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    label: str = ""

    def to_location(self) -> Location:
        return Location(lat=self.lat, lon=self.lon, label=self.label)

    @classmethod
    def from_location(cls, location: Location) -> "LocationSchema":
        return cls(lat=location.lat, lon=location.lon, label=location.label)


class BookingRequestSchema(BaseModel):
    """
    Validated auto-schedule request.

    Either ``start``/``end`` (fixed) or ``earliest_start``/``latest_start``
    (flexible) must be given. Flexible requests without ``duration_minutes``
    use the service's catalog duration. Times are local wall-clock times;
    any UTC offset is dropped.
    """
    service_type: str = Field(min_length=1)
    location: LocationSchema
    customer_name: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    earliest_start: Optional[datetime] = None
    latest_start: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    required_skill: Optional[str] = None
    preferred_professional_id: Optional[str] = None

    @field_validator("start", "end", "earliest_start", "latest_start")
    @classmethod
    def _wall_clock(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            return value.replace(tzinfo=None)
        return value

    @model_validator(mode="after")
    def _check_window(self) -> "BookingRequestSchema":
        fixed = self.start is not None or self.end is not None
        flexible = self.earliest_start is not None or self.latest_start is not None
        if fixed and flexible:
            raise ValueError("Use either start/end or earliest_start/latest_start, not both")
        if not fixed and not flexible:
            raise ValueError("A time window is required: start/end or earliest_start/latest_start")
        if fixed and (self.start is None or self.end is None):
            raise ValueError("A fixed window needs both start and end")
        if flexible and (self.earliest_start is None or self.latest_start is None):
            raise ValueError("A flexible window needs both earliest_start and latest_start")
        self.to_window()
        return self

    @property
    def is_fixed(self) -> bool:
        return self.start is not None

    def to_window(self) -> TimeWindow:
        if self.start is not None and self.end is not None:
            return TimeWindow.fixed(self.start, self.end)
        duration = self.duration_minutes or default_duration_minutes(self.service_type)
        return TimeWindow.flexible(
            self.earliest_start, self.latest_start, timedelta(minutes=duration)
        )


class CandidateResponse(BaseModel):
    """One ranked placement option."""
    professional_id: str
    start: datetime
    end: datetime
    buffered_start: datetime
    buffered_end: datetime
    travel_distance_meters: float
    idle_minutes: float
    daily_load_minutes: float
    preferred: bool = False

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "CandidateResponse":
        block = candidate.block
        return cls(
            professional_id=candidate.professional_id,
            start=block.start,
            end=block.end,
            buffered_start=block.buffered_start,
            buffered_end=block.buffered_end,
            travel_distance_meters=round(candidate.travel_distance_meters, 1),
            idle_minutes=candidate.idle_minutes,
            daily_load_minutes=candidate.daily_load_minutes,
            preferred=candidate.preferred,
        )


class BookingResponse(BaseModel):
    """Booking state as seen by callers."""
    booking_id: str
    status: str
    service_type: str
    customer_name: Optional[str] = None
    professional_id: Optional[str] = None
    block_id: Optional[str] = None
    earliest_start: datetime
    latest_start: datetime
    duration_minutes: int
    status_history: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            booking_id=booking.booking_id,
            status=booking.status.value,
            service_type=booking.service_type,
            customer_name=booking.customer_name,
            professional_id=booking.professional_id,
            block_id=booking.block_id,
            earliest_start=booking.window.earliest,
            latest_start=booking.window.latest,
            duration_minutes=int(booking.duration.total_seconds() // 60),
            status_history=booking.lifecycle.get_state_trace(),
            created_at=booking.created_at,
        )
