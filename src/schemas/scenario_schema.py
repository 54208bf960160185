"""Auto-schedule response and CLI scenario models."""

from typing import Optional

from pydantic import BaseModel, Field

from src.schemas.booking_schema import BookingRequestSchema, BookingResponse, CandidateResponse
from src.schemas.professional_schema import ManualBlockSchema, ProfessionalSchema
from src.schemas.route_schema import RouteResponse
from src.scheduling.orchestrator import ScheduleOutcome


class ScheduleResponse(BaseModel):
    """Response body for an auto-schedule call."""
    success: bool
    message: str
    booking: BookingResponse
    candidates: list[CandidateResponse] = Field(default_factory=list)
    error_type: Optional[str] = None
    route: Optional[RouteResponse] = None

    @classmethod
    def from_outcome(cls, outcome: ScheduleOutcome) -> "ScheduleResponse":
        booking = outcome.booking
        if outcome.assigned:
            message = (
                f"Booking {booking.booking_id} assigned to {booking.professional_id} "
                f"at {outcome.block.start.strftime('%Y-%m-%d %H:%M')}"
            )
        elif outcome.error is not None:
            message = str(outcome.error)
        else:
            message = f"{len(outcome.candidates)} candidate(s) for booking {booking.booking_id}"
        return cls(
            success=outcome.error is None,
            message=message,
            booking=BookingResponse.from_booking(booking),
            candidates=[CandidateResponse.from_candidate(c) for c in outcome.candidates],
            error_type=type(outcome.error).__name__ if outcome.error is not None else None,
            route=RouteResponse.from_route(outcome.route) if outcome.route else None,
        )


class ScenarioSchema(BaseModel):
    """
    A batch of scheduling input for the command line runner.

    Professionals are registered first, then manual blocks are applied and
    bookings are requested in file order. ``cancel`` lists zero-based
    indexes into ``bookings`` to cancel once all requests are processed;
    pending bookings are retried after the cancellations.
    """
    professionals: list[ProfessionalSchema] = Field(min_length=1)
    manual_blocks: list[ManualBlockSchema] = Field(default_factory=list)
    bookings: list[BookingRequestSchema] = Field(default_factory=list)
    cancel: list[int] = Field(default_factory=list)
    auto_assign: bool = True
