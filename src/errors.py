"""
Scheduling error taxonomy.

ConflictError, NoAvailabilityError and UnschedulableStopError are expected
business outcomes: they are carried as values on ReserveResult, PlanResult,
Route and ScheduleOutcome rather than raised. NotFoundError is raised and
maps to a client error. EstimatorTimeoutError is recovered inside the
bounded estimator unless its fallback also fails. ConsistencyError marks a
broken invariant and is logged for operator attention.
"""

from typing import Optional


class SchedulingError(Exception):
    """Base class for all scheduling errors."""


class ConflictError(SchedulingError):
    """A reserve attempt overlaps an existing block."""

    def __init__(self, professional_id: str, overlapping_block_id: str) -> None:
        self.professional_id = professional_id
        self.overlapping_block_id = overlapping_block_id
        super().__init__(
            f"Block for professional {professional_id} overlaps {overlapping_block_id}"
        )


class NoAvailabilityError(SchedulingError):
    """No professional satisfies skill, window and conflict constraints."""

    def __init__(self, booking_id: str, reason: str = "") -> None:
        self.booking_id = booking_id
        self.reason = reason
        message = f"No professional available for booking {booking_id}"
        super().__init__(f"{message}: {reason}" if reason else message)


class EstimatorTimeoutError(SchedulingError):
    """The geo estimator did not answer within its bound."""


class UnschedulableStopError(SchedulingError):
    """A stop cannot be kept in the professional's day.

    Flexible stops that fit nowhere are left out of the route. A fixed stop
    stays in the route but is flagged ``late`` when travel from the
    previous stop cannot reach it by its start.
    """

    def __init__(
        self, stop_id: str, booking_id: Optional[str] = None, late: bool = False
    ) -> None:
        self.stop_id = stop_id
        self.booking_id = booking_id
        self.late = late
        if late:
            super().__init__(f"Fixed stop {stop_id} cannot be reached by its start")
        else:
            super().__init__(f"Stop {stop_id} cannot be placed in the route")


class NotFoundError(SchedulingError):
    """Reference to a nonexistent booking, block or professional."""

    def __init__(self, kind: str, ref: str) -> None:
        self.kind = kind
        self.ref = ref
        super().__init__(f"{kind} {ref} not found")


class ConsistencyError(SchedulingError):
    """Committed blocks overlap: per-professional serialization was violated."""
