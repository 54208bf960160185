"""Professional registration and manual block models."""

from datetime import datetime, time
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from src.schemas.booking_schema import LocationSchema
from src.utils import parse_clock


class WorkingHoursSchema(BaseModel):
    start: str = "08:00"
    end: str = "18:00"

    @field_validator("start", "end")
    @classmethod
    def _clock(cls, value: str) -> str:
        parse_clock(value)
        return value.strip()

    @model_validator(mode="after")
    def _ordered(self) -> "WorkingHoursSchema":
        if parse_clock(self.start) >= parse_clock(self.end):
            raise ValueError(f"Working hours end ({self.end}) before they start ({self.start})")
        return self

    def to_hours(self) -> tuple[time, time]:
        return parse_clock(self.start), parse_clock(self.end)


class ProfessionalSchema(BaseModel):
    """
    A professional as registered by an admin.

    ``working_hours`` is keyed by weekday (0=Monday). When omitted the
    configured default working days and hours apply.
    """
    professional_id: str = Field(min_length=1)
    name: str
    home: LocationSchema
    skills: list[str] = Field(default_factory=list)
    working_hours: Optional[dict[int, WorkingHoursSchema]] = None
    active: bool = True

    @field_validator("working_hours")
    @classmethod
    def _weekdays(cls, value: Optional[dict[int, WorkingHoursSchema]]):
        if value is not None:
            bad = [day for day in value if not 0 <= day <= 6]
            if bad:
                raise ValueError(f"Weekdays must be 0-6, got {bad}")
        return value

    def to_hours(self) -> Optional[dict[int, tuple[time, time]]]:
        if self.working_hours is None:
            return None
        return {day: hours.to_hours() for day, hours in self.working_hours.items()}


class ManualBlockSchema(BaseModel):
    """Admin-blocked time such as vacation or personal appointments."""
    professional_id: str
    start: datetime
    end: datetime
    reason: str = ""

    @model_validator(mode="after")
    def _ordered(self) -> "ManualBlockSchema":
        if self.end <= self.start:
            raise ValueError("Block end must be after its start")
        return self
