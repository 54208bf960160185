"""
Professional directory.

In production this would read the staff table of the booking platform;
the engine only needs read access (skills, working hours, active flag).
Professionals are never removed, only deactivated, so historical bookings
keep a valid reference.
"""

import logging
from datetime import time
from typing import Optional

from src.config import WorkingHoursConfig
from src.errors import NotFoundError
from src.geo.distance import Location
from src.scheduling.models import Professional
from src.utils import parse_clock

logger = logging.getLogger(__name__)


def default_working_hours(config: WorkingHoursConfig) -> dict[int, tuple[time, time]]:
    """Weekly hours applied to professionals registered without their own."""
    start = parse_clock(config.default_start)
    end = parse_clock(config.default_end)
    return {day: (start, end) for day in config.working_days}


class ProfessionalDirectory:
    """Lookup of professionals by id, with admin-side registration."""

    def __init__(self, working_hours: Optional[WorkingHoursConfig] = None) -> None:
        self._defaults = working_hours or WorkingHoursConfig()
        self._professionals: dict[str, Professional] = {}

    def __len__(self) -> int:
        return len(self._professionals)

    def register(
        self,
        professional_id: str,
        name: str,
        home: Location,
        skills: Optional[list[str]] = None,
        working_hours: Optional[dict[int, tuple[time, time]]] = None,
        active: bool = True,
    ) -> Professional:
        """Create or replace a professional record."""
        hours = working_hours or default_working_hours(self._defaults)
        for day, (start, end) in hours.items():
            if start >= end:
                raise ValueError(
                    f"Working hours for {professional_id} on weekday {day} end before they start"
                )
        professional = Professional(
            professional_id=professional_id,
            name=name,
            home=home,
            skills=frozenset(s.lower().strip() for s in (skills or [])),
            working_hours=dict(hours),
            active=active,
        )
        self._professionals[professional_id] = professional
        logger.info("Professional registered: %s (%s)", name, professional_id)
        return professional

    def get(self, professional_id: str) -> Professional:
        professional = self._professionals.get(professional_id)
        if professional is None:
            raise NotFoundError("Professional", professional_id)
        return professional

    def all(self) -> list[Professional]:
        return sorted(self._professionals.values(), key=lambda p: p.professional_id)

    def active(self) -> list[Professional]:
        return [p for p in self.all() if p.active]

    def deactivate(self, professional_id: str) -> Professional:
        """Soft-delete: keep the record, stop offering the professional."""
        professional = self.get(professional_id)
        professional.active = False
        logger.info("Professional deactivated: %s", professional_id)
        return professional
