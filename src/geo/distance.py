"""Locations and straight-line distance."""

import math
from dataclasses import dataclass

EARTH_RADIUS_METERS = 6_371_000.0


@dataclass(frozen=True)
class Location:
    """A geographic point, optionally labelled with an address or name."""

    lat: float
    lon: float
    label: str = ""

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.lat, self.lon)

    def __str__(self) -> str:
        return self.label or f"({self.lat:.5f}, {self.lon:.5f})"


def haversine_meters(origin: Location, destination: Location) -> float:
    """Great-circle distance between two locations in meters."""
    lat1, lon1 = math.radians(origin.lat), math.radians(origin.lon)
    lat2, lon2 = math.radians(destination.lat), math.radians(destination.lon)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))
