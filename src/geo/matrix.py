"""
Memoized travel lookups for one planning or routing pass.

``prefetch`` resolves every ordered pair of a location set concurrently so
the optimizer can run synchronously afterwards. ``lookup`` never awaits: a
pair that was not prefetched is answered with a straight-line estimate
flagged as degraded.
"""

import asyncio
import logging
from itertools import permutations
from typing import Iterable

from src.geo.distance import Location, haversine_meters
from src.geo.estimator import GeoEstimator, TravelEstimate

logger = logging.getLogger(__name__)

ZERO_TRAVEL = TravelEstimate(duration_seconds=0.0, distance_meters=0.0)

# Used only for pairs missing from the matrix.
_FALLBACK_METERS_PER_SECOND = 30 * 1000 / 3600


class TravelMatrix:
    """Pairwise travel estimates cached for the lifetime of one pass."""

    def __init__(self, estimator: GeoEstimator) -> None:
        self._estimator = estimator
        self._entries: dict[tuple[Location, Location], TravelEstimate] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, origin: Location, destination: Location) -> TravelEstimate:
        if origin == destination:
            return ZERO_TRAVEL
        key = (origin, destination)
        cached = self._entries.get(key)
        if cached is None:
            cached = await self._estimator.estimate(origin, destination)
            self._entries[key] = cached
        return cached

    async def prefetch(self, locations: Iterable[Location]) -> None:
        """Resolve all missing ordered pairs among the given locations concurrently."""
        unique = list(dict.fromkeys(locations))
        missing = [
            (a, b) for a, b in permutations(unique, 2) if (a, b) not in self._entries
        ]
        if not missing:
            return
        results = await asyncio.gather(
            *(self._estimator.estimate(a, b) for a, b in missing)
        )
        for pair, estimate in zip(missing, results):
            self._entries[pair] = estimate
        logger.debug("Prefetched %d travel estimates", len(missing))

    def covers(self, locations: Iterable[Location]) -> bool:
        unique = list(dict.fromkeys(locations))
        return all((a, b) in self._entries for a, b in permutations(unique, 2))

    def lookup(self, origin: Location, destination: Location) -> TravelEstimate:
        if origin == destination:
            return ZERO_TRAVEL
        cached = self._entries.get((origin, destination))
        if cached is not None:
            return cached
        logger.warning("Travel %s -> %s was not prefetched, using straight line", origin, destination)
        distance = haversine_meters(origin, destination)
        return TravelEstimate(
            duration_seconds=distance / _FALLBACK_METERS_PER_SECOND,
            distance_meters=distance,
            degraded=True,
        )
