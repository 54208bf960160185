"""
Travel time and distance estimators.

The scheduling engine only depends on the GeoEstimator interface. The
OSRM implementation talks to a routing server over HTTP; the straight-line
implementation is deterministic and serves as the degraded fallback; the
bounded wrapper applies a timeout and recovers from upstream failures so a
slow estimator never stalls a planning call.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional

import httpx

from src.config import EstimatorConfig
from src.errors import EstimatorTimeoutError
from src.geo.distance import Location, haversine_meters

logger = logging.getLogger(__name__)

# Failures the bounded estimator recovers from locally.
RECOVERABLE_ERRORS = (asyncio.TimeoutError, httpx.HTTPError, OSError, ValueError, KeyError)


@dataclass(frozen=True)
class TravelEstimate:
    """Travel between two locations."""

    duration_seconds: float
    distance_meters: float
    degraded: bool = False


class GeoEstimator(ABC):
    """Pluggable travel oracle."""

    @abstractmethod
    async def estimate(self, origin: Location, destination: Location) -> TravelEstimate:
        """Return travel duration and distance from origin to destination."""


class StraightLineEstimator(GeoEstimator):
    """Haversine distance stretched by a road factor at a constant speed."""

    def __init__(self, speed_kmh: float = 30.0, road_factor: float = 1.3) -> None:
        self._meters_per_second = speed_kmh * 1000 / 3600
        self._road_factor = road_factor

    async def estimate(self, origin: Location, destination: Location) -> TravelEstimate:
        distance = haversine_meters(origin, destination) * self._road_factor
        return TravelEstimate(
            duration_seconds=distance / self._meters_per_second,
            distance_meters=distance,
        )


class OsrmEstimator(GeoEstimator):
    """Driving estimates from an OSRM-compatible ``/route/v1`` endpoint."""

    def __init__(
        self,
        base_url: str = "http://router.project-osrm.org",
        timeout_seconds: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._client = client

    async def estimate(self, origin: Location, destination: Location) -> TravelEstimate:
        if origin.coordinates == destination.coordinates:
            return TravelEstimate(duration_seconds=0.0, distance_meters=0.0)

        url = (
            f"{self.base_url}/route/v1/driving/"
            f"{origin.lon},{origin.lat};{destination.lon},{destination.lat}"
        )
        params = {"overview": "false", "alternatives": "false", "steps": "false"}

        if self._client is not None:
            response = await self._client.get(url, params=params, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(url, params=params)
        response.raise_for_status()

        data = response.json()
        if data.get("code") != "Ok" or not data.get("routes"):
            raise ValueError(f"OSRM returned no route: {data.get('code')!r}")
        route = data["routes"][0]
        return TravelEstimate(
            duration_seconds=float(route["duration"]),
            distance_meters=float(route["distance"]),
        )


class BoundedEstimator(GeoEstimator):
    """
    Timeout-bound wrapper with last-known and fallback recovery.

    On timeout or upstream failure the last successful estimate for the
    same pair is reused; failing that, the fallback estimator answers.
    Recovered answers are flagged ``degraded``. EstimatorTimeoutError is
    raised only when no recovery path is left.
    """

    def __init__(
        self,
        inner: GeoEstimator,
        timeout_seconds: float,
        fallback: Optional[GeoEstimator] = None,
    ) -> None:
        self._inner = inner
        self._timeout = timeout_seconds
        self._fallback = fallback
        self._last_known: dict[tuple[Location, Location], TravelEstimate] = {}

    async def estimate(self, origin: Location, destination: Location) -> TravelEstimate:
        key = (origin, destination)
        try:
            result = await asyncio.wait_for(
                self._inner.estimate(origin, destination), timeout=self._timeout
            )
        except RECOVERABLE_ERRORS as exc:
            reason = "timed out" if isinstance(exc, asyncio.TimeoutError) else repr(exc)
            logger.warning(
                "Estimator %s for %s -> %s, using degraded estimate", reason, origin, destination
            )
            return await self._degraded(key, reason)

        self._last_known[key] = result
        return result

    async def _degraded(
        self, key: tuple[Location, Location], reason: str
    ) -> TravelEstimate:
        cached = self._last_known.get(key)
        if cached is not None:
            return replace(cached, degraded=True)
        if self._fallback is None:
            raise EstimatorTimeoutError(f"Estimator {reason} and no fallback configured")
        try:
            result = await self._fallback.estimate(*key)
        except RECOVERABLE_ERRORS as exc:
            logger.error("Fallback estimator failed for %s -> %s: %r", key[0], key[1], exc)
            raise EstimatorTimeoutError(f"Estimator {reason} and fallback failed") from exc
        return replace(result, degraded=True)


def build_estimator(
    config: EstimatorConfig, client: Optional[httpx.AsyncClient] = None
) -> GeoEstimator:
    """Build the production estimator: OSRM bounded by a timeout, straight-line fallback."""
    fallback = StraightLineEstimator(
        speed_kmh=config.fallback_speed_kmh, road_factor=config.road_factor
    )
    osrm = OsrmEstimator(
        base_url=config.osrm_base_url, timeout_seconds=config.timeout_seconds, client=client
    )
    return BoundedEstimator(osrm, timeout_seconds=config.timeout_seconds, fallback=fallback)
