"""
Conflict detection with travel buffers.

Intervals are half-open: ``[a, b)`` and ``[c, d)`` conflict iff
``a < d and c < b``, so blocks touching at a boundary do not conflict.

A planned booking carries buffers measured against its actual neighbours
(the prior and next committed stops, or home base), so it is checked with
``find_travel_conflicts``: its buffered interval must not reach into any
committed service interval. The buffers stored on an existing block were
measured against whatever neighbours it had when it was committed and say
nothing about travel to a newcomer.

Blocks reserved without that context (manual blocks, direct reserves) use
the symmetric ``conflicts_with`` rule: the candidate's buffered interval
against the block's service interval, and the candidate's service interval
against the block's buffered interval. The same rule drives the committed
overlap scan.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from src.geo.distance import Location
from src.geo.estimator import GeoEstimator, TravelEstimate
from src.geo.matrix import TravelMatrix
from src.scheduling.models import BlockKind, Professional, TimeBlock
from src.utils import ceil_minutes

logger = logging.getLogger(__name__)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def conflicts_with(candidate: TimeBlock, block: TimeBlock) -> bool:
    return overlaps(
        candidate.buffered_start, candidate.buffered_end, block.start, block.end
    ) or overlaps(
        candidate.start, candidate.end, block.buffered_start, block.buffered_end
    )


def find_conflicts(candidate: TimeBlock, blocks: list[TimeBlock]) -> list[TimeBlock]:
    """Return the committed blocks the candidate overlaps; empty means no conflict."""
    return [
        block for block in blocks
        if block.block_id != candidate.block_id and conflicts_with(candidate, block)
    ]


def find_travel_conflicts(candidate: TimeBlock, blocks: list[TimeBlock]) -> list[TimeBlock]:
    """Blocks whose service falls inside the candidate's travel-buffered interval."""
    return [
        block for block in blocks
        if block.block_id != candidate.block_id
        and overlaps(candidate.buffered_start, candidate.buffered_end, block.start, block.end)
    ]


def adjacent_ids(
    blocks: list[TimeBlock], start: datetime, end: datetime
) -> tuple[Optional[str], Optional[str]]:
    prior, following = find_adjacent(blocks, start, end)
    return (
        prior.block_id if prior is not None else None,
        following.block_id if following is not None else None,
    )


def find_adjacent(
    blocks: list[TimeBlock], start: datetime, end: datetime
) -> tuple[Optional[TimeBlock], Optional[TimeBlock]]:
    """Latest block ending by ``start`` and earliest block starting at or after ``end``."""
    prior: Optional[TimeBlock] = None
    following: Optional[TimeBlock] = None
    for block in blocks:
        if block.end <= start and (prior is None or block.end > prior.end):
            prior = block
        elif block.start >= end and (following is None or block.start < following.start):
            following = block
    return prior, following


def find_overlapping_pairs(blocks: list[TimeBlock]) -> list[tuple[TimeBlock, TimeBlock]]:
    """All conflicting pairs among committed blocks of one professional."""
    ordered = sorted(blocks, key=lambda b: (b.buffered_start, b.block_id))
    pairs = []
    for i, first in enumerate(ordered):
        for second in ordered[i + 1:]:
            if second.buffered_start >= first.buffered_end:
                break
            if conflicts_with(first, second):
                pairs.append((first, second))
    return pairs


@dataclass(frozen=True)
class Placement:
    """A buffered candidate block together with the context used to build it."""

    block: TimeBlock
    prior: Optional[TimeBlock]
    following: Optional[TimeBlock]
    travel_before: TravelEstimate
    travel_after: TravelEstimate

    @property
    def nearest_distance_meters(self) -> float:
        return min(self.travel_before.distance_meters, self.travel_after.distance_meters)

    @property
    def idle_minutes(self) -> float:
        """Unusable gap the placement leaves next to its neighbours."""
        idle = timedelta(0)
        if self.prior is not None:
            idle += max(self.block.buffered_start - self.prior.end, timedelta(0))
        if self.following is not None:
            idle += max(self.following.start - self.block.buffered_end, timedelta(0))
        return idle.total_seconds() / 60


class ConflictDetector:
    """Builds buffered candidate blocks and checks them against a calendar."""

    def __init__(self, estimator: GeoEstimator, min_buffer_minutes: int = 0) -> None:
        self._estimator = estimator
        self._min_buffer = min_buffer_minutes

    @property
    def estimator(self) -> GeoEstimator:
        return self._estimator

    def new_matrix(self) -> TravelMatrix:
        return TravelMatrix(self._estimator)

    def _buffer(self, travel: TravelEstimate) -> timedelta:
        return timedelta(minutes=max(self._min_buffer, ceil_minutes(travel.duration_seconds)))

    @staticmethod
    def stop_location(block: Optional[TimeBlock], professional: Professional) -> Location:
        """Where the professional is around a block; home base for manual or missing blocks."""
        if block is None or block.location is None:
            return professional.home
        return block.location

    async def place(
        self,
        professional: Professional,
        blocks: list[TimeBlock],
        start: datetime,
        end: datetime,
        location: Location,
        block_id: str,
        booking_id: Optional[str] = None,
        travel: Optional[TravelMatrix] = None,
    ) -> Placement:
        """Build the buffered block for a booking starting at ``start``.

        Buffers come from the estimated travel between the booking and the
        professional's prior and next committed stops, or home base when
        there is none.
        """
        if travel is None:
            travel = self.new_matrix()
        prior, following = find_adjacent(blocks, start, end)
        before = await travel.get(self.stop_location(prior, professional), location)
        after = await travel.get(location, self.stop_location(following, professional))
        block = TimeBlock(
            block_id=block_id,
            professional_id=professional.professional_id,
            start=start,
            end=end,
            kind=BlockKind.BOOKING,
            location=location,
            buffer_before=self._buffer(before),
            buffer_after=self._buffer(after),
            booking_id=booking_id,
        )
        return Placement(
            block=block,
            prior=prior,
            following=following,
            travel_before=before,
            travel_after=after,
        )
