"""
In-memory availability store: the source of truth for committed time blocks.

``reserve`` and ``release`` are serialized per professional with an
``asyncio.Lock``; professionals never share a lock, so calls for different
professionals proceed independently. Every successful mutation bumps a
``(professional, day)`` version and notifies subscribers so cached routes
can be dropped.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional

from src.errors import ConflictError, NotFoundError
from src.scheduling.conflict_detector import (
    adjacent_ids,
    find_adjacent,
    find_conflicts,
    find_travel_conflicts,
    overlaps,
)
from src.scheduling.models import BlockKind, TimeBlock

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, date], None]


@dataclass(frozen=True)
class ReserveResult:
    """Outcome of a reserve call: a block id, or the conflict that prevented it."""

    block_id: Optional[str] = None
    error: Optional[ConflictError] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.block_id is not None


class AvailabilityStore:
    """Committed blocks per professional with per-professional serialization."""

    def __init__(self) -> None:
        self._blocks: dict[str, TimeBlock] = {}
        self._by_professional: dict[str, list[str]] = defaultdict(list)
        self._released: dict[str, TimeBlock] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._versions: dict[tuple[str, date], int] = defaultdict(int)
        self._subscribers: list[Subscriber] = []

    def _lock_for(self, professional_id: str) -> asyncio.Lock:
        lock = self._locks.get(professional_id)
        if lock is None:
            lock = self._locks[professional_id] = asyncio.Lock()
        return lock

    def subscribe(self, callback: Subscriber) -> None:
        """Register a callback invoked with (professional_id, day) after each mutation."""
        self._subscribers.append(callback)

    def _changed(self, professional_id: str, day: date) -> None:
        self._versions[(professional_id, day)] += 1
        for callback in self._subscribers:
            callback(professional_id, day)

    def version(self, professional_id: str, day: date) -> int:
        return self._versions[(professional_id, day)]

    def professional_ids(self) -> list[str]:
        return [pid for pid, ids in self._by_professional.items() if ids]

    def get_blocks(
        self,
        professional_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[TimeBlock]:
        """Active blocks whose buffered interval touches ``[start, end)``, ordered by start."""
        blocks = [self._blocks[bid] for bid in self._by_professional.get(professional_id, [])]
        if start is not None and end is not None:
            blocks = [
                b for b in blocks if overlaps(b.buffered_start, b.buffered_end, start, end)
            ]
        return sorted(blocks, key=lambda b: (b.start, b.block_id))

    def get_block(self, block_id: str) -> TimeBlock:
        block = self._blocks.get(block_id)
        if block is None:
            raise NotFoundError("TimeBlock", block_id)
        return block

    def is_active(self, block_id: str) -> bool:
        return block_id in self._blocks

    @staticmethod
    def _stale_neighbour(
        day_blocks: list[TimeBlock],
        block: TimeBlock,
        expected: tuple[Optional[str], Optional[str]],
    ) -> Optional[str]:
        """Id of the neighbour that changed since planning, or None if both still hold."""
        current = adjacent_ids(day_blocks, block.start, block.end)
        for now, planned in zip(current, expected):
            if now != planned:
                return now if now is not None else planned
        return None

    def _face_neighbours(self, block: TimeBlock, day_blocks: list[TimeBlock]) -> None:
        # Manual blocks count as home and keep zero buffers.
        prior, following = find_adjacent(day_blocks, block.start, block.end)
        if prior is not None and prior.kind == BlockKind.BOOKING:
            self._blocks[prior.block_id] = replace(prior, buffer_after=block.buffer_before)
        if following is not None and following.kind == BlockKind.BOOKING:
            self._blocks[following.block_id] = replace(following, buffer_before=block.buffer_after)

    def get_day_blocks(self, professional_id: str, day: date) -> list[TimeBlock]:
        """Active blocks touching the calendar day, the view travel buffers are planned on."""
        day_start = datetime.combine(day, time.min)
        return self.get_blocks(professional_id, day_start, day_start + timedelta(days=1))

    async def reserve(
        self,
        professional_id: str,
        block: TimeBlock,
        neighbours: Optional[tuple[Optional[str], Optional[str]]] = None,
    ) -> ReserveResult:
        """Insert the block atomically, or report the block that prevents it.

        ``neighbours`` are the ids of the prior and next blocks the travel
        buffers were measured against (None for home base). When given, the
        block is accepted only if those are still its neighbours, and the
        neighbours' facing buffers are updated to the new travel legs.
        Without them the symmetric buffered overlap rule applies.
        """
        if block.professional_id != professional_id:
            raise ValueError(
                f"Block {block.block_id} belongs to {block.professional_id}, not {professional_id}"
            )
        async with self._lock_for(professional_id):
            if block.block_id in self._blocks or block.block_id in self._released:
                raise ValueError(f"Block id {block.block_id} already used")

            if neighbours is None:
                conflicts = find_conflicts(block, self.get_blocks(professional_id))
            else:
                day_blocks = self.get_day_blocks(professional_id, block.day)
                conflicts = find_travel_conflicts(block, day_blocks)
                if not conflicts:
                    stale = self._stale_neighbour(day_blocks, block, neighbours)
                    if stale is not None:
                        logger.info(
                            "Reserve rejected for %s: %s was planned next to %s, now %s",
                            professional_id, block.block_id, neighbours,
                            adjacent_ids(day_blocks, block.start, block.end),
                        )
                        return ReserveResult(error=ConflictError(professional_id, stale))
            if conflicts:
                logger.info(
                    "Reserve rejected for %s: %s overlaps %s",
                    professional_id, block.block_id, conflicts[0].block_id,
                )
                return ReserveResult(
                    error=ConflictError(professional_id, conflicts[0].block_id)
                )

            self._blocks[block.block_id] = block
            self._by_professional[professional_id].append(block.block_id)
            if neighbours is not None:
                self._face_neighbours(block, day_blocks)
            self._changed(professional_id, block.day)

        logger.info(
            "Reserved %s for %s [%s, %s)",
            block.block_id, professional_id,
            block.buffered_start.isoformat(), block.buffered_end.isoformat(),
        )
        return ReserveResult(block_id=block.block_id)

    async def release(self, block_id: str) -> bool:
        """Remove a block. Releasing an already released block is a no-op.

        Returns:
            True if this call released the block, False if it was already released.

        Raises:
            NotFoundError: If the block id was never reserved.
        """
        if block_id in self._released:
            logger.debug("Block %s already released", block_id)
            return False
        block = self._blocks.get(block_id)
        if block is None:
            raise NotFoundError("TimeBlock", block_id)

        async with self._lock_for(block.professional_id):
            if block_id not in self._blocks:
                return False
            del self._blocks[block_id]
            self._by_professional[block.professional_id].remove(block_id)
            self._released[block_id] = block
            self._changed(block.professional_id, block.day)

        logger.info("Released %s for %s", block_id, block.professional_id)
        return True

    def free_intervals(
        self, professional_id: str, start: datetime, end: datetime
    ) -> list[tuple[datetime, datetime]]:
        """Gaps in ``[start, end)`` not covered by any buffered block."""
        free = []
        cursor = start
        blocks = sorted(
            self.get_blocks(professional_id, start, end), key=lambda b: b.buffered_start
        )
        for block in blocks:
            if block.buffered_start > cursor:
                free.append((cursor, min(block.buffered_start, end)))
            cursor = max(cursor, block.buffered_end)
            if cursor >= end:
                break
        if cursor < end:
            free.append((cursor, end))
        return free
