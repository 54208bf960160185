"""
Finite state machine for the booking lifecycle.

    requested -> assigned -> confirmed -> in_progress -> completed

``cancelled`` is reachable from every non-terminal state. Every transition
is declared explicitly; anything else is rejected with the list of
triggers that would have been valid.

Usage:
    sm = BookingStateMachine()
    sm.transition(BookingTrigger.ASSIGN)
    assert sm.current_state == BookingStatus.ASSIGNED
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """All possible states in a booking lifecycle."""
    REQUESTED = "requested"
    ASSIGNED = "assigned"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingTrigger(str, Enum):
    """Events that cause status transitions."""
    ASSIGN = "assign"
    CONFIRM = "confirm"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"


TERMINAL_STATES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

# Statuses that own exactly one committed time block.
BLOCK_HOLDING_STATES = frozenset({
    BookingStatus.ASSIGNED,
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
    BookingStatus.COMPLETED,
})


@dataclass
class Transition:
    """A single valid status transition."""
    from_state: BookingStatus
    to_state: BookingStatus
    trigger: BookingTrigger


@dataclass
class StateEntry:
    """Recorded history entry for a status visit."""
    state: BookingStatus
    entered_at: datetime
    trigger: Optional[BookingTrigger] = None


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


class BookingStateMachine:
    """Deterministic status machine for a single booking."""

    TRANSITIONS: list[Transition] = [
        # --- Forward path ---
        Transition(BookingStatus.REQUESTED, BookingStatus.ASSIGNED, BookingTrigger.ASSIGN),
        Transition(BookingStatus.ASSIGNED, BookingStatus.CONFIRMED, BookingTrigger.CONFIRM),
        Transition(BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, BookingTrigger.START),
        Transition(BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED, BookingTrigger.COMPLETE),

        # --- Cancellation from any non-terminal state ---
        Transition(BookingStatus.REQUESTED, BookingStatus.CANCELLED, BookingTrigger.CANCEL),
        Transition(BookingStatus.ASSIGNED, BookingStatus.CANCELLED, BookingTrigger.CANCEL),
        Transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingTrigger.CANCEL),
        Transition(BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED, BookingTrigger.CANCEL),
    ]

    def __init__(self, initial: BookingStatus = BookingStatus.REQUESTED) -> None:
        self._current_state = initial
        self._history: list[StateEntry] = [
            StateEntry(state=initial, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_state(self) -> BookingStatus:
        return self._current_state

    def can_transition(self, trigger: BookingTrigger) -> bool:
        return trigger in self.get_valid_triggers()

    def transition(self, trigger: BookingTrigger) -> BookingStatus:
        """
        Execute a status transition.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_state == self._current_state and t.trigger == trigger:
                old_state = self._current_state
                self._current_state = t.to_state
                self._history.append(StateEntry(
                    state=self._current_state,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))
                logger.debug(
                    "Booking transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current_state.value, trigger.value,
                )
                return self._current_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def get_valid_triggers(self) -> list[BookingTrigger]:
        """Return all triggers valid from the current state."""
        return [t.trigger for t in self.TRANSITIONS if t.from_state == self._current_state]

    def get_history(self) -> list[StateEntry]:
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of status names visited."""
        return [entry.state.value for entry in self._history]

    def is_terminal(self) -> bool:
        return self._current_state in TERMINAL_STATES
