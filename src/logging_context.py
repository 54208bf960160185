"""Booking and professional context for scheduling log records.

A scheduling call touches the planner, the availability store and the
route optimizer, often for several professionals in turn. The booking id
and the professional currently being worked on live in context variables,
so every record can be tied back to both without threading them through
each call.

Usage:
    from src.logging_context import get_request_logger, scheduling_context

    logger = get_request_logger(__name__)
    with scheduling_context(booking_id="BK-1A2B3C", professional_id="PRO-ANA"):
        logger.info("Reserved")  # record.request_id == "BK-1A2B3C"
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

NO_BOOKING = "-"
NO_PROFESSIONAL = "-"

_booking_id: ContextVar[str] = ContextVar("booking_id", default=NO_BOOKING)
_professional_id: ContextVar[str] = ContextVar("professional_id", default=NO_PROFESSIONAL)


def set_request_id(booking_id: str) -> None:
    """Mark the booking the current async context is working on."""
    _booking_id.set(booking_id)


def get_request_id() -> str:
    return _booking_id.get()


def set_professional_id(professional_id: Optional[str]) -> None:
    _professional_id.set(professional_id or NO_PROFESSIONAL)


def get_professional_id() -> str:
    return _professional_id.get()


@contextmanager
def scheduling_context(
    booking_id: Optional[str] = None, professional_id: Optional[str] = None
) -> Iterator[None]:
    """Scope the given ids to a block; the previous values come back on exit.

    An id left as None keeps whatever the enclosing context already set.
    """
    tokens = []
    if booking_id is not None:
        tokens.append((_booking_id, _booking_id.set(booking_id)))
    if professional_id is not None:
        tokens.append((_professional_id, _professional_id.set(professional_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class RequestIdFilter(logging.Filter):
    """Adds ``request_id`` (the booking) and ``professional_id`` to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _booking_id.get()  # type: ignore[attr-defined]
        record.professional_id = _professional_id.get()  # type: ignore[attr-defined]
        return True


def get_request_logger(name: str) -> logging.Logger:
    """Return a logger with the RequestIdFilter attached.

    Formatters can then use ``%(request_id)s`` and ``%(professional_id)s``.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, RequestIdFilter) for f in logger.filters):
        logger.addFilter(RequestIdFilter())
    return logger
