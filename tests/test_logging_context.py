"""Tests for booking and professional ids on log records."""

import logging

import pytest

from src.logging_context import (
    NO_PROFESSIONAL,
    RequestIdFilter,
    get_professional_id,
    get_request_id,
    get_request_logger,
    scheduling_context,
    set_professional_id,
    set_request_id,
)

from tests.conftest import make_request


def make_record() -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, "message", None, None)


class TestSchedulingContext:
    def test_filter_adds_both_ids(self):
        record = make_record()
        with scheduling_context(booking_id="BK-1", professional_id="PRO-1"):
            assert RequestIdFilter().filter(record)
        assert record.request_id == "BK-1"
        assert record.professional_id == "PRO-1"

    def test_context_restores_previous_ids(self):
        set_request_id("BK-OUTER")
        set_professional_id(None)
        with scheduling_context(booking_id="BK-INNER", professional_id="PRO-2"):
            assert get_request_id() == "BK-INNER"
        assert get_request_id() == "BK-OUTER"
        assert get_professional_id() == NO_PROFESSIONAL

    def test_unset_id_keeps_enclosing_value(self):
        with scheduling_context(booking_id="BK-1"):
            with scheduling_context(professional_id="PRO-1"):
                assert (get_request_id(), get_professional_id()) == ("BK-1", "PRO-1")
            assert get_professional_id() == NO_PROFESSIONAL

    def test_filter_attached_once(self):
        logger = get_request_logger("tests.logging_context")
        get_request_logger("tests.logging_context")
        assert sum(isinstance(f, RequestIdFilter) for f in logger.filters) == 1


class TestOrchestratorRecords:
    @pytest.mark.asyncio
    async def test_assignment_record_names_booking_and_professional(self, orchestrator, caplog):
        caplog.set_level(logging.INFO, logger="src.scheduling.orchestrator")
        outcome = await orchestrator.request_booking(make_request())

        requested = next(r for r in caplog.records if "requested" in r.getMessage())
        assigned = next(r for r in caplog.records if "assigned to" in r.getMessage())
        assert requested.request_id == outcome.booking.booking_id
        assert requested.professional_id == NO_PROFESSIONAL
        assert assigned.request_id == outcome.booking.booking_id
        assert assigned.professional_id == "PRO-1"
