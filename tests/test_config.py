"""Tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from src.config import (
    AppConfig,
    EstimatorConfig,
    PlannerConfig,
    ReportConfig,
    RoutingConfig,
    WorkingHoursConfig,
    _validate_config,
)


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        config = AppConfig()
        _validate_config(config)  # should not raise

    def test_workday_end_before_start(self):
        hours = replace(WorkingHoursConfig(), default_start="18:00", default_end="08:00")
        config = replace(AppConfig(), working_hours=hours)
        with pytest.raises(ValueError, match="WORKDAY_START"):
            _validate_config(config)

    def test_malformed_clock(self):
        hours = replace(WorkingHoursConfig(), default_start="eight")
        config = replace(AppConfig(), working_hours=hours)
        with pytest.raises(ValueError, match="HH:MM"):
            _validate_config(config)

    def test_weekday_out_of_range(self):
        hours = replace(WorkingHoursConfig(), working_days=(0, 7))
        config = replace(AppConfig(), working_hours=hours)
        with pytest.raises(ValueError, match="WORKING_DAYS"):
            _validate_config(config)

    def test_zero_granularity(self):
        planner = replace(PlannerConfig(), slot_granularity_minutes=0)
        config = replace(AppConfig(), planner=planner)
        with pytest.raises(ValueError, match="SLOT_GRANULARITY_MINUTES"):
            _validate_config(config)

    def test_negative_min_buffer(self):
        planner = replace(PlannerConfig(), min_travel_buffer_minutes=-5)
        config = replace(AppConfig(), planner=planner)
        with pytest.raises(ValueError, match="MIN_TRAVEL_BUFFER_MINUTES"):
            _validate_config(config)

    def test_zero_plan_attempts(self):
        planner = replace(PlannerConfig(), max_plan_attempts=0)
        config = replace(AppConfig(), planner=planner)
        with pytest.raises(ValueError, match="MAX_PLAN_ATTEMPTS"):
            _validate_config(config)

    def test_zero_recompute_attempts(self):
        routing = replace(RoutingConfig(), max_recompute_attempts=0)
        config = replace(AppConfig(), routing=routing)
        with pytest.raises(ValueError, match="MAX_ROUTE_RECOMPUTE_ATTEMPTS"):
            _validate_config(config)

    def test_non_positive_timeout(self):
        estimator = replace(EstimatorConfig(), timeout_seconds=0)
        config = replace(AppConfig(), estimator=estimator)
        with pytest.raises(ValueError, match="ESTIMATOR_TIMEOUT_SECONDS"):
            _validate_config(config)

    def test_road_factor_below_one(self):
        estimator = replace(EstimatorConfig(), road_factor=0.8)
        config = replace(AppConfig(), estimator=estimator)
        with pytest.raises(ValueError, match="ROAD_FACTOR"):
            _validate_config(config)

    def test_load_thresholds_out_of_order(self):
        reports = replace(ReportConfig(), light_load_max_bookings=5, medium_load_max_bookings=3)
        config = replace(AppConfig(), reports=reports)
        with pytest.raises(ValueError, match="LIGHT_LOAD_MAX_BOOKINGS"):
            _validate_config(config)


class TestEnvParsing:
    def test_safe_int_parsing(self):
        from src.config import _safe_int

        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_int_names_variable(self, monkeypatch):
        from src.config import _safe_int

        monkeypatch.setenv("CANDIDATE_LIMIT_TEST", "five")
        with pytest.raises(ValueError, match="CANDIDATE_LIMIT_TEST"):
            _safe_int("CANDIDATE_LIMIT_TEST", "5")

    def test_safe_float_parsing(self):
        from src.config import _safe_float

        assert _safe_float("NONEXISTENT_VAR_12345", "3.14") == pytest.approx(3.14)

    def test_safe_weekdays(self, monkeypatch):
        from src.config import _safe_weekdays

        monkeypatch.setenv("WORKING_DAYS_TEST", "0, 2,4")
        assert _safe_weekdays("WORKING_DAYS_TEST", "0") == (0, 2, 4)
