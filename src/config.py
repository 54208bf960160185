"""
Centralized configuration with environment variable overrides.

Working-hour defaults, travel-buffer policy, candidate-search granularity
and estimator settings all live here. The loaded AppConfig is passed
explicitly into the orchestrator and its collaborators.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_weekdays(env_var: str, default: str) -> tuple[int, ...]:
    """Parse a comma-separated weekday list (0=Monday) from an env var."""
    raw = os.getenv(env_var, default)
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip())
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid weekday list for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class WorkingHoursConfig:
    """Defaults applied to professionals without explicit working hours."""

    default_start: str = os.getenv("WORKDAY_START", "08:00")
    default_end: str = os.getenv("WORKDAY_END", "18:00")
    working_days: tuple[int, ...] = _safe_weekdays("WORKING_DAYS", "0,1,2,3,4,5")


@dataclass(frozen=True)
class PlannerConfig:
    """Candidate search and travel buffer policy."""

    slot_granularity_minutes: int = _safe_int("SLOT_GRANULARITY_MINUTES", "15")
    candidate_limit: int = _safe_int("CANDIDATE_LIMIT", "5")
    min_travel_buffer_minutes: int = _safe_int("MIN_TRAVEL_BUFFER_MINUTES", "0")
    max_plan_attempts: int = _safe_int("MAX_PLAN_ATTEMPTS", "2")


@dataclass(frozen=True)
class RoutingConfig:
    """Route optimizer bounds."""

    two_opt_max_passes: int = _safe_int("TWO_OPT_MAX_PASSES", "25")
    max_recompute_attempts: int = _safe_int("MAX_ROUTE_RECOMPUTE_ATTEMPTS", "3")


@dataclass(frozen=True)
class EstimatorConfig:
    """Geo estimator endpoint, timeout and straight-line fallback."""

    osrm_base_url: str = os.getenv("OSRM_BASE_URL", "http://router.project-osrm.org")
    timeout_seconds: float = _safe_float("ESTIMATOR_TIMEOUT_SECONDS", "2.0")
    fallback_speed_kmh: float = _safe_float("FALLBACK_SPEED_KMH", "30.0")
    road_factor: float = _safe_float("ROAD_FACTOR", "1.3")


@dataclass(frozen=True)
class ReportConfig:
    """Daily load thresholds used by occupancy reports."""

    light_load_max_bookings: int = _safe_int("LIGHT_LOAD_MAX_BOOKINGS", "2")
    medium_load_max_bookings: int = _safe_int("MEDIUM_LOAD_MAX_BOOKINGS", "4")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    working_hours: WorkingHoursConfig = field(default_factory=WorkingHoursConfig)
    planner: PlannerConfig = field(default_factory=PlannerConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    estimator: EstimatorConfig = field(default_factory=EstimatorConfig)
    reports: ReportConfig = field(default_factory=ReportConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "cleaning-route-scheduler")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    from src.utils import parse_clock

    try:
        start = parse_clock(config.working_hours.default_start)
        end = parse_clock(config.working_hours.default_end)
    except ValueError:
        raise ValueError(
            "WORKDAY_START and WORKDAY_END must be HH:MM, got "
            f"{config.working_hours.default_start!r} / {config.working_hours.default_end!r}"
        ) from None
    if start >= end:
        raise ValueError(
            f"WORKDAY_START must be before WORKDAY_END, got {start} >= {end}"
        )
    for day in config.working_hours.working_days:
        if not 0 <= day <= 6:
            raise ValueError(f"WORKING_DAYS entries must be 0-6, got {day}")

    if config.planner.slot_granularity_minutes < 1:
        raise ValueError(
            "SLOT_GRANULARITY_MINUTES must be >= 1, "
            f"got {config.planner.slot_granularity_minutes}"
        )
    if config.planner.candidate_limit < 1:
        raise ValueError(
            f"CANDIDATE_LIMIT must be >= 1, got {config.planner.candidate_limit}"
        )
    if config.planner.min_travel_buffer_minutes < 0:
        raise ValueError(
            "MIN_TRAVEL_BUFFER_MINUTES must be >= 0, "
            f"got {config.planner.min_travel_buffer_minutes}"
        )
    if config.planner.max_plan_attempts < 1:
        raise ValueError(
            f"MAX_PLAN_ATTEMPTS must be >= 1, got {config.planner.max_plan_attempts}"
        )
    if config.routing.two_opt_max_passes < 0:
        raise ValueError(
            f"TWO_OPT_MAX_PASSES must be >= 0, got {config.routing.two_opt_max_passes}"
        )
    if config.routing.max_recompute_attempts < 1:
        raise ValueError(
            "MAX_ROUTE_RECOMPUTE_ATTEMPTS must be >= 1, "
            f"got {config.routing.max_recompute_attempts}"
        )
    if config.estimator.timeout_seconds <= 0:
        raise ValueError(
            f"ESTIMATOR_TIMEOUT_SECONDS must be > 0, got {config.estimator.timeout_seconds}"
        )
    if config.estimator.fallback_speed_kmh <= 0:
        raise ValueError(
            f"FALLBACK_SPEED_KMH must be > 0, got {config.estimator.fallback_speed_kmh}"
        )
    if config.estimator.road_factor < 1.0:
        raise ValueError(
            f"ROAD_FACTOR must be >= 1.0, got {config.estimator.road_factor}"
        )
    if not 0 <= config.reports.light_load_max_bookings <= config.reports.medium_load_max_bookings:
        raise ValueError(
            "LIGHT_LOAD_MAX_BOOKINGS must be between 0 and MEDIUM_LOAD_MAX_BOOKINGS, got "
            f"{config.reports.light_load_max_bookings} / {config.reports.medium_load_max_bookings}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config
