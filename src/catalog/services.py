"""Cleaning service catalog with default durations and required skills."""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

SERVICE_CATALOG: dict[str, dict] = {
    "quick clean": {
        "name": "Quick Clean",
        "description": "Light cleaning of a small home: dusting, floors, kitchen and bathroom surfaces.",
        "duration_minutes": 180,
        "skill": "standard",
    },
    "complete clean": {
        "name": "Complete Clean",
        "description": "Whole-home cleaning including inside appliances, windows and baseboards.",
        "duration_minutes": 300,
        "skill": "standard",
    },
    "deep clean": {
        "name": "Deep Clean",
        "description": "Heavy-duty cleaning of built-up grime, grout, upholstery and hard-to-reach areas.",
        "duration_minutes": 360,
        "skill": "deep-clean",
    },
    "move out": {
        "name": "Move-In / Move-Out Clean",
        "description": "Empty-property cleaning for tenancy handover, cabinets and closets included.",
        "duration_minutes": 300,
        "skill": "deep-clean",
    },
    "post construction": {
        "name": "Post-Construction Clean",
        "description": "Dust, debris and residue removal after renovation work.",
        "duration_minutes": 420,
        "skill": "post-construction",
    },
    "office": {
        "name": "Office Clean",
        "description": "Commercial office cleaning of workstations, kitchens and restrooms.",
        "duration_minutes": 240,
        "skill": "commercial",
    },
}

SERVICE_ALIASES: dict[str, str] = {
    "quick": "quick clean", "basic": "quick clean", "light": "quick clean",
    "standard": "complete clean", "regular": "complete clean", "full": "complete clean",
    "complete": "complete clean",
    "deep": "deep clean", "heavy": "deep clean", "spring clean": "deep clean",
    "move-out": "move out", "move-in": "move out", "end of lease": "move out",
    "tenancy": "move out",
    "renovation": "post construction", "post-construction": "post construction",
    "builders": "post construction",
    "commercial": "office", "workplace": "office",
}

DEFAULT_DURATION_MINUTES = 120


def get_all_services() -> list[dict]:
    """Return all services with basic info."""
    return [
        {"id": sid, "name": info["name"], "duration_minutes": info["duration_minutes"]}
        for sid, info in SERVICE_CATALOG.items()
    ]


def get_service_details(service_id: str) -> Optional[dict]:
    """Get full details for a specific service."""
    normalized = service_id.lower().strip()
    for sid, info in SERVICE_CATALOG.items():
        if sid == normalized or normalized in sid or sid in normalized:
            return {"id": sid, **info}
    return None


def match_service(query: str) -> Optional[str]:
    """Match a free-text query to a service ID. Returns None if no match."""
    normalized = query.lower().strip()
    for sid in SERVICE_CATALOG:
        if sid == normalized:
            return sid
    for alias, service_id in SERVICE_ALIASES.items():
        if alias in normalized:
            return service_id
    for sid in SERVICE_CATALOG:
        if sid in normalized or normalized in sid:
            return sid
    return None


def default_duration_minutes(service_type: str) -> int:
    """Typical duration for a service type, or the generic default when unknown."""
    service_id = match_service(service_type)
    if service_id is None:
        logger.debug("Unknown service '%s', using default duration", service_type)
        return DEFAULT_DURATION_MINUTES
    return SERVICE_CATALOG[service_id]["duration_minutes"]


def required_skill(service_type: str) -> str:
    """Skill a professional needs for a service type.

    Unknown service types require a skill named after themselves, so a
    request for an uncatalogued service only matches professionals who
    explicitly list it.
    """
    service_id = match_service(service_type)
    if service_id is None:
        return service_type.lower().strip()
    return SERVICE_CATALOG[service_id]["skill"]
