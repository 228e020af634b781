from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.tracker.audit import record_event
from app.tracker.modules.facilities.geocode import MapboxGeocoder, geocode_facilities

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tracker.models import Profile
    from app.tracker.modules.facilities.models import Facility

logger = logging.getLogger(__name__)

DEFAULT_TYPES = ("SNF", "AL", "IL", "Hospice")
ADDRESS_FIELDS = ("address", "city", "state", "zip", "county", "company", "team")


def _clean(v: str | None) -> str | None:
    v = (v or "").strip()
    return v or None


def resolve_type(payload: dict) -> str:
    """The form offers existing types plus a 'custom' option with a free-text field."""
    chosen = (payload.get("type") or "").strip()
    if chosen == "__custom__":
        return (payload.get("custom_type") or "").strip()
    return chosen


def validate_facility_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("facility_name") or "").strip():
        errors.append("Facility name is required.")
    if not resolve_type(payload):
        errors.append("Facility type is required.")
    return errors


def create_facility(s: "Session", payload: dict, user: "Profile") -> "Facility":
    from app.tracker.modules.facilities.models import Facility

    facility = Facility(
        facility_name=(payload.get("facility_name") or "").strip(),
        type=resolve_type(payload),
        created_by_profile_id=user.id,
        **{f: _clean(payload.get(f)) for f in ADDRESS_FIELDS},
    )
    s.add(facility)
    s.flush()
    record_event(
        s,
        actor=user,
        action="facility.create",
        entity_type="Facility",
        entity_id=str(facility.id),
        metadata={"facility_name": facility.facility_name, "type": facility.type},
    )
    return facility


def try_geocode_facility(s: "Session", facility: "Facility", geocoder: MapboxGeocoder) -> bool:
    """Best-effort geocode of a freshly added facility; never raises."""
    if not geocoder.token:
        logger.warning("Skipping geocode for facility=%s: MAPBOX_TOKEN is not configured", facility.id)
        return False
    try:
        run = geocode_facilities(s, [facility], geocoder, delay_seconds=0)
    except Exception:
        logger.exception("Geocode failed for facility=%s", facility.id)
        return False
    return run.success == 1


def facility_types(s: "Session") -> list[str]:
    """Known types first, then any custom types already in use."""
    from app.tracker.modules.facilities.models import Facility

    used = {t for (t,) in s.query(Facility.type).distinct().all() if t}
    return list(DEFAULT_TYPES) + sorted(used - set(DEFAULT_TYPES))


def facilities_missing_coordinates(s: "Session") -> list["Facility"]:
    from app.tracker.modules.facilities.models import Facility

    return (
        s.query(Facility)
        .filter((Facility.latitude.is_(None)) | (Facility.longitude.is_(None)))
        .order_by(Facility.facility_name.asc())
        .all()
    )


def count_facilities(s: "Session") -> tuple[int, int]:
    """(geocoded, total)"""
    from sqlalchemy import func

    from app.tracker.modules.facilities.models import Facility

    total = s.query(func.count(Facility.id)).scalar() or 0
    geocoded = (
        s.query(func.count(Facility.id))
        .filter(Facility.latitude.isnot(None), Facility.longitude.isnot(None))
        .scalar()
        or 0
    )
    return geocoded, total
