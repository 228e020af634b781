from __future__ import annotations

import logging
import time
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import or_

from app.tracker.audit import record_event
from app.tracker.models import Profile
from app.tracker.modules.facilities.models import Facility
from app.tracker.modules.visits.models import FacilityCompletion, Visit
from app.tracker.storage import PHOTO_PREFIX

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.tracker.storage import Storage

logger = logging.getLogger(__name__)

ALLOWED_PHOTO_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "heic", "heif"}


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD date string; None for blank or malformed input."""
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


# ---------- Validation ----------
def validate_photo(filename: str | None, content_type: str | None, size: int, *, max_bytes: int) -> str | None:
    if not filename or size <= 0:
        return "Please upload a photo"
    if not (content_type or "").lower().startswith("image/"):
        return "Please select an image file"
    if size > max_bytes:
        return f"Image must be less than {max_bytes // (1024 * 1024)}MB"
    return None


def validate_visit_date(raw: str | None, *, today: date | None = None) -> tuple[date | None, str | None]:
    today = today or date.today()
    if not (raw or "").strip():
        return today, None
    d = parse_date(raw)
    if d is None:
        return None, "Visit date must be YYYY-MM-DD"
    if d > today:
        return None, "Visit date cannot be in the future"
    return d, None


def photo_key_for(profile_id: int, filename: str, *, now_ms: int | None = None) -> str:
    """visit-photos/<profile_id>/<epoch_ms>.<ext>"""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in ALLOWED_PHOTO_EXTENSIONS:
        ext = "jpg"
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{PHOTO_PREFIX}/{profile_id}/{ms}.{ext}"


# ---------- Completion maintenance ----------
def earliest_visit(s: "Session", profile_id: int, facility_id: int, *, exclude_id: int | None = None) -> Visit | None:
    q = s.query(Visit).filter(Visit.profile_id == profile_id, Visit.facility_id == facility_id)
    if exclude_id is not None:
        q = q.filter(Visit.id != exclude_id)
    return q.order_by(Visit.visit_date.asc(), Visit.created_at.asc(), Visit.id.asc()).first()


def get_completion(s: "Session", profile_id: int, facility_id: int) -> FacilityCompletion | None:
    return (
        s.query(FacilityCompletion)
        .filter(FacilityCompletion.profile_id == profile_id, FacilityCompletion.facility_id == facility_id)
        .one_or_none()
    )


def refresh_completion(
    s: "Session", profile_id: int, facility_id: int, *, exclude_id: int | None = None
) -> FacilityCompletion | None:
    """
    Point the (profile, facility) completion at the earliest remaining visit,
    creating it if missing or deleting it when no visits remain.
    """
    first = earliest_visit(s, profile_id, facility_id, exclude_id=exclude_id)
    completion = get_completion(s, profile_id, facility_id)

    if first is None:
        if completion is not None:
            s.delete(completion)
            s.flush()
        return None

    if completion is None:
        completion = FacilityCompletion(profile_id=profile_id, facility_id=facility_id, first_visit_id=first.id)
        s.add(completion)
    elif completion.first_visit_id != first.id:
        completion.first_visit_id = first.id
    s.flush()
    return completion


# ---------- Visit CRUD ----------
def record_visit(
    s: "Session",
    *,
    user: Profile,
    facility: Facility,
    visit_date: date,
    note: str | None,
    photo_key: str | None,
) -> Visit:
    visit = Visit(
        profile_id=user.id,
        facility_id=facility.id,
        visit_date=visit_date,
        note=(note or "").strip() or None,
        photo_key=photo_key,
        created_at=datetime.utcnow(),
    )
    s.add(visit)
    s.flush()
    refresh_completion(s, user.id, facility.id)
    record_event(
        s,
        actor=user,
        action="visit.create",
        entity_type="Visit",
        entity_id=str(visit.id),
        metadata={"facility_id": facility.id, "visit_date": visit_date, "photo_key": photo_key},
    )
    return visit


def update_visit(s: "Session", visit: Visit, *, visit_date: date, note: str | None, user: Profile) -> Visit:
    changes = {}
    if visit_date != visit.visit_date:
        changes["visit_date"] = {"old": visit.visit_date, "new": visit_date}
        visit.visit_date = visit_date
    new_note = (note or "").strip() or None
    if new_note != visit.note:
        changes["note"] = {"old": visit.note, "new": new_note}
        visit.note = new_note
    s.flush()

    if "visit_date" in changes:
        refresh_completion(s, visit.profile_id, visit.facility_id)
    if changes:
        record_event(
            s,
            actor=user,
            action="visit.update",
            entity_type="Visit",
            entity_id=str(visit.id),
            metadata={"changes": changes},
        )
    return visit


def delete_visit(s: "Session", visit: Visit, *, user: Profile) -> str | None:
    """
    Delete a visit. If it was the recorded first visit for its facility the
    completion is moved to the next-earliest remaining visit, or removed.
    Returns the photo key so the caller can clean up storage after commit.
    """
    completion = get_completion(s, visit.profile_id, visit.facility_id)
    if completion is not None and completion.first_visit_id == visit.id:
        refresh_completion(s, visit.profile_id, visit.facility_id, exclude_id=visit.id)

    photo_key = visit.photo_key
    record_event(
        s,
        actor=user,
        action="visit.delete",
        entity_type="Visit",
        entity_id=str(visit.id),
        metadata={"facility_id": visit.facility_id, "visit_date": visit.visit_date},
    )
    s.delete(visit)
    s.flush()
    return photo_key


# ---------- Queries ----------
def filter_visits(
    q: "Query",
    *,
    search: str = "",
    facility_type: str = "",
    date_from: date | None = None,
    date_to: date | None = None,
    profile_id: int | None = None,
    include_user_name: bool = False,
) -> "Query":
    """Apply the visit list filters. Caller must have joined Facility (and Profile for user-name search)."""
    if search:
        like = f"%{search}%"
        clauses = [Facility.facility_name.ilike(like), Facility.city.ilike(like), Visit.note.ilike(like)]
        if include_user_name:
            clauses.append(Profile.full_name.ilike(like))
        q = q.filter(or_(*clauses))
    if facility_type:
        q = q.filter(Facility.type == facility_type)
    if profile_id is not None:
        q = q.filter(Visit.profile_id == profile_id)
    if date_from:
        q = q.filter(Visit.visit_date >= date_from)
    if date_to:
        q = q.filter(Visit.visit_date <= date_to)
    return q


def visit_types(s: "Session") -> list[str]:
    return sorted(t for (t,) in s.query(Facility.type).distinct().all() if t)


def photo_url(storage: "Storage", key: str | None, *, ttl: int) -> str | None:
    if not key:
        return None
    try:
        return storage.signed_url(key, expires_in=ttl)
    except Exception as e:
        logger.warning("Could not sign photo url key=%s: %s", key, e)
        return None
