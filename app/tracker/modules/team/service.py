from __future__ import annotations

import csv
import io
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func
from werkzeug.security import generate_password_hash

from app.tracker.audit import record_event
from app.tracker.auth import email_for_name, validate_password_pair
from app.tracker.models import Profile
from app.tracker.modules.dashboard.service import completion_percentage
from app.tracker.modules.facilities.models import Facility
from app.tracker.modules.visits.models import FacilityCompletion, Visit

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

NEW_USER_MIN_PASSWORD = 6
RECENT_VISITS = 20
EXPORT_HEADERS = ("Date", "Team Member", "Facility", "Type", "Address", "City", "State", "Note")


class TeamError(ValueError):
    """User-management failure with an HTTP-ish status for the JSON endpoints."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


# ---------- Stats ----------
@dataclass
class MemberStats:
    profile: Profile
    facilities_visited: int
    total_visits: int
    completion_percentage: int


def _total_facilities(s: "Session") -> int:
    return s.query(func.count(Facility.id)).scalar() or 0


def leaderboard(s: "Session") -> list[MemberStats]:
    """All profiles, most facilities visited first (name breaks ties)."""
    total = _total_facilities(s)
    visited = dict(
        s.query(FacilityCompletion.profile_id, func.count(FacilityCompletion.id))
        .group_by(FacilityCompletion.profile_id)
        .all()
    )
    visits = dict(s.query(Visit.profile_id, func.count(Visit.id)).group_by(Visit.profile_id).all())

    rows = [
        MemberStats(
            profile=p,
            facilities_visited=visited.get(p.id, 0),
            total_visits=visits.get(p.id, 0),
            completion_percentage=completion_percentage(visited.get(p.id, 0), total),
        )
        for p in s.query(Profile).order_by(Profile.full_name.asc()).all()
    ]
    rows.sort(key=lambda r: r.facilities_visited, reverse=True)
    return rows


def member_detail(s: "Session", profile: Profile) -> dict:
    total = _total_facilities(s)
    visited = (
        s.query(func.count(FacilityCompletion.id)).filter(FacilityCompletion.profile_id == profile.id).scalar() or 0
    )
    visits = (
        s.query(Visit)
        .filter(Visit.profile_id == profile.id)
        .order_by(Visit.visit_date.desc(), Visit.created_at.desc())
        .all()
    )
    by_type = Counter(v.facility.type or "Other" for v in visits)
    return {
        "profile": profile,
        "total_facilities": total,
        "facilities_visited": visited,
        "remaining": max(total - visited, 0),
        "total_visits": len(visits),
        "completion_percentage": completion_percentage(visited, total),
        "visits_by_type": [{"type": t, "count": n} for t, n in by_type.most_common()],
        "recent_visits": visits[:RECENT_VISITS],
    }


# ---------- User management ----------
def create_user(
    s: "Session",
    *,
    full_name: str,
    password: str,
    confirm_password: str | None,
    actor: Profile,
    email_domain: str,
) -> Profile:
    full_name = " ".join((full_name or "").split())
    if not full_name or not password:
        raise TeamError("Full name and password are required")
    error = validate_password_pair(
        password,
        password if confirm_password is None else confirm_password,
        min_length=NEW_USER_MIN_PASSWORD,
    )
    if error:
        raise TeamError(error)

    email = email_for_name(full_name, email_domain)
    exists = (
        s.query(Profile.id)
        .filter((func.lower(Profile.full_name) == full_name.lower()) | (Profile.email == email))
        .first()
    )
    if exists:
        raise TeamError("A user with this name already exists")

    profile = Profile(
        full_name=full_name,
        email=email,
        password_hash=generate_password_hash(password),
        is_admin=False,
        must_change_password=True,
        is_active=True,
    )
    s.add(profile)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="Profile",
        entity_id=str(profile.id),
        metadata={"full_name": full_name, "email": email},
    )
    return profile


def reset_password(s: "Session", *, profile_id: int | None, actor: Profile, default_password: str) -> Profile:
    if not profile_id:
        raise TeamError("User ID is required")
    if profile_id == actor.id:
        raise TeamError("Cannot reset your own password through this route")
    target = s.get(Profile, profile_id)
    if not target:
        raise TeamError("User not found", status=404)

    target.password_hash = generate_password_hash(default_password)
    target.must_change_password = True
    s.add(target)
    record_event(
        s,
        actor=actor,
        action="user.reset_password",
        entity_type="Profile",
        entity_id=str(target.id),
        metadata={"full_name": target.full_name},
    )
    return target


# ---------- Export ----------
def export_rows(visits: list[Visit]) -> list[list[str]]:
    return [
        [
            v.visit_date.isoformat(),
            v.profile.full_name,
            v.facility.facility_name,
            v.facility.type or "",
            v.facility.address or "",
            v.facility.city or "",
            v.facility.state or "",
            v.note or "",
        ]
        for v in visits
    ]


def visits_csv_bytes(visits: list[Visit]) -> bytes:
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(EXPORT_HEADERS)
    w.writerows(export_rows(visits))
    return out.getvalue().encode("utf-8")


def visits_xlsx_bytes(visits: list[Visit]) -> bytes:
    from openpyxl import Workbook

    wb = Workbook()
    ws = wb.active
    ws.title = "Visits"
    ws.append(list(EXPORT_HEADERS))
    for row in export_rows(visits):
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
