from datetime import date, datetime, time, timedelta

from flask import Blueprint, flash, render_template, request
from sqlalchemy import func, text

from app.tracker.db import db_session
from app.tracker.models import AuditEvent, Profile
from app.tracker.modules.facilities.models import Facility
from app.tracker.modules.visits.models import Visit
from app.tracker.rbac import require_admin

bp = Blueprint("admin", __name__)


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


@bp.get("/")
@require_admin
def index():
    s = db_session()
    db_ok = True
    try:
        s.execute(text("SELECT 1"))
    except Exception:
        db_ok = False
    counts = {
        "users": s.query(func.count(Profile.id)).scalar() or 0,
        "facilities": s.query(func.count(Facility.id)).scalar() or 0,
        "visits": s.query(func.count(Visit.id)).scalar() or 0,
        "missing_coordinates": (
            s.query(func.count(Facility.id))
            .filter((Facility.latitude.is_(None)) | (Facility.longitude.is_(None)))
            .scalar()
            or 0
        ),
    }
    return render_template("admin/index.html", counts=counts, db_ok=db_ok)


@bp.get("/audit")
@require_admin
def audit_list():
    """
    Last 200 audit events, filtered by:
    - action (contains)
    - actor name (contains)
    - date range (YYYY-MM-DD, inclusive)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor = (request.args.get("actor") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor:
        q = q.filter(func.lower(AuditEvent.actor_name).like(f"%{actor.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return render_template(
        "admin/audit.html",
        events=events,
        action=action,
        actor=actor,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )
