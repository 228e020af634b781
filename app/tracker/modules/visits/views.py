from __future__ import annotations

from datetime import date

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for

from app.tracker.db import db_session
from app.tracker.models import Profile
from app.tracker.modules.facilities.models import Facility
from app.tracker.modules.visits.models import Visit
from app.tracker.modules.visits.service import (
    delete_visit,
    filter_visits,
    parse_date,
    photo_key_for,
    photo_url,
    record_visit,
    update_visit,
    validate_photo,
    validate_visit_date,
    visit_types,
)
from app.tracker.rbac import require_login
from app.tracker.storage import StorageError, storage_from_config

bp = Blueprint("visits", __name__)


def _current_user() -> Profile:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _own_visit_or_404(visit_id: int) -> Visit:
    s = db_session()
    visit = s.get(Visit, visit_id)
    if not visit or visit.profile_id != _current_user().id:
        abort(404)
    return visit


# ---------- Record ----------
@bp.get("/upload")
@require_login
def upload_get():
    s = db_session()
    facilities = s.query(Facility).order_by(Facility.facility_name.asc()).all()
    return render_template(
        "visits/upload.html",
        facilities=facilities,
        today=date.today().isoformat(),
        max_mb=int(current_app.config["MAX_PHOTO_BYTES"]) // (1024 * 1024),
    )


@bp.post("/upload")
@require_login
def upload_post():
    s = db_session()
    user = _current_user()

    facility_id = (request.form.get("facility_id") or "").strip()
    facility = s.get(Facility, int(facility_id)) if facility_id.isdigit() else None
    if not facility:
        flash("Please select a facility", "danger")
        return redirect(url_for("visits.upload_get"))

    photo = request.files.get("photo")
    data = photo.read() if photo and photo.filename else b""
    error = validate_photo(
        photo.filename if photo else None,
        photo.mimetype if photo else None,
        len(data),
        max_bytes=int(current_app.config["MAX_PHOTO_BYTES"]),
    )
    if error:
        flash(error, "danger")
        return redirect(url_for("visits.upload_get"))

    visit_date, error = validate_visit_date(request.form.get("visit_date"))
    if error:
        flash(error, "danger")
        return redirect(url_for("visits.upload_get"))

    key = photo_key_for(user.id, photo.filename or "")
    storage = storage_from_config(current_app.config)
    try:
        storage.put_bytes(key, data, content_type=photo.mimetype)
    except (StorageError, OSError) as e:
        current_app.logger.error("Photo upload failed key=%s: %s", key, e)
        flash(f"Failed to upload photo: {e}", "danger")
        return redirect(url_for("visits.upload_get"))

    visit = record_visit(
        s,
        user=user,
        facility=facility,
        visit_date=visit_date,
        note=request.form.get("note"),
        photo_key=key,
    )
    s.commit()
    flash(f"Visit to {facility.facility_name} recorded.", "success")
    return redirect(url_for("visits.visit_detail", visit_id=visit.id))


# ---------- My visits ----------
@bp.get("/visits")
@require_login
def visit_list():
    s = db_session()
    user = _current_user()

    search = (request.args.get("q") or "").strip()
    type_filter = (request.args.get("type") or "").strip()
    date_from = parse_date(request.args.get("date_from"))
    date_to = parse_date(request.args.get("date_to"))

    page = max(request.args.get("page", 1, type=int), 1)
    per_page = 50

    q = s.query(Visit).join(Facility, Visit.facility_id == Facility.id)
    q = filter_visits(
        q,
        search=search,
        facility_type=type_filter,
        date_from=date_from,
        date_to=date_to,
        profile_id=user.id,
    )
    total = q.count()
    visits = (
        q.order_by(Visit.visit_date.desc(), Visit.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    total_pages = (total + per_page - 1) // per_page

    storage = storage_from_config(current_app.config)
    ttl = int(current_app.config["SIGNED_URL_TTL_SECONDS"])
    photos = {v.id: photo_url(storage, v.photo_key, ttl=ttl) for v in visits}

    def build_url(p):
        args = dict(request.args)
        args["page"] = p
        return url_for("visits.visit_list", **args)

    return render_template(
        "visits/list.html",
        visits=visits,
        photos=photos,
        types=visit_types(s),
        search=search,
        type_filter=type_filter,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
        page=page,
        total=total,
        total_pages=total_pages,
        build_url=build_url,
    )


@bp.get("/visits/<int:visit_id>")
@require_login
def visit_detail(visit_id: int):
    visit = _own_visit_or_404(visit_id)
    storage = storage_from_config(current_app.config)
    url = photo_url(storage, visit.photo_key, ttl=int(current_app.config["SIGNED_URL_TTL_SECONDS"]))
    return render_template("visits/detail.html", visit=visit, photo_url=url, today=date.today().isoformat())


@bp.post("/visits/<int:visit_id>/edit")
@require_login
def visit_edit(visit_id: int):
    s = db_session()
    visit = _own_visit_or_404(visit_id)
    visit_date, error = validate_visit_date(request.form.get("visit_date"))
    if error:
        flash(error, "danger")
        return redirect(url_for("visits.visit_detail", visit_id=visit.id))

    update_visit(s, visit, visit_date=visit_date, note=request.form.get("note"), user=_current_user())
    s.commit()
    flash("Visit updated.", "success")
    return redirect(url_for("visits.visit_detail", visit_id=visit.id))


@bp.post("/visits/<int:visit_id>/delete")
@require_login
def visit_delete(visit_id: int):
    s = db_session()
    visit = _own_visit_or_404(visit_id)
    photo_key = delete_visit(s, visit, user=_current_user())
    s.commit()

    if photo_key:
        try:
            storage_from_config(current_app.config).delete(photo_key)
        except Exception as e:
            current_app.logger.warning("Could not delete photo key=%s: %s", photo_key, e)
    flash("Visit deleted.", "success")
    return redirect(url_for("visits.visit_list"))
