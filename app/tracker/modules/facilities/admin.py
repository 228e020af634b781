from __future__ import annotations

import json

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, url_for

from app.tracker.audit import record_event
from app.tracker.db import db_session
from app.tracker.models import Profile
from app.tracker.modules.facilities.geocode import geocode_facilities, geocoder_from_config, unconfigured_run
from app.tracker.modules.facilities.importer import (
    PREVIEW_ROWS,
    ImportFileError,
    clean_rows,
    insert_facilities,
    parse_facility_file,
)
from app.tracker.modules.facilities.service import (
    count_facilities,
    create_facility,
    facilities_missing_coordinates,
    facility_types,
    try_geocode_facility,
    validate_facility_payload,
)
from app.tracker.rbac import require_admin, require_login

bp = Blueprint("facilities", __name__)


def _current_user() -> Profile:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Add one ----------
@bp.get("/add-facility")
@require_login
def add_facility_get():
    s = db_session()
    return render_template("facilities/add.html", types=facility_types(s), form={})


@bp.post("/add-facility")
@require_login
def add_facility_post():
    s = db_session()
    payload = request.form.to_dict()
    errors = validate_facility_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("facilities/add.html", types=facility_types(s), form=payload), 400

    facility = create_facility(s, payload, _current_user())
    s.commit()

    if try_geocode_facility(s, facility, geocoder_from_config(current_app.config)):
        flash(f"Added {facility.facility_name} and placed it on the map.", "success")
    else:
        flash(f"Added {facility.facility_name}. Location could not be found automatically.", "success")
    return redirect(url_for("facilities.add_facility_get"))


# ---------- Bulk import ----------
@bp.get("/import-facilities")
@require_admin
def import_get():
    return render_template("facilities/import.html", rows=None, preview=None)


@bp.post("/import-facilities")
@require_admin
def import_preview():
    f = request.files.get("file")
    if not f or not f.filename:
        flash("Please select an Excel (.xlsx) or CSV file", "danger")
        return redirect(url_for("facilities.import_get"))
    try:
        rows = parse_facility_file(f.filename, f.read())
    except ImportFileError as e:
        flash(str(e), "danger")
        return redirect(url_for("facilities.import_get"))

    return render_template(
        "facilities/import.html",
        rows=rows,
        preview=rows[:PREVIEW_ROWS],
        rows_json=json.dumps(rows),
        filename=f.filename,
    )


@bp.post("/import-facilities/commit")
@require_admin
def import_commit():
    s = db_session()
    user = _current_user()
    try:
        rows = clean_rows(json.loads(request.form.get("rows_json") or "[]"))
    except (ValueError, ImportFileError) as e:
        flash(str(e) if isinstance(e, ImportFileError) else "Failed to parse file", "danger")
        return redirect(url_for("facilities.import_get"))

    created = insert_facilities(s, rows, user)
    s.commit()
    current_app.logger.info("Imported %d facilities (profile=%s)", len(created), user.id)

    geocoder = geocoder_from_config(current_app.config)
    if geocoder.token:
        run = geocode_facilities(
            s,
            created,
            geocoder,
            delay_seconds=float(current_app.config.get("GEOCODE_DELAY_SECONDS") or 0),
        )
    else:
        run = unconfigured_run(created)
    record_event(
        s,
        actor=user,
        action="facility.geocode",
        entity_type="Facility",
        metadata={"source": "import", "success": run.success, "failed": run.failed},
    )
    s.commit()
    return render_template("facilities/import_done.html", imported=len(created), run=run)


# ---------- Bulk geocode ----------
@bp.get("/geocode-facilities")
@require_admin
def geocode_get():
    s = db_session()
    missing = facilities_missing_coordinates(s)
    geocoded, total = count_facilities(s)
    return render_template(
        "facilities/geocode.html",
        missing=missing,
        geocoded=geocoded,
        total=total,
        run=None,
        has_token=bool(current_app.config.get("MAPBOX_TOKEN")),
    )


@bp.post("/geocode-facilities")
@require_admin
def geocode_post():
    s = db_session()
    user = _current_user()
    if not current_app.config.get("MAPBOX_TOKEN"):
        flash("MAPBOX_TOKEN is not configured", "danger")
        return redirect(url_for("facilities.geocode_get"))

    run = geocode_facilities(
        s,
        facilities_missing_coordinates(s),
        geocoder_from_config(current_app.config),
        delay_seconds=float(current_app.config.get("GEOCODE_DELAY_SECONDS") or 0),
    )
    record_event(
        s,
        actor=user,
        action="facility.geocode",
        entity_type="Facility",
        metadata={"source": "bulk", "success": run.success, "failed": run.failed},
    )
    s.commit()

    geocoded, total = count_facilities(s)
    return render_template(
        "facilities/geocode.html",
        missing=facilities_missing_coordinates(s),
        geocoded=geocoded,
        total=total,
        run=run,
        has_token=True,
    )
