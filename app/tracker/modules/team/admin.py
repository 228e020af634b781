from __future__ import annotations

import io
from datetime import date

from flask import Blueprint, abort, current_app, flash, g, jsonify, redirect, render_template, request, send_file, url_for
from sqlalchemy.exc import SQLAlchemyError

from app.tracker.audit import record_event
from app.tracker.db import db_session
from app.tracker.models import Profile
from app.tracker.modules.facilities.models import Facility
from app.tracker.modules.team.service import (
    NEW_USER_MIN_PASSWORD,
    TeamError,
    create_user,
    leaderboard,
    member_detail,
    reset_password,
    visits_csv_bytes,
    visits_xlsx_bytes,
)
from app.tracker.modules.visits.models import Visit
from app.tracker.modules.visits.service import filter_visits, parse_date, visit_types
from app.tracker.rbac import current_profile, require_admin, require_login

bp = Blueprint("team", __name__)
api_bp = Blueprint("team_api", __name__)


def _current_user() -> Profile:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Team ----------
@bp.get("/users")
@require_login
def users_list():
    s = db_session()
    return render_template("team/users.html", rows=leaderboard(s))


@bp.get("/users/<int:profile_id>")
@require_login
def user_detail(profile_id: int):
    s = db_session()
    profile = s.get(Profile, profile_id)
    if not profile:
        abort(404)
    return render_template("team/user_detail.html", **member_detail(s, profile))


# ---------- User management ----------
@bp.get("/add-user")
@require_admin
def add_user_get():
    return render_template("team/add_user.html", min_length=NEW_USER_MIN_PASSWORD, full_name="")


@bp.post("/add-user")
@require_admin
def add_user_post():
    s = db_session()
    full_name = (request.form.get("full_name") or "").strip()
    try:
        profile = create_user(
            s,
            full_name=full_name,
            password=request.form.get("password") or "",
            confirm_password=request.form.get("confirm_password") or "",
            actor=_current_user(),
            email_domain=current_app.config["LOGIN_EMAIL_DOMAIN"],
        )
    except TeamError as e:
        flash(str(e), "danger")
        return render_template("team/add_user.html", min_length=NEW_USER_MIN_PASSWORD, full_name=full_name), 400
    s.commit()
    flash(f'User "{profile.full_name}" created successfully', "success")
    return redirect(url_for("team.add_user_get"))


@bp.post("/users/<int:profile_id>/reset-password")
@require_admin
def reset_password_post(profile_id: int):
    s = db_session()
    try:
        target = reset_password(
            s,
            profile_id=profile_id,
            actor=_current_user(),
            default_password=current_app.config["DEFAULT_RESET_PASSWORD"],
        )
    except TeamError as e:
        if e.status == 404:
            abort(404)
        flash(str(e), "danger")
        return redirect(url_for("team.user_detail", profile_id=profile_id))
    s.commit()
    flash(f'Password reset for "{target.full_name}"', "success")
    return redirect(url_for("team.user_detail", profile_id=profile_id))


# ---------- All visits ----------
def _all_visits_query():
    s = db_session()
    args = request.args
    user_id = (args.get("user") or "").strip()
    q = (
        s.query(Visit)
        .join(Facility, Visit.facility_id == Facility.id)
        .join(Profile, Visit.profile_id == Profile.id)
    )
    q = filter_visits(
        q,
        search=(args.get("q") or "").strip(),
        facility_type=(args.get("type") or "").strip(),
        date_from=parse_date(args.get("date_from")),
        date_to=parse_date(args.get("date_to")),
        profile_id=int(user_id) if user_id.isdigit() else None,
        include_user_name=True,
    )
    return q.order_by(Visit.visit_date.desc(), Visit.created_at.desc())


@bp.get("/all-visits")
@require_admin
def all_visits():
    s = db_session()
    page = max(request.args.get("page", 1, type=int), 1)
    per_page = 50

    q = _all_visits_query()
    total = q.count()
    visits = q.offset((page - 1) * per_page).limit(per_page).all()
    total_pages = (total + per_page - 1) // per_page

    def build_url(p):
        args = dict(request.args)
        args["page"] = p
        return url_for("team.all_visits", **args)

    def export_url(fmt):
        args = {k: v for k, v in request.args.items() if k != "page"}
        args["format"] = fmt
        return url_for("team.all_visits_export", **args)

    return render_template(
        "team/all_visits.html",
        visits=visits,
        users=s.query(Profile).order_by(Profile.full_name.asc()).all(),
        types=visit_types(s),
        search=(request.args.get("q") or "").strip(),
        type_filter=(request.args.get("type") or "").strip(),
        user_filter=(request.args.get("user") or "").strip(),
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
        page=page,
        total=total,
        total_pages=total_pages,
        build_url=build_url,
        export_url=export_url,
    )


@bp.get("/all-visits/export")
@require_admin
def all_visits_export():
    s = db_session()
    fmt = (request.args.get("format") or "csv").strip().lower()
    if fmt not in ("csv", "xlsx"):
        abort(400)
    visits = _all_visits_query().all()

    record_event(
        s,
        actor=_current_user(),
        action="visit.export",
        entity_type="Visit",
        entity_id="export",
        metadata={"format": fmt, "row_count": len(visits), "filters": dict(request.args)},
    )
    s.commit()

    filename = f"all-visits-{date.today().isoformat()}.{fmt}"
    if fmt == "xlsx":
        return send_file(
            io.BytesIO(visits_xlsx_bytes(visits)),
            mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            as_attachment=True,
            download_name=filename,
            max_age=0,
        )
    return send_file(
        io.BytesIO(visits_csv_bytes(visits)),
        mimetype="text/csv",
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )


# ---------- JSON API ----------
def _api_admin() -> tuple[Profile | None, tuple | None]:
    profile = current_profile()
    if profile is None:
        return None, (jsonify({"error": "Not authenticated"}), 401)
    if profile.must_change_password:
        return None, (jsonify({"error": "Password change required"}), 403)
    if not profile.is_admin:
        return None, (jsonify({"error": "Not authorized"}), 403)
    return profile, None


@api_bp.post("/api/admin/create-user")
def api_create_user():
    actor, denied = _api_admin()
    if denied:
        return denied
    body = request.get_json(silent=True) or {}
    s = db_session()
    try:
        profile = create_user(
            s,
            full_name=str(body.get("fullName") or ""),
            password=str(body.get("password") or ""),
            confirm_password=None,
            actor=actor,
            email_domain=current_app.config["LOGIN_EMAIL_DOMAIN"],
        )
        s.commit()
    except TeamError as e:
        return jsonify({"error": str(e)}), e.status
    except SQLAlchemyError:
        s.rollback()
        current_app.logger.exception("create-user failed")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(
        {
            "success": True,
            "message": f'User "{profile.full_name}" created successfully',
            "email": profile.email,
        }
    )


@api_bp.post("/api/admin/reset-password")
def api_reset_password():
    actor, denied = _api_admin()
    if denied:
        return denied
    body = request.get_json(silent=True) or {}
    raw_id = body.get("userId")
    try:
        profile_id = int(raw_id) if raw_id not in (None, "") else None
    except (TypeError, ValueError):
        return jsonify({"error": "User not found"}), 404
    s = db_session()
    try:
        target = reset_password(
            s,
            profile_id=profile_id,
            actor=actor,
            default_password=current_app.config["DEFAULT_RESET_PASSWORD"],
        )
        s.commit()
    except TeamError as e:
        return jsonify({"error": str(e)}), e.status
    except SQLAlchemyError:
        s.rollback()
        current_app.logger.exception("reset-password failed")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"success": True, "message": f'Password reset for "{target.full_name}"'})
