from __future__ import annotations

import re
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from app.tracker.audit import record_event
from app.tracker.db import db_session
from app.tracker.models import Profile
from app.tracker.quotes import daily_short_quotes
from app.tracker.rbac import current_profile, landing_endpoint

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

MIN_PASSWORD_LENGTH = 8


def email_for_name(full_name: str, domain: str) -> str:
    """'Tim  Nelson' -> 'tim.nelson@<domain>'"""
    local = re.sub(r"\s+", ".", (full_name or "").strip().lower())
    return f"{local}@{domain}"


def validate_password_pair(password: str, confirm: str, *, min_length: int = MIN_PASSWORD_LENGTH) -> str | None:
    """Return the first validation error, or None. Match is checked before length."""
    if password != confirm:
        return "Passwords do not match"
    if len(password) < min_length:
        return f"Password must be at least {min_length} characters"
    return None


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _safe_next(nxt: str) -> str | None:
    # Only allow local paths to avoid open redirects.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    profile_id = session.get("profile_id")
    if not profile_id:
        return

    try:
        s = db_session()
        profile = s.get(Profile, int(profile_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("profile_id", None)
        return
    if not profile or not profile.is_active:
        session.pop("profile_id", None)
        return
    g.current_user = profile


def _sign_in(s, profile: Profile, ip: str, *, action: str) -> None:
    session["profile_id"] = profile.id
    _login_attempts[ip].clear()
    record_event(s, actor=profile, action=action, entity_type="Profile", entity_id=str(profile.id))
    s.commit()


# ---------- Team login (select name + password) ----------
@bp.get("/login")
def login_get():
    profile = current_profile()
    if profile is not None:
        return redirect(url_for(landing_endpoint(profile)))
    s = db_session()
    profiles = (
        s.query(Profile)
        .filter(Profile.is_active.is_(True))
        .order_by(Profile.full_name.asc())
        .all()
    )
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", profiles=profiles, next=nxt, quotes=daily_short_quotes(8))


@bp.post("/login")
def login_post():
    profile_id = (request.form.get("profile_id") or "").strip()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))

    s = db_session()
    profile = s.get(Profile, int(profile_id)) if profile_id.isdigit() else None
    if not profile or not profile.is_active:
        flash("Please select your name", "danger")
        return redirect(url_for("auth.login_get"))

    _record_attempt(ip)
    if not check_password_hash(profile.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="Profile",
            entity_id=str(profile.id),
            reason="Invalid credentials",
        )
        s.commit()
        flash("Incorrect password. Please try again.", "danger")
        return redirect(url_for("auth.login_get"))

    _sign_in(s, profile, ip, action="auth.login")
    if profile.must_change_password:
        return redirect(url_for("auth.change_password_get"))
    return redirect(_safe_next(nxt) or url_for("dashboard.index"))


# ---------- Admin login (username + password) ----------
@bp.get("/admin/login")
def admin_login_get():
    return render_template("auth/admin_login.html")


@bp.post("/admin/login")
def admin_login_post():
    username = (request.form.get("username") or "").strip()
    password = request.form.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.admin_login_get"))
    _record_attempt(ip)

    s = db_session()
    email = email_for_name(username, current_app.config["LOGIN_EMAIL_DOMAIN"])
    profile = s.query(Profile).filter(Profile.email == email).one_or_none()
    if not profile or not profile.is_active or not check_password_hash(profile.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.admin_login_failed",
            entity_type="Profile",
            entity_id=email,
            reason="Invalid credentials",
        )
        s.commit()
        flash("Incorrect username or password", "danger")
        return redirect(url_for("auth.admin_login_get"))

    if not profile.is_admin:
        flash("This account is not an admin account", "danger")
        return redirect(url_for("auth.admin_login_get"))

    _sign_in(s, profile, ip, action="auth.admin_login")
    if profile.must_change_password:
        return redirect(url_for("auth.change_password_get"))
    return redirect(url_for("admin.index"))


@bp.route("/logout", methods=["GET", "POST"])
def logout():
    profile = current_profile()
    if profile:
        s = db_session()
        record_event(s, actor=profile, action="auth.logout", entity_type="Profile", entity_id=str(profile.id))
        s.commit()
    session.pop("profile_id", None)
    return redirect(url_for("auth.login_get"))


# ---------- Forced password change ----------
@bp.get("/change-password")
def change_password_get():
    profile = current_profile()
    if profile is None:
        return redirect(url_for("auth.login_get"))
    if not profile.must_change_password:
        return redirect(url_for("dashboard.index"))
    return render_template("auth/change_password.html", profile=profile, min_length=MIN_PASSWORD_LENGTH)


@bp.post("/change-password")
def change_password_post():
    profile = current_profile()
    if profile is None:
        return redirect(url_for("auth.login_get"))
    if not profile.must_change_password:
        return redirect(url_for("dashboard.index"))

    new_password = request.form.get("new_password") or ""
    confirm_password = request.form.get("confirm_password") or ""
    error = validate_password_pair(new_password, confirm_password)
    if error:
        flash(error, "danger")
        return redirect(url_for("auth.change_password_get"))

    s = db_session()
    profile.password_hash = generate_password_hash(new_password)
    profile.must_change_password = False
    s.add(profile)
    record_event(s, actor=profile, action="auth.password_change", entity_type="Profile", entity_id=str(profile.id))
    s.commit()
    flash("Password updated.", "success")
    return redirect(url_for("dashboard.index"))
