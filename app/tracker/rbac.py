from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, redirect, request, url_for

from app.tracker.models import Profile


def current_profile() -> Profile | None:
    p: Profile | None = getattr(g, "current_user", None)
    if not p or not p.is_active:
        return None
    return p


def landing_endpoint(profile: Profile | None) -> str:
    """Where a visitor belongs when they hit the site root (or the login page)."""
    if profile is None:
        return "auth.login_get"
    if profile.must_change_password:
        return "auth.change_password_get"
    return "dashboard.index"


def _login_redirect():
    nxt = request.full_path or request.path
    # Avoid trailing '?' from full_path when there is no query string.
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("auth.login_get", next=nxt))


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Signed-in, active profile whose password is no longer the issued one."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        profile = current_profile()
        if profile is None:
            return _login_redirect()
        if profile.must_change_password:
            return redirect(url_for("auth.change_password_get"))
        return fn(*args, **kwargs)

    return wrapped


def require_admin(fn: Callable[..., Any]) -> Callable[..., Any]:
    """As require_login, then non-admins are sent back to their dashboard."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        profile = current_profile()
        if profile is None:
            return _login_redirect()
        if profile.must_change_password:
            return redirect(url_for("auth.change_password_get"))
        if not profile.is_admin:
            g.missing_permission = "admin"
            return redirect(url_for("dashboard.index"))
        return fn(*args, **kwargs)

    return wrapped
