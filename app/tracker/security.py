import secrets

from flask import Request, session

CSRF_SESSION_KEY = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

# Sign-in/out endpoints run before a session token can exist on a fresh browser.
CSRF_EXEMPT_ENDPOINTS = frozenset({"auth.login_post", "auth.admin_login_post", "auth.logout"})


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_SESSION_KEY] = token
    return token


def _submitted_token(req: Request) -> str | None:
    token = req.headers.get(CSRF_HEADER) or req.form.get("csrf_token")
    if not token and req.is_json:
        body = req.get_json(silent=True)
        if isinstance(body, dict):
            token = body.get("csrf_token")
    return token


def validate_csrf(req: Request) -> bool:
    """Validate the CSRF token from a form field, header, or JSON body."""
    if (req.endpoint or "") in CSRF_EXEMPT_ENDPOINTS:
        return True
    token = _submitted_token(req)
    expected = session.get(CSRF_SESSION_KEY)
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))
