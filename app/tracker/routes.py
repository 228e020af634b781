from flask import Blueprint, abort, current_app, redirect, send_file, url_for

from app.tracker.rbac import current_profile, landing_endpoint
from app.tracker.storage import LocalStorage, StorageError, load_media_token, storage_from_config

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return redirect(url_for(landing_endpoint(current_profile())))


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load balancer probes. No DB access.
    """
    return "ok", 200


@bp.get("/media/<token>")
def media(token: str):
    """Serve a locally stored photo for a signed, unexpired token."""
    storage = storage_from_config(current_app.config)
    if not isinstance(storage, LocalStorage):
        abort(404)
    key = load_media_token(
        current_app.config["SECRET_KEY"],
        token,
        max_age=int(current_app.config["SIGNED_URL_TTL_SECONDS"]),
    )
    if not key:
        abort(404)
    try:
        if not storage.exists(key):
            abort(404)
        fobj = storage.open(key)
    except StorageError:
        abort(404)
    return send_file(fobj, download_name=key.rsplit("/", 1)[-1], max_age=0)
