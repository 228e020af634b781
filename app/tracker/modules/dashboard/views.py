from flask import Blueprint, current_app, g, render_template, request

from app.tracker.db import db_session
from app.tracker.modules.dashboard.service import DashboardFilters, build_dashboard
from app.tracker.modules.visits.service import photo_url
from app.tracker.quotes import featured_quote, random_quotes
from app.tracker.rbac import require_login
from app.tracker.storage import storage_from_config

bp = Blueprint("dashboard", __name__)


@bp.get("/dashboard")
@require_login
def index():
    s = db_session()
    data = build_dashboard(s, g.current_user, DashboardFilters.from_args(request.args))

    storage = storage_from_config(current_app.config)
    ttl = int(current_app.config["SIGNED_URL_TTL_SECONDS"])
    photos = {v.id: photo_url(storage, v.photo_key, ttl=ttl) for v in data.recent_visits}

    return render_template(
        "dashboard/index.html",
        data=data,
        photos=photos,
        featured=featured_quote(),
        banner_quotes=random_quotes(3, exclude_featured=True),
    )
