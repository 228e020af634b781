"""Tests for team stats, user management and the all-visits export."""
import csv
import io
from datetime import date

import pytest
from openpyxl import load_workbook
from werkzeug.security import check_password_hash

from app.tracker.db import session_scope
from app.tracker.models import AuditEvent, Profile
from app.tracker.modules.facilities.models import Facility
from app.tracker.modules.team.service import EXPORT_HEADERS, TeamError, create_user, leaderboard, reset_password
from app.tracker.modules.visits.service import record_visit


def _profile(s, name):
    return s.query(Profile).filter(Profile.full_name == name).one()


@pytest.fixture()
def visits_seeded(app):
    with session_scope(app) as s:
        tim, ada = _profile(s, "Tim Nelson"), _profile(s, "Ada Admin")
        a = Facility(facility_name="Rose Garden", type="SNF", address="1 Main St", city="Portland", state="OR")
        b = Facility(facility_name="Maple House", type="AL", city="Salem", state="OR")
        s.add_all([a, b])
        s.flush()
        record_visit(s, user=tim, facility=a, visit_date=date(2026, 1, 5), note="Toured, met DON", photo_key=None)
        record_visit(s, user=tim, facility=b, visit_date=date(2026, 1, 7), note=None, photo_key=None)
        record_visit(s, user=ada, facility=a, visit_date=date(2026, 2, 1), note="Quarterly", photo_key=None)


# ---------- Service ----------
def test_leaderboard_orders_by_facilities_visited(app, visits_seeded):
    with session_scope(app) as s:
        rows = leaderboard(s)
    assert [r.profile.full_name for r in rows] == ["Tim Nelson", "Ada Admin", "New Person"]
    assert [(r.facilities_visited, r.total_visits, r.completion_percentage) for r in rows] == [
        (2, 2, 100),
        (1, 1, 50),
        (0, 0, 0),
    ]


def test_create_user_rules(app):
    with session_scope(app) as s:
        ada = _profile(s, "Ada Admin")
        with pytest.raises(TeamError, match="Full name and password are required"):
            create_user(s, full_name=" ", password="secret1", confirm_password="secret1", actor=ada, email_domain="x.org")
        with pytest.raises(TeamError, match="Passwords do not match"):
            create_user(s, full_name="Jo Park", password="secret1", confirm_password="secret2", actor=ada, email_domain="x.org")
        with pytest.raises(TeamError, match="at least 6 characters"):
            create_user(s, full_name="Jo Park", password="abc", confirm_password="abc", actor=ada, email_domain="x.org")
        with pytest.raises(TeamError, match="already exists"):
            create_user(s, full_name="tim  nelson", password="secret1", confirm_password=None, actor=ada, email_domain="x.org")

        p = create_user(s, full_name="  Jo   Park ", password="secret1", confirm_password=None, actor=ada, email_domain="x.org")
        assert p.full_name == "Jo Park"
        assert p.email == "jo.park@x.org"
        assert p.must_change_password is True
        assert p.is_admin is False
        assert check_password_hash(p.password_hash, "secret1")
        s.flush()
        assert s.query(AuditEvent).filter(AuditEvent.action == "user.create").count() == 1


def test_reset_password_rules(app):
    with session_scope(app) as s:
        ada, tim = _profile(s, "Ada Admin"), _profile(s, "Tim Nelson")
        with pytest.raises(TeamError, match="User ID is required"):
            reset_password(s, profile_id=None, actor=ada, default_password="Cascadia1")
        with pytest.raises(TeamError, match="Cannot reset your own password"):
            reset_password(s, profile_id=ada.id, actor=ada, default_password="Cascadia1")
        with pytest.raises(TeamError) as exc:
            reset_password(s, profile_id=9999, actor=ada, default_password="Cascadia1")
        assert exc.value.status == 404

        reset_password(s, profile_id=tim.id, actor=ada, default_password="Cascadia1")
        assert tim.must_change_password is True
        assert check_password_hash(tim.password_hash, "Cascadia1")


# ---------- Views ----------
def test_team_pages_visible_to_members(client, login, profile_ids, visits_seeded):
    login("Tim Nelson")
    r = client.get("/admin/users")
    assert r.status_code == 200
    assert b"Ada Admin" in r.data

    r = client.get(f"/admin/users/{profile_ids['Ada Admin']}")
    assert r.status_code == 200
    assert b"Quarterly" in r.data
    assert client.get("/admin/users/9999").status_code == 404


def test_add_user_form(app, client, login, csrf):
    login("Ada Admin")
    token = csrf()
    r = client.post(
        "/admin/add-user",
        data={"full_name": "Jo Park", "password": "secret1", "confirm_password": "secret1", "csrf_token": token},
        follow_redirects=True,
    )
    assert b"User &#34;Jo Park&#34; created successfully" in r.data

    r = client.post(
        "/admin/add-user",
        data={"full_name": "Jo Park", "password": "secret1", "confirm_password": "secret1", "csrf_token": token},
    )
    assert r.status_code == 400
    assert b"A user with this name already exists" in r.data

    with session_scope(app) as s:
        assert _profile(s, "Jo Park").must_change_password is True


def test_add_user_requires_admin(client, login):
    login("Tim Nelson")
    r = client.get("/admin/add-user", follow_redirects=False)
    assert r.headers["Location"].endswith("/dashboard")


def test_reset_password_form(app, client, login, csrf, profile_ids):
    login("Ada Admin")
    token = csrf()
    r = client.post(f"/admin/users/{profile_ids['Tim Nelson']}/reset-password", data={"csrf_token": token})
    assert r.status_code == 302
    with session_scope(app) as s:
        assert _profile(s, "Tim Nelson").must_change_password is True

    r = client.post("/admin/users/9999/reset-password", data={"csrf_token": token})
    assert r.status_code == 404


def test_json_api_auth(client, login):
    r = client.post("/api/admin/create-user", json={"fullName": "Jo Park", "password": "secret1"})
    # no session token yet, so the CSRF guard answers first
    assert r.status_code == 400

    client.get("/login")
    with client.session_transaction() as sess:
        token = sess["csrf_token"]
    r = client.post(
        "/api/admin/create-user",
        json={"fullName": "Jo Park", "password": "secret1"},
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 401
    assert r.json == {"error": "Not authenticated"}

    login("Tim Nelson")
    r = client.post(
        "/api/admin/create-user",
        json={"fullName": "Jo Park", "password": "secret1"},
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 403
    assert r.json == {"error": "Not authorized"}


def test_json_api_create_and_reset(app, client, login, csrf, profile_ids):
    login("Ada Admin")
    headers = {"X-CSRF-Token": csrf()}

    r = client.post("/api/admin/create-user", json={"fullName": "Jo Park", "password": "secret1"}, headers=headers)
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["email"] == "jo.park@cascadia.local"

    r = client.post("/api/admin/create-user", json={"fullName": "Jo Park", "password": "secret1"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "A user with this name already exists"

    r = client.post("/api/admin/reset-password", json={"userId": profile_ids["Ada Admin"]}, headers=headers)
    assert r.status_code == 400

    r = client.post("/api/admin/reset-password", json={"userId": 9999}, headers=headers)
    assert r.status_code == 404

    r = client.post("/api/admin/reset-password", json={}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "User ID is required"

    r = client.post("/api/admin/reset-password", json={"userId": profile_ids["Tim Nelson"]}, headers=headers)
    assert r.status_code == 200
    assert r.json["success"] is True


def test_all_visits_filters(client, login, profile_ids, visits_seeded):
    login("Ada Admin")
    r = client.get("/admin/all-visits")
    assert r.status_code == 200
    assert b"Toured, met DON" in r.data
    assert b"Quarterly" in r.data

    r = client.get(f"/admin/all-visits?user={profile_ids['Ada Admin']}")
    assert b"Quarterly" in r.data
    assert b"Toured, met DON" not in r.data

    r = client.get("/admin/all-visits?q=tim")
    assert b"Toured, met DON" in r.data
    assert b"Quarterly" not in r.data


def test_export_csv(app, client, login, visits_seeded):
    login("Ada Admin")
    r = client.get("/admin/all-visits/export?format=csv&type=SNF")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert f"all-visits-{date.today().isoformat()}.csv" in r.headers["Content-Disposition"]

    rows = list(csv.reader(io.StringIO(r.data.decode("utf-8"))))
    assert tuple(rows[0]) == EXPORT_HEADERS
    assert rows[1:] == [
        ["2026-02-01", "Ada Admin", "Rose Garden", "SNF", "1 Main St", "Portland", "OR", "Quarterly"],
        ["2026-01-05", "Tim Nelson", "Rose Garden", "SNF", "1 Main St", "Portland", "OR", "Toured, met DON"],
    ]
    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "visit.export").count() == 1


def test_export_xlsx(client, login, visits_seeded):
    login("Ada Admin")
    r = client.get("/admin/all-visits/export?format=xlsx")
    assert r.status_code == 200
    wb = load_workbook(io.BytesIO(r.data))
    ws = wb.active
    values = list(ws.iter_rows(values_only=True))
    assert values[0] == EXPORT_HEADERS
    assert len(values) == 4


def test_export_rejects_unknown_format(client, login):
    login("Ada Admin")
    assert client.get("/admin/all-visits/export?format=pdf").status_code == 400


def test_admin_index_and_audit(client, login, visits_seeded):
    login("Ada Admin")
    r = client.get("/admin/")
    assert r.status_code == 200
    assert b"Missing coordinates" in r.data

    r = client.get("/admin/audit?action=visit.create")
    assert r.status_code == 200
    assert b"<td>visit.create</td>" in r.data
    assert b"<td>auth.login</td>" not in r.data

    r = client.get("/admin/audit?date_from=nope")
    assert b"date_from must be YYYY-MM-DD" in r.data


def test_json_api_requires_password_change_first(app, client, csrf, profile_ids):
    with session_scope(app) as s:
        _profile(s, "Ada Admin").must_change_password = True
    client.post("/login", data={"profile_id": str(profile_ids["Ada Admin"]), "password": "adminpass1"})
    headers = {"X-CSRF-Token": csrf()}

    r = client.post("/api/admin/create-user", json={"fullName": "Jo Park", "password": "secret1"}, headers=headers)
    assert r.status_code == 403
    assert r.json == {"error": "Password change required"}

    r = client.post("/api/admin/reset-password", json={"userId": profile_ids["Tim Nelson"]}, headers=headers)
    assert r.status_code == 403
    with session_scope(app) as s:
        assert s.query(Profile).filter(Profile.full_name == "Jo Park").count() == 0
        assert _profile(s, "Tim Nelson").must_change_password is False


def test_all_visits_clamps_page_below_one(client, login, visits_seeded):
    login("Ada Admin")
    for page in ("0", "-3"):
        r = client.get(f"/admin/all-visits?page={page}")
        assert r.status_code == 200
        assert b"Quarterly" in r.data
