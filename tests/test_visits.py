"""Tests for visit recording and first-visit completion upkeep."""
import io
from datetime import date, timedelta
from pathlib import Path

import pytest

from app.tracker.db import session_scope
from app.tracker.models import AuditEvent, Profile
from app.tracker.modules.facilities.models import Facility
from app.tracker.modules.visits.models import FacilityCompletion, Visit
from app.tracker.modules.visits.service import (
    delete_visit,
    get_completion,
    photo_key_for,
    record_visit,
    update_visit,
    validate_photo,
    validate_visit_date,
)


@pytest.fixture()
def facility_id(app):
    with session_scope(app) as s:
        f = Facility(facility_name="Rose Garden SNF", type="SNF", city="Portland", state="OR")
        s.add(f)
        s.flush()
        return f.id


def _record(s, name, fid, d, note=None):
    user = s.query(Profile).filter(Profile.full_name == name).one()
    return record_visit(s, user=user, facility=s.get(Facility, fid), visit_date=d, note=note, photo_key=None)


# ---------- Validation ----------
def test_validate_photo():
    mb = 1024 * 1024
    assert validate_photo(None, None, 0, max_bytes=10 * mb) == "Please upload a photo"
    assert validate_photo("a.pdf", "application/pdf", 100, max_bytes=10 * mb) == "Please select an image file"
    assert validate_photo("a.jpg", "image/jpeg", 11 * mb, max_bytes=10 * mb) == "Image must be less than 10MB"
    assert validate_photo("a.jpg", "image/jpeg", 100, max_bytes=10 * mb) is None


def test_validate_visit_date():
    today = date(2026, 3, 10)
    assert validate_visit_date("", today=today) == (today, None)
    assert validate_visit_date("2026-03-01", today=today) == (date(2026, 3, 1), None)
    assert validate_visit_date("03/01/2026", today=today) == (None, "Visit date must be YYYY-MM-DD")
    assert validate_visit_date("2026-03-11", today=today) == (None, "Visit date cannot be in the future")


def test_photo_key_for():
    assert photo_key_for(3, "IMG_1.PNG", now_ms=1767225600000) == "visit-photos/3/1767225600000.png"
    assert photo_key_for(3, "noext", now_ms=5) == "visit-photos/3/5.jpg"
    assert photo_key_for(3, "a.exe", now_ms=5) == "visit-photos/3/5.jpg"


# ---------- Completion upkeep ----------
def test_first_visit_creates_completion(app, facility_id):
    with session_scope(app) as s:
        v = _record(s, "Tim Nelson", facility_id, date(2026, 1, 10))
        c = get_completion(s, v.profile_id, facility_id)
        assert c is not None
        assert c.first_visit_id == v.id

        v2 = _record(s, "Tim Nelson", facility_id, date(2026, 1, 20))
        c = get_completion(s, v2.profile_id, facility_id)
        assert c.first_visit_id == v.id
        assert s.query(FacilityCompletion).count() == 1


def test_backdated_visit_takes_over_completion(app, facility_id):
    with session_scope(app) as s:
        later = _record(s, "Tim Nelson", facility_id, date(2026, 2, 1))
        earlier = _record(s, "Tim Nelson", facility_id, date(2026, 1, 5))
        c = get_completion(s, later.profile_id, facility_id)
        assert c.first_visit_id == earlier.id


def test_completions_are_per_profile(app, facility_id):
    with session_scope(app) as s:
        a = _record(s, "Tim Nelson", facility_id, date(2026, 1, 10))
        b = _record(s, "Ada Admin", facility_id, date(2026, 1, 1))
        assert get_completion(s, a.profile_id, facility_id).first_visit_id == a.id
        assert get_completion(s, b.profile_id, facility_id).first_visit_id == b.id


def test_deleting_first_visit_moves_completion(app, facility_id):
    with session_scope(app) as s:
        first = _record(s, "Tim Nelson", facility_id, date(2026, 1, 1))
        second = _record(s, "Tim Nelson", facility_id, date(2026, 1, 15))
        third = _record(s, "Tim Nelson", facility_id, date(2026, 2, 1))
        pid = first.profile_id

        delete_visit(s, first, user=first.profile)
        assert get_completion(s, pid, facility_id).first_visit_id == second.id

        # removing a later visit leaves the completion alone
        delete_visit(s, third, user=second.profile)
        assert get_completion(s, pid, facility_id).first_visit_id == second.id


def test_deleting_only_visit_removes_completion(app, facility_id):
    with session_scope(app) as s:
        v = _record(s, "Tim Nelson", facility_id, date(2026, 1, 1))
        pid = v.profile_id
        delete_visit(s, v, user=v.profile)
        assert get_completion(s, pid, facility_id) is None
        assert s.query(Visit).count() == 0
        assert s.query(AuditEvent).filter(AuditEvent.action == "visit.delete").count() == 1


def test_editing_date_recomputes_completion(app, facility_id):
    with session_scope(app) as s:
        a = _record(s, "Tim Nelson", facility_id, date(2026, 1, 1))
        b = _record(s, "Tim Nelson", facility_id, date(2026, 1, 10))
        pid = a.profile_id

        update_visit(s, a, visit_date=date(2026, 1, 20), note=None, user=a.profile)
        assert get_completion(s, pid, facility_id).first_visit_id == b.id

        update_visit(s, b, visit_date=b.visit_date, note="Spoke with the DON", user=b.profile)
        assert b.note == "Spoke with the DON"
        s.flush()
        assert s.query(AuditEvent).filter(AuditEvent.action == "visit.update").count() == 2


def test_update_without_changes_is_not_audited(app, facility_id):
    with session_scope(app) as s:
        v = _record(s, "Tim Nelson", facility_id, date(2026, 1, 1), note="hi")
        update_visit(s, v, visit_date=v.visit_date, note=" hi ", user=v.profile)
        assert s.query(AuditEvent).filter(AuditEvent.action == "visit.update").count() == 0


# ---------- Views ----------
def _upload(client, token, fid, **overrides):
    data = {
        "facility_id": str(fid),
        "visit_date": "",
        "note": "Met the administrator",
        "photo": (io.BytesIO(b"\xff\xd8fake-jpeg"), "visit.jpg", "image/jpeg"),
        "csrf_token": token,
    }
    data.update(overrides)
    return client.post("/upload", data=data, content_type="multipart/form-data", follow_redirects=False)


def test_upload_page_lists_facilities(client, login, facility_id):
    login("Tim Nelson")
    r = client.get("/upload")
    assert r.status_code == 200
    assert b"Rose Garden SNF" in r.data


def test_upload_records_visit_and_stores_photo(app, client, login, csrf, facility_id):
    login("Tim Nelson")
    r = _upload(client, csrf(), facility_id)
    assert r.status_code == 302
    assert "/visits/" in r.headers["Location"]

    with session_scope(app) as s:
        v = s.query(Visit).one()
        assert v.visit_date == date.today()
        assert v.note == "Met the administrator"
        assert v.photo_key.startswith(f"visit-photos/{v.profile_id}/")
        assert get_completion(s, v.profile_id, facility_id).first_visit_id == v.id
        key, visit_id = v.photo_key, v.id

    stored = Path(app.config["LOCAL_STORAGE_ROOT"]) / key
    assert stored.read_bytes() == b"\xff\xd8fake-jpeg"

    r = client.get(f"/visits/{visit_id}")
    assert r.status_code == 200
    assert b"Rose Garden SNF" in r.data

    r = client.get("/visits")
    assert r.status_code == 200
    assert b"Rose Garden SNF" in r.data


def test_photo_is_served_from_signed_url(app, client, login, csrf, facility_id):
    from app.tracker.storage import storage_from_config

    login("Tim Nelson")
    _upload(client, csrf(), facility_id)
    with session_scope(app) as s:
        key = s.query(Visit).one().photo_key

    url = storage_from_config(app.config).signed_url(key, expires_in=60)
    r = client.get(url)
    assert r.status_code == 200
    assert r.data == b"\xff\xd8fake-jpeg"


def test_upload_requires_facility(client, login, csrf):
    login("Tim Nelson")
    r = _upload(client, csrf(), "")
    assert r.headers["Location"].endswith("/upload")
    assert b"Please select a facility" in client.get("/upload").data


def test_upload_rejects_non_image(client, login, csrf, facility_id):
    login("Tim Nelson")
    _upload(client, csrf(), facility_id, photo=(io.BytesIO(b"%PDF"), "doc.pdf", "application/pdf"))
    assert b"Please select an image file" in client.get("/upload").data


def test_upload_rejects_future_date(app, client, login, csrf, facility_id):
    login("Tim Nelson")
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    _upload(client, csrf(), facility_id, visit_date=tomorrow)
    assert b"Visit date cannot be in the future" in client.get("/upload").data
    with session_scope(app) as s:
        assert s.query(Visit).count() == 0


def test_visit_detail_is_owner_only(app, client, login, facility_id):
    with session_scope(app) as s:
        v = _record(s, "Ada Admin", facility_id, date(2026, 1, 1))
        vid = v.id
    login("Tim Nelson")
    assert client.get(f"/visits/{vid}").status_code == 404


def test_edit_and_delete_views(app, client, login, csrf, facility_id):
    login("Tim Nelson")
    token = csrf()
    _upload(client, token, facility_id)
    with session_scope(app) as s:
        v = s.query(Visit).one()
        vid, key = v.id, v.photo_key

    yesterday = (date.today() - timedelta(days=1)).isoformat()
    r = client.post(f"/visits/{vid}/edit", data={"visit_date": yesterday, "note": "", "csrf_token": token})
    assert r.status_code == 302
    with session_scope(app) as s:
        v = s.get(Visit, vid)
        assert v.visit_date.isoformat() == yesterday
        assert v.note is None

    r = client.post(f"/visits/{vid}/delete", data={"csrf_token": token})
    assert r.headers["Location"].endswith("/visits")
    with session_scope(app) as s:
        assert s.query(Visit).count() == 0
        assert s.query(FacilityCompletion).count() == 0
    assert not (Path(app.config["LOCAL_STORAGE_ROOT"]) / key).exists()


def test_visit_list_filters(app, client, login, facility_id):
    with session_scope(app) as s:
        other = Facility(facility_name="Maple Hospice", type="Hospice", city="Salem")
        s.add(other)
        s.flush()
        _record(s, "Tim Nelson", facility_id, date(2026, 1, 1), note="first")
        _record(s, "Tim Nelson", other.id, date(2026, 2, 1), note="second")
        _record(s, "Ada Admin", other.id, date(2026, 2, 2), note="admin visit")

    login("Tim Nelson")
    r = client.get("/visits?type=Hospice")
    assert b"Maple Hospice" in r.data
    assert b"Rose Garden SNF" not in r.data
    assert b"admin visit" not in r.data

    r = client.get("/visits?q=portland")
    assert b"Rose Garden SNF" in r.data
    assert b"Maple Hospice" not in r.data

    r = client.get("/visits?date_from=2026-01-15")
    assert b"Maple Hospice" in r.data
    assert b"Rose Garden SNF" not in r.data

    # page numbers below one fall back to the first page
    r = client.get("/visits?page=0")
    assert r.status_code == 200
    assert b"Rose Garden SNF" in r.data
    assert client.get("/visits?page=-2").status_code == 200
