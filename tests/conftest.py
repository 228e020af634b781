import pytest
from werkzeug.security import generate_password_hash

from app.tracker import auth as auth_module
from app.tracker import create_app
from app.tracker.db import session_scope
from app.tracker.models import Base, Profile

ADMIN_NAME = "Ada Admin"
ADMIN_PASSWORD = "adminpass1"
MEMBER_NAME = "Tim Nelson"
MEMBER_PASSWORD = "memberpass1"
NEW_NAME = "New Person"
NEW_PASSWORD = "Cascadia1"


def _profile(name: str, password: str, *, is_admin: bool = False, must_change: bool = False) -> Profile:
    return Profile(
        full_name=name,
        email=auth_module.email_for_name(name, "cascadia.local"),
        password_hash=generate_password_hash(password),
        is_admin=is_admin,
        must_change_password=must_change,
        is_active=True,
    )


@pytest.fixture(autouse=True)
def _reset_login_attempts():
    auth_module._login_attempts.clear()
    yield
    auth_module._login_attempts.clear()


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("LOCAL_STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("GEOCODE_DELAY_SECONDS", "0")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "MAPBOX_TOKEN"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add_all(
            [
                _profile(ADMIN_NAME, ADMIN_PASSWORD, is_admin=True),
                _profile(MEMBER_NAME, MEMBER_PASSWORD),
                _profile(NEW_NAME, NEW_PASSWORD, must_change=True),
            ]
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def profile_ids(app):
    with session_scope(app) as s:
        return {p.full_name: p.id for p in s.query(Profile).all()}


@pytest.fixture()
def login(client, profile_ids):
    def _login(name: str = MEMBER_NAME, password: str | None = None, **kwargs):
        if password is None:
            password = {ADMIN_NAME: ADMIN_PASSWORD, MEMBER_NAME: MEMBER_PASSWORD, NEW_NAME: NEW_PASSWORD}[name]
        data = {"profile_id": str(profile_ids[name]), "password": password}
        data.update(kwargs)
        return client.post("/login", data=data, follow_redirects=False)

    return _login


@pytest.fixture()
def csrf(client):
    """Plant a known CSRF token in the session and return it for form posts."""

    def _token() -> str:
        with client.session_transaction() as sess:
            sess["csrf_token"] = "test-csrf-token"
        return "test-csrf-token"

    return _token
