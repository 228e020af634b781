import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.tracker.auth import email_for_name
from app.tracker.models import Profile
from scripts._db_utils import script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin profile in an idempotent way.
    Does NOT overwrite an existing admin's password.
    """
    admin_name = " ".join((os.environ.get("ADMIN_NAME") or "Admin").split())
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    domain = (os.environ.get("LOGIN_EMAIL_DOMAIN") or "cascadia.local").strip().lower()
    email = email_for_name(admin_name, domain)

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///tracker.db").strip()

    # Direct engine/session so release can run this without importing app.wsgi.
    with script_session(db_url) as s:
        profile = s.query(Profile).filter(Profile.email == email).one_or_none()
        if not profile:
            profile = Profile(
                full_name=admin_name,
                email=email,
                password_hash=generate_password_hash(admin_password),
                is_admin=True,
                must_change_password=admin_password == "change-me",
                is_active=True,
            )
            s.add(profile)
            print(f"Created admin profile: {admin_name}")
        elif not profile.is_admin:
            profile.is_admin = True
            print(f"Granted admin to existing profile: {admin_name}")

    print("Initialized database (seed_only).")
    print(f"Admin username: {admin_name}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
