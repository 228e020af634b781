#!/usr/bin/env python3
"""Set a team member's password from the command line.

Usage:
  python scripts/reset_password.py --name "Tim Nelson" --password "NewPass2026"
  python scripts/reset_password.py --name "Tim Nelson"            # uses DEFAULT_RESET_PASSWORD
  python scripts/reset_password.py --name "Tim Nelson" --password X --no-force-change
"""

import argparse
import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.tracker.audit import record_event
from app.tracker.auth import email_for_name
from app.tracker.models import Profile
from scripts._db_utils import script_session


def main() -> None:
    parser = argparse.ArgumentParser(description="Reset a profile's password")
    parser.add_argument("--name", required=True, help="Full name as shown on the login page")
    parser.add_argument("--password", help="New password (default: DEFAULT_RESET_PASSWORD)")
    parser.add_argument(
        "--no-force-change",
        action="store_true",
        help="Do not require a password change at next login",
    )
    args = parser.parse_args()

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///tracker.db").strip()
    domain = (os.environ.get("LOGIN_EMAIL_DOMAIN") or "cascadia.local").strip().lower()
    password = args.password or os.environ.get("DEFAULT_RESET_PASSWORD") or "Cascadia1"
    email = email_for_name(args.name, domain)

    with script_session(db_url) as s:
        profile = s.query(Profile).filter(Profile.email == email).one_or_none()
        if not profile:
            print(f"Profile not found: {args.name} ({email})")
            sys.exit(1)
        profile.password_hash = generate_password_hash(password)
        profile.must_change_password = not args.no_force_change
        record_event(
            s,
            actor=None,
            action="user.reset_password",
            entity_type="Profile",
            entity_id=str(profile.id),
            reason="CLI reset",
        )
        print(f"Found {profile.full_name} (id={profile.id})")
    print("Password updated successfully!")


if __name__ == "__main__":
    main()
