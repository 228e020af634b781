#!/usr/bin/env python3
"""Geocode every facility that is missing latitude or longitude.

Usage:
  MAPBOX_TOKEN=... python scripts/geocode_facilities.py [--limit 100] [--delay 0.2]
"""

import argparse
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.tracker.audit import record_event
from app.tracker.modules.facilities.geocode import MapboxGeocoder, geocode_facilities
from app.tracker.modules.facilities.service import facilities_missing_coordinates
from scripts._db_utils import script_session


def main() -> None:
    parser = argparse.ArgumentParser(description="Bulk geocode facilities missing coordinates")
    parser.add_argument("--limit", type=int, default=0, help="Stop after N facilities (0 = all)")
    parser.add_argument(
        "--delay",
        type=float,
        default=float(os.environ.get("GEOCODE_DELAY_SECONDS") or 0.2),
        help="Seconds to wait between requests",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    token = (os.environ.get("MAPBOX_TOKEN") or "").strip()
    if not token:
        print("MAPBOX_TOKEN is not configured")
        sys.exit(1)

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///tracker.db").strip()
    with script_session(db_url) as s:
        facilities = facilities_missing_coordinates(s)
        if args.limit:
            facilities = facilities[: args.limit]
        print(f"Geocoding {len(facilities)} facilities...")

        run = geocode_facilities(s, facilities, MapboxGeocoder(token=token), delay_seconds=args.delay)
        for row in run.rows:
            print(f"  [{row.status}] {row.facility_name}: {row.message}")
        record_event(
            s,
            actor=None,
            action="facility.geocode",
            entity_type="Facility",
            reason="CLI bulk geocode",
            metadata={"source": "cli", "success": run.success, "failed": run.failed},
        )
    print(f"Done: {run.success} succeeded, {run.failed} failed.")


if __name__ == "__main__":
    main()
