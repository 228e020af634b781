from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

from app.tracker.modules.facilities.models import Facility
from app.tracker.modules.visits.models import FacilityCompletion, Visit

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

RECENT_VISITS = 5
MONTHS_SHOWN = 6


def completion_percentage(visited: int, total: int) -> int:
    """Whole percent, halves rounded up; 0 when there is nothing to visit."""
    if total <= 0:
        return 0
    return (200 * visited + total) // (2 * total)


@dataclass(frozen=True)
class DashboardFilters:
    company: str = ""
    team: str = ""
    type: str = ""

    @classmethod
    def from_args(cls, args: Any) -> "DashboardFilters":
        return cls(
            company=(args.get("company") or "").strip(),
            team=(args.get("team") or "").strip(),
            type=(args.get("type") or "").strip(),
        )

    @property
    def active(self) -> bool:
        return bool(self.company or self.team or self.type)

    def matches(self, facility: Facility) -> bool:
        if self.company and facility.company != self.company:
            return False
        if self.team and facility.team != self.team:
            return False
        if self.type and facility.type != self.type:
            return False
        return True


@dataclass
class FacilityStatus:
    facility: Facility
    first_visit_date: date | None = None

    @property
    def visited(self) -> bool:
        return self.first_visit_date is not None


@dataclass
class DashboardData:
    first_name: str
    filters: DashboardFilters
    total_facilities: int = 0
    visited_facilities: int = 0
    total_visits: int = 0
    completion_percentage: int = 0
    progress: list[dict[str, Any]] = field(default_factory=list)
    visits_by_type: list[dict[str, Any]] = field(default_factory=list)
    monthly: list[dict[str, Any]] = field(default_factory=list)
    timeline: list[dict[str, Any]] = field(default_factory=list)
    map_points: list[dict[str, Any]] = field(default_factory=list)
    recent_visits: list[Visit] = field(default_factory=list)
    options: dict[str, list[str]] = field(default_factory=dict)


def _distinct(values) -> list[str]:
    return sorted({v for v in values if v})


def filter_options(facilities: list[Facility]) -> dict[str, list[str]]:
    return {
        "companies": _distinct(f.company for f in facilities),
        "teams": _distinct(f.team for f in facilities),
        "types": _distinct(f.type for f in facilities),
    }


def progress_series(first_dates: list[date]) -> list[dict[str, Any]]:
    """Cumulative count of facilities first visited, one point per date."""
    counts = Counter(first_dates)
    out: list[dict[str, Any]] = []
    running = 0
    for d in sorted(counts):
        running += counts[d]
        out.append({"date": d.isoformat(), "cumulative": running})
    return out


def visits_by_type(statuses: list[FacilityStatus]) -> list[dict[str, Any]]:
    counts = Counter(st.facility.type or "Other" for st in statuses if st.visited)
    return [{"type": t, "count": n} for t, n in counts.most_common()]


def monthly_activity(first_dates: list[date], *, months: int = MONTHS_SHOWN) -> list[dict[str, Any]]:
    counts = Counter(d.strftime("%Y-%m") for d in first_dates)
    series = [{"month": m, "count": counts[m]} for m in sorted(counts)]
    return series[-months:]


def load_facility_statuses(s: "Session", profile_id: int) -> list[FacilityStatus]:
    facilities = s.query(Facility).order_by(Facility.facility_name.asc()).all()
    first_dates = dict(
        s.query(FacilityCompletion.facility_id, Visit.visit_date)
        .join(Visit, FacilityCompletion.first_visit_id == Visit.id)
        .filter(FacilityCompletion.profile_id == profile_id)
        .all()
    )
    return [FacilityStatus(facility=f, first_visit_date=first_dates.get(f.id)) for f in facilities]


def build_dashboard(s: "Session", profile, filters: DashboardFilters) -> DashboardData:
    statuses = load_facility_statuses(s, profile.id)
    shown = [st for st in statuses if filters.matches(st.facility)]

    visits = (
        s.query(Visit)
        .filter(Visit.profile_id == profile.id)
        .order_by(Visit.visit_date.desc(), Visit.created_at.desc(), Visit.id.desc())
        .all()
    )
    visits = [v for v in visits if filters.matches(v.facility)]

    first_dates = [st.first_visit_date for st in shown if st.first_visit_date is not None]
    visited = len(first_dates)

    data = DashboardData(first_name=profile.first_name, filters=filters)
    data.total_facilities = len(shown)
    data.visited_facilities = visited
    data.total_visits = len(visits)
    data.completion_percentage = completion_percentage(visited, len(shown))
    data.progress = progress_series(first_dates)
    data.visits_by_type = visits_by_type(shown)
    data.monthly = monthly_activity(first_dates)
    data.timeline = [
        {
            "id": v.id,
            "visit_date": v.visit_date.isoformat(),
            "facility_name": v.facility.facility_name,
            "type": v.facility.type,
            "latitude": v.facility.latitude,
            "longitude": v.facility.longitude,
        }
        for v in reversed(visits)
        if v.facility.has_coordinates
    ]
    data.map_points = [
        {
            "id": st.facility.id,
            "facility_name": st.facility.facility_name,
            "type": st.facility.type,
            "latitude": st.facility.latitude,
            "longitude": st.facility.longitude,
            "visited": st.visited,
            "visit_date": st.first_visit_date.isoformat() if st.first_visit_date else None,
        }
        for st in shown
        if st.facility.has_coordinates
    ]
    data.recent_visits = visits[:RECENT_VISITS]
    data.options = filter_options([st.facility for st in statuses])
    return data
