from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.tracker.models import Base, Profile

if TYPE_CHECKING:
    from app.tracker.modules.facilities.models import Facility


class Visit(Base):
    __tablename__ = "visits"
    __table_args__ = (
        Index("idx_visits_profile_date", "profile_id", "visit_date"),
        Index("idx_visits_facility", "facility_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    profile_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False)

    visit_date: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Storage key of the photo, e.g. "visit-photos/3/1767225600000.jpg"
    photo_key: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    facility: Mapped["Facility"] = relationship("Facility", lazy="joined")
    profile: Mapped[Profile] = relationship(Profile, lazy="joined")


class FacilityCompletion(Base):
    """
    Denormalized marker: the first visit a profile made to a facility.
    At most one per (profile, facility).
    """

    __tablename__ = "facility_completions"
    __table_args__ = (
        UniqueConstraint("profile_id", "facility_id", name="uq_completion_profile_facility"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    profile_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False)
    first_visit_id: Mapped[int] = mapped_column(ForeignKey("visits.id", ondelete="CASCADE"), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    first_visit: Mapped[Visit] = relationship(Visit, lazy="joined")
