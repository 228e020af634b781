from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.tracker.models import Base


class Facility(Base):
    __tablename__ = "facilities"
    __table_args__ = (
        Index("idx_facilities_name", "facility_name"),
        Index("idx_facilities_type", "type"),
        Index("idx_facilities_company", "company"),
        Index("idx_facilities_team", "team"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Required
    facility_name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(64), nullable=False, default="")  # SNF, AL, IL, Hospice, or custom

    # Address
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    state: Mapped[str | None] = mapped_column(String(32), nullable=True)
    zip: Mapped[str | None] = mapped_column(String(20), nullable=True)
    county: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Grouping used by dashboard filters
    company: Mapped[str | None] = mapped_column(String(128), nullable=True)
    team: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Filled by geocoding; both null until then
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_profile_id: Mapped[int | None] = mapped_column(ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def location_line(self) -> str:
        parts = [p for p in (self.address, self.city, self.state) if p]
        return ", ".join(parts)
