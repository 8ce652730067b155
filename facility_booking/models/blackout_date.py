import uuid
import enum
from datetime import datetime, date, time, timedelta
from sqlalchemy import Column, String, Date, Text, ForeignKey, DateTime, Index, CheckConstraint
from sqlalchemy.orm import relationship
from ..database import Base


class BlackoutCategory(str, enum.Enum):
    MAINTENANCE = "MAINTENANCE"
    RESERVED = "RESERVED"
    OTHER = "OTHER"


def blackout_window(start_date: date, end_date: date) -> tuple:
    """
    Half-open datetime window covered by an inclusive [start_date, end_date] blackout.

    2025-03-01..2025-03-01 blocks [2025-03-01 00:00, 2025-03-02 00:00).
    """
    return (
        datetime.combine(start_date, time.min),
        datetime.combine(end_date + timedelta(days=1), time.min),
    )


class BlackoutDate(Base):
    """Administrator-defined window during which a facility cannot be booked"""
    __tablename__ = "blackout_dates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    facility_id = Column(String(36), ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=True)
    category = Column(String(20), default=BlackoutCategory.MAINTENANCE.value)
    created_by = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    facility = relationship("Facility", back_populates="blackout_dates")

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_blackout_date_order"),
        Index("ix_blackout_facility_dates", "facility_id", "start_date", "end_date"),
    )

    @property
    def facility_name(self):
        return self.facility.name if self.facility else None

    @property
    def window_start(self) -> datetime:
        return blackout_window(self.start_date, self.end_date)[0]

    @property
    def window_end(self) -> datetime:
        return blackout_window(self.start_date, self.end_date)[1]

    def __repr__(self):
        return f"<BlackoutDate {self.facility_id} {self.start_date}..{self.end_date}>"
