import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, JSON, CheckConstraint
from sqlalchemy.orm import relationship
from ..database import Base


class Facility(Base):
    """Bookable facility (hall, court, gym, conference room...)"""
    __tablename__ = "facilities"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), nullable=False)
    facility_type = Column(String(50), nullable=False)
    capacity = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    amenities = Column(JSON, default=list)
    hourly_rate = Column(Numeric(10, 2), default=0)
    is_active = Column(Boolean, default=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    requests = relationship("FacilityRequest", back_populates="facility")
    blackout_dates = relationship(
        "BlackoutDate",
        back_populates="facility",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_facility_capacity_positive"),
    )

    def __repr__(self):
        return f"<Facility {self.name}>"
