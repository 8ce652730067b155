import uuid
import enum
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, Numeric, Text, ForeignKey, DateTime, Index,
    CheckConstraint, DDL, event,
)
from sqlalchemy.orm import relationship
from ..database import Base


class RequestStatus(str, enum.Enum):
    PENDING_REVIEW = "PENDING_REVIEW"
    AWAITING_REQUIREMENTS = "AWAITING_REQUIREMENTS"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    APPROVED = "APPROVED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# Statuses that still occupy their time slot. The availability engine, the
# booking store and the utilization reporter all read this one set.
ACTIVE_STATUSES = frozenset({
    RequestStatus.PENDING_REVIEW.value,
    RequestStatus.AWAITING_REQUIREMENTS.value,
    RequestStatus.AWAITING_PAYMENT.value,
    RequestStatus.APPROVED.value,
})

TERMINAL_STATUSES = frozenset({
    RequestStatus.COMPLETED.value,
    RequestStatus.NO_SHOW.value,
    RequestStatus.REJECTED.value,
    RequestStatus.CANCELLED.value,
})


class EventCategory(str, enum.Enum):
    GOVERNMENT = "GOVERNMENT"
    PRIVATE = "PRIVATE"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    EXEMPTED = "EXEMPTED"


class PaymentType(str, enum.Enum):
    CASH = "CASH"
    ONLINE = "ONLINE"
    EXEMPTED = "EXEMPTED"
    WAIVED = "WAIVED"


# On-site progress of an approved event, tracked apart from the request lifecycle
class EventStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    IN_USE = "IN_USE"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


class FacilityRequest(Base):
    """Citizen reservation request for a facility over [schedule_start, schedule_end)"""
    __tablename__ = "facility_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_number = Column(String(30), unique=True, nullable=False)
    facility_id = Column(String(36), ForeignKey("facilities.id", ondelete="RESTRICT"), nullable=False)

    # Applicant
    applicant_name = Column(String(200), nullable=False)
    organization_name = Column(String(200), nullable=True)
    contact_person = Column(String(200), nullable=False)
    contact_number = Column(String(30), nullable=False)
    email = Column(String(255), nullable=True)

    # Activity
    activity_type = Column(String(100), nullable=False)
    activity_purpose = Column(Text, nullable=True)
    estimated_participants = Column(Integer, nullable=False, default=1)
    event_category = Column(String(20), default=EventCategory.PRIVATE.value)

    # Reserved window, naive UTC, half-open
    schedule_start = Column(DateTime, nullable=False)
    schedule_end = Column(DateTime, nullable=False)

    status = Column(String(30), default=RequestStatus.PENDING_REVIEW.value, nullable=False)

    # Payment
    payment_status = Column(String(20), default=PaymentStatus.PENDING.value)
    payment_type = Column(String(20), nullable=True)
    total_amount = Column(Numeric(12, 2), default=0)

    handled_by = Column(String(255), nullable=True)
    remarks = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Event day
    gate_pass = Column(String(40), unique=True, nullable=True)
    gate_pass_issued_at = Column(DateTime, nullable=True)
    event_status = Column(String(20), nullable=True)
    actual_start_time = Column(DateTime, nullable=True)
    actual_end_time = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    facility = relationship("Facility", back_populates="requests")
    status_history = relationship(
        "StatusHistory",
        back_populates="request",
        order_by="StatusHistory.created_at",
    )
    inspections = relationship(
        "Inspection",
        back_populates="request",
        order_by="Inspection.created_at",
    )

    __table_args__ = (
        CheckConstraint("schedule_start < schedule_end", name="ck_facility_request_window"),
        Index("ix_facility_request_facility_window", "facility_id", "schedule_start", "schedule_end"),
        Index("ix_facility_request_status", "status"),
        Index("ix_facility_request_contact", "contact_number"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self):
        return f"<FacilityRequest {self.request_number} {self.status}>"


_active_status_list = ", ".join(f"'{s}'" for s in sorted(ACTIVE_STATUSES))

# Final arbiter against check-then-insert races: PostgreSQL refuses two active
# requests with overlapping half-open windows on the same facility.
event.listen(
    FacilityRequest.__table__,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    FacilityRequest.__table__,
    "after_create",
    DDL(
        "ALTER TABLE facility_requests ADD CONSTRAINT no_active_facility_request_overlap "
        "EXCLUDE USING gist (facility_id WITH =, tsrange(schedule_start, schedule_end, '[)') WITH &&) "
        f"WHERE (status IN ({_active_status_list}))"
    ).execute_if(dialect="postgresql"),
)
