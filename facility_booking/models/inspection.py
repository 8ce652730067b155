"""
Inspection Model

Post-event inspection of a facility after an approved request has used it.
Damage and violation findings decide the inspection status; a positive
billing amount means the applicant owes extra charges.
"""

import uuid
import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import Column, String, Text, Boolean, Numeric, ForeignKey, DateTime, Index, CheckConstraint
from sqlalchemy.orm import relationship
from ..database import Base


class InspectionStatus(str, enum.Enum):
    NO_ISSUES = "NO_ISSUES"
    WITH_DAMAGES = "WITH_DAMAGES"
    WITH_VIOLATIONS = "WITH_VIOLATIONS"
    PENDING_BILLING = "PENDING_BILLING"


def derive_inspection_status(
    has_damages: bool,
    violations: Optional[str],
    billing_amount: Optional[Decimal]
) -> InspectionStatus:
    """Outstanding billing wins over damages, damages win over violations."""
    if billing_amount and billing_amount > 0:
        return InspectionStatus.PENDING_BILLING
    if has_damages:
        return InspectionStatus.WITH_DAMAGES
    if violations and violations.strip():
        return InspectionStatus.WITH_VIOLATIONS
    return InspectionStatus.NO_ISSUES


class Inspection(Base):
    __tablename__ = "inspections"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = Column(String(36), ForeignKey("facility_requests.id", ondelete="CASCADE"), nullable=False)

    inspected_by = Column(String(255), nullable=False)
    has_damages = Column(Boolean, default=False, nullable=False)
    damage_description = Column(Text, nullable=True)
    violations = Column(Text, nullable=True)
    billing_amount = Column(Numeric(12, 2), default=0)
    status = Column(String(20), default=InspectionStatus.NO_ISSUES.value, nullable=False)
    remarks = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    request = relationship("FacilityRequest", back_populates="inspections")

    __table_args__ = (
        CheckConstraint("billing_amount >= 0", name="ck_inspection_billing_non_negative"),
        Index("ix_inspection_request", "request_id", "created_at"),
    )

    def __repr__(self):
        return f"<Inspection {self.request_id} {self.status}>"
