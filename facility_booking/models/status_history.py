"""
Status History Model

Append-only audit trail of facility request status transitions.
Rows are written once per transition and never updated or deleted.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from ..database import Base


class StatusHistory(Base):
    __tablename__ = "status_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = Column(String(36), ForeignKey("facility_requests.id", ondelete="CASCADE"), nullable=False)

    from_status = Column(String(30), nullable=True)  # None for the submission entry
    to_status = Column(String(30), nullable=False)
    changed_by = Column(String(255), nullable=False)
    remarks = Column(Text, nullable=True)
    is_override = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    request = relationship("FacilityRequest", back_populates="status_history")

    __table_args__ = (
        Index("ix_status_history_request", "request_id", "created_at"),
    )

    def __repr__(self):
        return f"<StatusHistory {self.request_id}: {self.from_status} -> {self.to_status}>"
