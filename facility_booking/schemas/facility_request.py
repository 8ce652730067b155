from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime, date, timezone
from decimal import Decimal

from ..models.facility_request import RequestStatus, EventCategory, PaymentType, EventStatus
from ..utils.sanitization import sanitize_text, normalize_contact_number


def to_naive_utc(value: datetime) -> datetime:
    """Schedules are stored as naive UTC; convert offset-aware input."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ScheduleWindow(BaseModel):
    schedule_start: datetime
    schedule_end: datetime

    @field_validator('schedule_start', 'schedule_end')
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @model_validator(mode='after')
    def validate_window(self):
        """Zero and negative length windows are rejected here, not by the engine"""
        if self.schedule_end <= self.schedule_start:
            raise ValueError('schedule_end must be after schedule_start')
        return self


class AvailabilityCheck(ScheduleWindow):
    facility_id: str = Field(..., min_length=1, max_length=36)
    exclude_request_id: Optional[str] = None
    event_category: EventCategory = EventCategory.PRIVATE


class FacilityRequestCreate(ScheduleWindow):
    facility_id: str = Field(..., min_length=1, max_length=36)
    applicant_name: str = Field(..., min_length=1, max_length=200)
    organization_name: Optional[str] = Field(None, max_length=200)
    contact_person: str = Field(..., min_length=1, max_length=200)
    contact_number: str = Field(..., min_length=7, max_length=30)
    email: Optional[str] = Field(None, max_length=255)
    activity_type: str = Field(..., min_length=1, max_length=100)
    activity_purpose: Optional[str] = Field(None, max_length=2000)
    estimated_participants: int = Field(..., gt=0)
    event_category: EventCategory = EventCategory.PRIVATE

    @field_validator(
        'applicant_name', 'organization_name', 'contact_person',
        'activity_type', 'activity_purpose', mode='before'
    )
    @classmethod
    def sanitize_text_fields(cls, v):
        return sanitize_text(v)

    @field_validator('contact_number', mode='before')
    @classmethod
    def normalize_contact(cls, v):
        return normalize_contact_number(v)


class StatusHistoryResponse(BaseModel):
    id: str
    from_status: Optional[str] = None
    to_status: str
    changed_by: str
    remarks: Optional[str] = None
    is_override: bool = False
    created_at: datetime

    class Config:
        from_attributes = True


class FacilityRequestResponse(BaseModel):
    id: str
    request_number: str
    facility_id: str
    applicant_name: str
    organization_name: Optional[str] = None
    contact_person: str
    contact_number: str
    email: Optional[str] = None
    activity_type: str
    activity_purpose: Optional[str] = None
    estimated_participants: int
    event_category: str
    schedule_start: datetime
    schedule_end: datetime
    status: str
    payment_status: str
    payment_type: Optional[str] = None
    total_amount: Decimal
    handled_by: Optional[str] = None
    remarks: Optional[str] = None
    cancellation_reason: Optional[str] = None
    gate_pass: Optional[str] = None
    gate_pass_issued_at: Optional[datetime] = None
    event_status: Optional[str] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InspectionResponse(BaseModel):
    id: str
    request_id: str
    inspected_by: str
    has_damages: bool
    damage_description: Optional[str] = None
    violations: Optional[str] = None
    billing_amount: Decimal
    status: str
    remarks: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class FacilityRequestDetail(FacilityRequestResponse):
    status_history: List[StatusHistoryResponse] = Field(default_factory=list)
    inspections: List[InspectionResponse] = Field(default_factory=list)


class ConflictingRequest(BaseModel):
    """Public view of a conflicting reservation; applicant details are withheld"""
    id: str
    request_number: str
    schedule_start: datetime
    schedule_end: datetime
    status: str

    class Config:
        from_attributes = True


class ConflictingBlackout(BaseModel):
    id: str
    start_date: date
    end_date: date
    reason: Optional[str] = None
    category: str

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    available: bool
    conflicts: List[ConflictingRequest] = Field(default_factory=list)
    blackouts: List[ConflictingBlackout] = Field(default_factory=list)
    estimated_amount: Optional[Decimal] = None


class StatusChangeRequest(BaseModel):
    status: RequestStatus
    remarks: Optional[str] = Field(None, max_length=2000)

    @field_validator('remarks', mode='before')
    @classmethod
    def sanitize_remarks(cls, v):
        return sanitize_text(v)


class OverrideStatusRequest(BaseModel):
    status: RequestStatus
    justification: str = Field(..., min_length=1, max_length=2000)

    @field_validator('justification', mode='before')
    @classmethod
    def sanitize_justification(cls, v):
        return sanitize_text(v)


class RescheduleRequest(ScheduleWindow):
    remarks: Optional[str] = Field(None, max_length=2000)

    @field_validator('remarks', mode='before')
    @classmethod
    def sanitize_remarks(cls, v):
        return sanitize_text(v)


class SetPaymentRequest(BaseModel):
    payment_type: PaymentType


class ConfirmPaymentRequest(BaseModel):
    payment_type: PaymentType = PaymentType.CASH


class AssignRequest(BaseModel):
    handler: str = Field(..., min_length=1, max_length=255)


class CitizenCancelRequest(BaseModel):
    contact_number: str = Field(..., min_length=7, max_length=30)
    reason: Optional[str] = Field(None, max_length=1000)

    @field_validator('contact_number', mode='before')
    @classmethod
    def normalize_contact(cls, v):
        return normalize_contact_number(v)

    @field_validator('reason', mode='before')
    @classmethod
    def sanitize_reason(cls, v):
        return sanitize_text(v)


class EventStatusUpdate(BaseModel):
    event_status: EventStatus
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None

    @field_validator('actual_start_time', 'actual_end_time')
    @classmethod
    def normalize_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v) if v is not None else v


class InspectionCreate(BaseModel):
    has_damages: bool = False
    damage_description: Optional[str] = Field(None, max_length=2000)
    violations: Optional[str] = Field(None, max_length=2000)
    billing_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    remarks: Optional[str] = Field(None, max_length=2000)

    @field_validator('damage_description', 'violations', 'remarks', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return sanitize_text(v)
