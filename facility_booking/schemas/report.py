from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal

from .facility_request import FacilityRequestResponse


class FacilityUtilizationResponse(BaseModel):
    facility_id: str
    facility_name: str
    facility_type: str
    active_request_count: int
    approved_request_count: int
    booked_hours: float
    bookable_hours: float
    utilization_percent: float


class UtilizationReportResponse(BaseModel):
    range_start: datetime
    range_end: datetime
    facilities: List[FacilityUtilizationResponse] = Field(default_factory=list)
    total_booked_hours: float
    total_bookable_hours: float
    overall_utilization_percent: float


class RevenueSummary(BaseModel):
    paid: Decimal
    exempted: Decimal


class FacilityRequestCount(BaseModel):
    facility_id: str
    facility_name: Optional[str] = None
    request_count: int


class AdminDashboardResponse(BaseModel):
    total_requests: int
    active_requests: int
    status_counts: Dict[str, int]
    event_categories: Dict[str, int]
    no_shows: int
    facilities_count: int
    revenue: RevenueSummary
    approval_rate_percent: float
    most_requested_facilities: List[FacilityRequestCount] = Field(default_factory=list)


class StaffDashboardResponse(BaseModel):
    queue: Dict[str, int]
    today_events: int
    upcoming_events: List[FacilityRequestResponse] = Field(default_factory=list)
