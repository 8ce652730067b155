# Models package
from .facility import Facility
from .blackout_date import BlackoutDate, BlackoutCategory, blackout_window
from .facility_request import (
    FacilityRequest,
    RequestStatus,
    EventCategory,
    PaymentStatus,
    PaymentType,
    EventStatus,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
)
from .status_history import StatusHistory
from .inspection import Inspection, InspectionStatus, derive_inspection_status

__all__ = [
    "Facility",
    "BlackoutDate", "BlackoutCategory", "blackout_window",
    "FacilityRequest", "RequestStatus", "EventCategory", "PaymentStatus", "PaymentType", "EventStatus",
    "ACTIVE_STATUSES", "TERMINAL_STATUSES",
    "StatusHistory",
    "Inspection", "InspectionStatus", "derive_inspection_status",
]
