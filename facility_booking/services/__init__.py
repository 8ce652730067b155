# Services package
from .availability_engine import (
    AvailabilityEngine,
    AvailabilityResult,
    AvailabilityLookupError,
    BookingDataAccess,
    SqlAlchemyBookingStore,
    overlaps,
    billable_hours,
    compute_payment_amount,
)
from .booking_workflow import (
    BookingWorkflow,
    StatusTransition,
    StatusOverride,
    StatusChange,
    SlotUnavailableError,
    FacilityNotFoundError,
    RequestNotFoundError,
    InvalidScheduleError,
    InvalidTransitionError,
    CancellationNotAllowedError,
)
from .utilization_reporter import UtilizationReporter, UtilizationReport, FacilityUtilization

__all__ = [
    "AvailabilityEngine", "AvailabilityResult", "AvailabilityLookupError",
    "BookingDataAccess", "SqlAlchemyBookingStore",
    "overlaps", "billable_hours", "compute_payment_amount",
    "BookingWorkflow", "StatusTransition", "StatusOverride", "StatusChange",
    "SlotUnavailableError", "FacilityNotFoundError", "RequestNotFoundError",
    "InvalidScheduleError", "InvalidTransitionError", "CancellationNotAllowedError",
    "UtilizationReporter", "UtilizationReport", "FacilityUtilization",
]
