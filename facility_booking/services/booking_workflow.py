"""
Booking Workflow Service

Owns every write to facility requests:
- citizen submission (availability pre-check, billing, PENDING_REVIEW)
- staff status transitions along the lifecycle table
- admin overrides (explicit variant, justification required)
- citizen self-cancellation, rescheduling, payment, assignment
- event day: gate passes, on-site event status, post-event inspections

Every status-affecting operation appends one StatusHistory row in the same
transaction as the change. Any operation that makes a request occupy a slot
(submission, reschedule, reactivation of an inactive request) re-runs the
availability check, and the store's no-overlap constraint stays the final
arbiter: a late rejection is reported as SlotUnavailableError(late=True).
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from ..config import Settings, get_settings
from ..models.facility import Facility
from ..models.facility_request import (
    FacilityRequest,
    RequestStatus,
    EventCategory,
    PaymentStatus,
    PaymentType,
    EventStatus,
    ACTIVE_STATUSES,
)
from ..models.status_history import StatusHistory
from ..models.inspection import Inspection, derive_inspection_status
from ..utils.db_helpers import acquire_row_lock, is_overlap_violation
from ..utils.logging_config import get_logger
from ..utils.sanitization import normalize_contact_number
from .availability_engine import (
    AvailabilityEngine,
    AvailabilityResult,
    SqlAlchemyBookingStore,
    compute_payment_amount,
)

logger = get_logger(__name__)

SYSTEM_ACTOR = "SYSTEM"
REQUEST_NUMBER_ATTEMPTS = 3

# Normal (non-override) lifecycle. REJECTED and CANCELLED are reachable from
# every non-terminal status; terminal statuses have no outgoing transitions.
NORMAL_TRANSITIONS = {
    RequestStatus.PENDING_REVIEW.value: frozenset({
        RequestStatus.AWAITING_REQUIREMENTS.value,
        RequestStatus.AWAITING_PAYMENT.value,
        RequestStatus.REJECTED.value,
        RequestStatus.CANCELLED.value,
    }),
    RequestStatus.AWAITING_REQUIREMENTS.value: frozenset({
        RequestStatus.AWAITING_PAYMENT.value,
        RequestStatus.REJECTED.value,
        RequestStatus.CANCELLED.value,
    }),
    RequestStatus.AWAITING_PAYMENT.value: frozenset({
        RequestStatus.APPROVED.value,
        RequestStatus.REJECTED.value,
        RequestStatus.CANCELLED.value,
    }),
    RequestStatus.APPROVED.value: frozenset({
        RequestStatus.COMPLETED.value,
        RequestStatus.NO_SHOW.value,
        RequestStatus.REJECTED.value,
        RequestStatus.CANCELLED.value,
    }),
}

CITIZEN_CANCELLABLE = frozenset({
    RequestStatus.PENDING_REVIEW.value,
    RequestStatus.AWAITING_PAYMENT.value,
})

SETTLED_PAYMENT = frozenset({PaymentStatus.PAID.value, PaymentStatus.EXEMPTED.value})

INSPECTABLE = frozenset({RequestStatus.APPROVED.value, RequestStatus.COMPLETED.value})


# ============ Errors ============

class FacilityNotFoundError(Exception):
    """Unknown or deactivated facility."""


class RequestNotFoundError(Exception):
    """Unknown facility request."""


class InvalidScheduleError(ValueError):
    """Malformed reservation window."""


class InvalidTransitionError(Exception):
    """Status change not allowed from the request's current state."""


class CancellationNotAllowedError(Exception):
    def __init__(self, message: str, forbidden: bool = False):
        super().__init__(message)
        self.forbidden = forbidden


class SlotUnavailableError(Exception):
    """
    The window collides with active requests or blackout dates.

    late=True means the pre-check passed but the store rejected the write
    because a concurrent request took the slot first.
    """

    def __init__(self, result: AvailabilityResult, late: bool = False):
        super().__init__("Facility not available for selected time slot")
        self.result = result
        self.late = late


# ============ Status change variants ============

@dataclass(frozen=True)
class StatusTransition:
    """Normal lifecycle step, validated against NORMAL_TRANSITIONS."""
    to_status: RequestStatus
    remarks: Optional[str] = None


@dataclass(frozen=True)
class StatusOverride:
    """Administrative override: any target status, always justified and logged."""
    to_status: RequestStatus
    justification: str

    def __post_init__(self):
        if not self.justification or not self.justification.strip():
            raise ValueError("An override requires a justification")


StatusChange = Union[StatusTransition, StatusOverride]


class BookingWorkflow:

    def __init__(
        self,
        db: Session,
        engine: Optional[AvailabilityEngine] = None,
        settings: Optional[Settings] = None
    ):
        self.db = db
        self.engine = engine or AvailabilityEngine(SqlAlchemyBookingStore(db))
        self.settings = settings or get_settings()

    # ---------- availability ----------

    def check_availability(
        self,
        facility_id: str,
        start: datetime,
        end: datetime,
        exclude_request_id: Optional[str] = None
    ) -> AvailabilityResult:
        """Boundary wrapper: validates input, then asks the engine."""
        self._validate_window(start, end)
        self._get_active_facility(facility_id)
        return self.engine.check_availability(facility_id, start, end, exclude_request_id)

    # ---------- submission ----------

    def submit_request(self, data) -> FacilityRequest:
        """
        Create a PENDING_REVIEW request if the window is free.

        Raises SlotUnavailableError with the full conflict set otherwise.
        """
        self._validate_window(data.schedule_start, data.schedule_end)

        for attempt in range(1, REQUEST_NUMBER_ATTEMPTS + 1):
            try:
                return self._insert_request(data)
            except IntegrityError as exc:
                self.db.rollback()
                if is_overlap_violation(exc):
                    result = self.engine.check_availability(
                        data.facility_id, data.schedule_start, data.schedule_end
                    )
                    logger.slot_conflict(
                        data.facility_id,
                        len(result.conflicting_requests),
                        len(result.conflicting_blackouts),
                        late=True
                    )
                    raise SlotUnavailableError(result, late=True) from exc
                if attempt == REQUEST_NUMBER_ATTEMPTS:
                    raise
                logger.warning(f"Request number collision, retrying (attempt {attempt})")

    def _insert_request(self, data) -> FacilityRequest:
        facility = self._get_active_facility(data.facility_id, lock=True)
        self._ensure_slot_free(facility.id, data.schedule_start, data.schedule_end)

        category = EventCategory(data.event_category)
        exempt = category == EventCategory.GOVERNMENT
        amount = compute_payment_amount(facility, data.schedule_start, data.schedule_end, category)

        request = FacilityRequest(
            request_number=self._next_request_number(),
            facility_id=facility.id,
            applicant_name=data.applicant_name,
            organization_name=data.organization_name,
            contact_person=data.contact_person,
            contact_number=data.contact_number,
            email=data.email,
            activity_type=data.activity_type,
            activity_purpose=data.activity_purpose,
            estimated_participants=data.estimated_participants,
            event_category=category.value,
            schedule_start=data.schedule_start,
            schedule_end=data.schedule_end,
            status=RequestStatus.PENDING_REVIEW.value,
            payment_status=(PaymentStatus.EXEMPTED if exempt else PaymentStatus.PENDING).value,
            payment_type=PaymentType.EXEMPTED.value if exempt else None,
            total_amount=amount,
        )
        self.db.add(request)
        self.db.flush()

        self._append_history(
            request, None, RequestStatus.PENDING_REVIEW.value,
            SYSTEM_ACTOR, "Request submitted by citizen"
        )
        self.db.commit()
        self.db.refresh(request)

        logger.request_submitted(request.id, request.request_number, facility.id, float(amount))
        return request

    def _next_request_number(self) -> str:
        """FR-<year>-<sequence>, sequence zero-padded to 4 digits."""
        prefix = f"{self.settings.request_number_prefix}-{datetime.utcnow().year}-"
        last = self.db.query(FacilityRequest.request_number).filter(
            FacilityRequest.request_number.like(f"{prefix}%")
        ).order_by(
            func.length(FacilityRequest.request_number).desc(),
            FacilityRequest.request_number.desc()
        ).first()

        sequence = int(last[0].rsplit("-", 1)[1]) + 1 if last else 1
        return f"{prefix}{sequence:04d}"

    # ---------- status changes ----------

    def apply_status_change(self, request_id: str, change: StatusChange, actor: str) -> FacilityRequest:
        """
        Apply a StatusTransition or a StatusOverride.

        Both variants write a StatusHistory row. Neither may move a request
        back into an active status over a window someone else now holds.
        """
        request = self._get_request(request_id, lock=True)
        current = request.status
        target = RequestStatus(change.to_status).value

        if target == current:
            raise InvalidTransitionError(f"Request is already {current}")

        if isinstance(change, StatusOverride):
            remarks = f"Admin override: {change.justification}"
            is_override = True
        elif isinstance(change, StatusTransition):
            if target not in NORMAL_TRANSITIONS.get(current, frozenset()):
                raise InvalidTransitionError(f"Cannot move request from {current} to {target}")
            if target == RequestStatus.APPROVED.value and request.payment_status not in SETTLED_PAYMENT:
                raise InvalidTransitionError("Payment must be settled or exempted before approval")
            remarks = change.remarks
            is_override = False
            if change.remarks:
                request.remarks = change.remarks
        else:
            raise TypeError(f"Unsupported status change: {type(change).__name__}")

        if current not in ACTIVE_STATUSES and target in ACTIVE_STATUSES:
            self._get_active_facility(request.facility_id, lock=True)
            self._ensure_slot_free(
                request.facility_id, request.schedule_start, request.schedule_end,
                exclude_request_id=request.id
            )

        self._set_status(request, target, actor, remarks, is_override=is_override)
        return self._commit(request)

    def cancel_by_citizen(self, request_id: str, contact_number: str, reason: Optional[str] = None) -> FacilityRequest:
        """Applicant cancellation, allowed only early in the lifecycle."""
        request = self._get_request(request_id, lock=True)

        if request.contact_number != normalize_contact_number(contact_number):
            raise CancellationNotAllowedError("Unauthorized to cancel this request", forbidden=True)
        if request.status not in CITIZEN_CANCELLABLE:
            raise CancellationNotAllowedError(f"Cannot cancel request with current status {request.status}")

        reason = reason or "Cancelled by applicant"
        request.cancellation_reason = reason
        self._set_status(request, RequestStatus.CANCELLED.value, request.contact_number, reason)
        return self._commit(request)

    # ---------- schedule & payment ----------

    def reschedule(
        self,
        request_id: str,
        new_start: datetime,
        new_end: datetime,
        actor: str,
        remarks: Optional[str] = None
    ) -> FacilityRequest:
        """
        Move an active request to a new window, checked against everything
        except the request's own current row. The amount is recomputed from
        the new window; a paid request may only move to an equally billed one.
        """
        self._validate_window(new_start, new_end)
        request = self._get_request(request_id, lock=True)
        if request.status not in ACTIVE_STATUSES:
            raise InvalidTransitionError(f"Cannot reschedule a {request.status} request")

        facility = self._get_active_facility(request.facility_id, lock=True)
        self._ensure_slot_free(facility.id, new_start, new_end, exclude_request_id=request.id)

        amount = compute_payment_amount(facility, new_start, new_end, request.event_category)
        if request.payment_status == PaymentStatus.PAID.value and amount != request.total_amount:
            raise InvalidTransitionError("Paid request can only move to a window with the same amount")

        note = (
            f"Rescheduled from {request.schedule_start.isoformat()}/{request.schedule_end.isoformat()} "
            f"to {new_start.isoformat()}/{new_end.isoformat()}"
        )
        if remarks:
            note = f"{note}: {remarks}"

        request.schedule_start = new_start
        request.schedule_end = new_end
        request.total_amount = amount
        self._append_history(request, request.status, request.status, actor, note)
        return self._commit(request)

    def set_payment(self, request_id: str, payment_type: PaymentType, actor: str) -> FacilityRequest:
        """Fix the payment type and move the request to AWAITING_PAYMENT."""
        request = self._get_request(request_id, lock=True)
        target = RequestStatus.AWAITING_PAYMENT.value
        if target not in NORMAL_TRANSITIONS.get(request.status, frozenset()):
            raise InvalidTransitionError(f"Cannot set payment on a {request.status} request")

        payment_type = PaymentType(payment_type)
        waived = payment_type in (PaymentType.EXEMPTED, PaymentType.WAIVED)
        if request.payment_status == PaymentStatus.EXEMPTED.value and not waived:
            raise InvalidTransitionError(f"Exempted request cannot take a {payment_type.value} payment")

        request.payment_type = payment_type.value
        request.payment_status = (PaymentStatus.EXEMPTED if waived else PaymentStatus.PENDING).value

        self._set_status(request, target, actor, f"Payment type set to {payment_type.value}")
        return self._commit(request)

    def record_payment(self, request_id: str, payment_type: PaymentType, actor: str) -> FacilityRequest:
        """Settle an AWAITING_PAYMENT request and approve it."""
        request = self._get_request(request_id, lock=True)
        if request.status != RequestStatus.AWAITING_PAYMENT.value:
            raise InvalidTransitionError(f"Cannot confirm payment on a {request.status} request")

        if request.payment_status == PaymentStatus.EXEMPTED.value:
            remarks = "Payment exempted - request approved"
        else:
            request.payment_status = PaymentStatus.PAID.value
            request.payment_type = PaymentType(payment_type).value
            request.paid_at = datetime.utcnow()
            remarks = "Payment verified - request approved"

        self._set_status(request, RequestStatus.APPROVED.value, actor, remarks)
        return self._commit(request)

    def assign(self, request_id: str, handler: str, actor: str) -> FacilityRequest:
        request = self._get_request(request_id, lock=True)
        request.handled_by = handler
        self._append_history(
            request, request.status, request.status, actor, f"Request assigned to {handler}"
        )
        return self._commit(request)

    # ---------- event day ----------

    def generate_gate_pass(self, request_id: str, actor: str) -> FacilityRequest:
        """Issue (or reissue) the access code shown at the facility gate."""
        request = self._get_request(request_id, lock=True)
        if request.status != RequestStatus.APPROVED.value:
            raise InvalidTransitionError(f"Gate pass requires an APPROVED request, not {request.status}")

        now = datetime.utcnow()
        request.gate_pass = f"GP-{now:%Y%m%d%H%M%S}-{uuid.uuid4().hex[:9].upper()}"
        request.gate_pass_issued_at = now
        if not request.event_status:
            request.event_status = EventStatus.SCHEDULED.value

        self._append_history(request, request.status, request.status, actor, "Gate pass generated")
        logger.info(f"Gate pass issued for {request.request_number}")
        return self._commit(request)

    def record_event_times(
        self,
        request_id: str,
        event_status: EventStatus,
        actor: str,
        actual_start: Optional[datetime] = None,
        actual_end: Optional[datetime] = None
    ) -> FacilityRequest:
        """
        Track what happened on site. The lifecycle status is left alone;
        COMPLETED and NO_SHOW as request statuses stay staff decisions.
        """
        request = self._get_request(request_id, lock=True)
        if request.status not in INSPECTABLE:
            raise InvalidTransitionError(f"Cannot track event of a {request.status} request")

        event_status = EventStatus(event_status)
        now = datetime.utcnow()
        if event_status == EventStatus.IN_USE and actual_start is None and request.actual_start_time is None:
            actual_start = now
        if event_status == EventStatus.COMPLETED and actual_end is None and request.actual_end_time is None:
            actual_end = now

        start = actual_start or request.actual_start_time
        end = actual_end or request.actual_end_time
        if start is not None and end is not None and end <= start:
            raise InvalidScheduleError("Actual end time must be after actual start time")

        request.event_status = event_status.value
        request.actual_start_time = start
        request.actual_end_time = end

        self._append_history(
            request, request.status, request.status, actor, f"Event status changed to {event_status.value}"
        )
        return self._commit(request)

    def record_inspection(
        self,
        request_id: str,
        actor: str,
        has_damages: bool = False,
        damage_description: Optional[str] = None,
        violations: Optional[str] = None,
        billing_amount: Optional[Decimal] = None,
        remarks: Optional[str] = None
    ) -> Inspection:
        """Post-event inspection; closes the event on site."""
        request = self._get_request(request_id, lock=True)
        if request.status not in INSPECTABLE:
            raise InvalidTransitionError(f"Cannot inspect a {request.status} request")

        billing_amount = Decimal(billing_amount or 0)
        if billing_amount < 0:
            raise ValueError("Billing amount cannot be negative")

        inspection_status = derive_inspection_status(has_damages, violations, billing_amount)
        inspection = Inspection(
            request_id=request.id,
            inspected_by=actor,
            has_damages=has_damages,
            damage_description=damage_description,
            violations=violations,
            billing_amount=billing_amount,
            status=inspection_status.value,
            remarks=remarks,
        )
        self.db.add(inspection)

        request.event_status = EventStatus.COMPLETED.value

        self._append_history(
            request, request.status, request.status, actor,
            f"Post-event inspection completed: {inspection_status.value}"
        )
        self._commit(request)
        self.db.refresh(inspection)

        logger.info(f"Inspection recorded for {request.request_number}: {inspection_status.value}")
        return inspection

    # ---------- internals ----------

    def _validate_window(self, start: datetime, end: datetime):
        if start is None or end is None:
            raise InvalidScheduleError("Schedule start and end are required")
        if start >= end:
            raise InvalidScheduleError("Schedule end must be after schedule start")

    def _get_active_facility(self, facility_id: str, lock: bool = False) -> Facility:
        if lock:
            facility = acquire_row_lock(self.db, Facility, Facility.id == facility_id)
        else:
            facility = self.db.query(Facility).filter(Facility.id == facility_id).first()
        if not facility or not facility.is_active:
            raise FacilityNotFoundError(f"Facility {facility_id} not found or inactive")
        return facility

    def _get_request(self, request_id: str, lock: bool = False) -> FacilityRequest:
        if lock:
            request = acquire_row_lock(self.db, FacilityRequest, FacilityRequest.id == request_id)
        else:
            request = self.db.query(FacilityRequest).filter(FacilityRequest.id == request_id).first()
        if not request:
            raise RequestNotFoundError(f"Request {request_id} not found")
        return request

    def _ensure_slot_free(
        self,
        facility_id: str,
        start: datetime,
        end: datetime,
        exclude_request_id: Optional[str] = None
    ):
        result = self.engine.check_availability(facility_id, start, end, exclude_request_id)
        if not result.available:
            logger.slot_conflict(
                facility_id, len(result.conflicting_requests), len(result.conflicting_blackouts)
            )
            raise SlotUnavailableError(result)

    def _set_status(
        self,
        request: FacilityRequest,
        to_status: str,
        actor: str,
        remarks: Optional[str] = None,
        is_override: bool = False
    ):
        from_status = request.status
        now = datetime.utcnow()

        request.status = to_status
        if to_status == RequestStatus.APPROVED.value:
            request.approved_at = now
        elif to_status == RequestStatus.REJECTED.value:
            request.rejected_at = now
        elif to_status == RequestStatus.CANCELLED.value:
            request.cancelled_at = now
            if not request.cancellation_reason:
                request.cancellation_reason = remarks
        elif to_status in (RequestStatus.COMPLETED.value, RequestStatus.NO_SHOW.value):
            request.completed_at = now

        self._append_history(request, from_status, to_status, actor, remarks, is_override)
        logger.request_status_changed(request.id, from_status, to_status, actor, is_override)

    def _append_history(
        self,
        request: FacilityRequest,
        from_status: Optional[str],
        to_status: str,
        actor: str,
        remarks: Optional[str] = None,
        is_override: bool = False
    ):
        self.db.add(StatusHistory(
            request_id=request.id,
            from_status=from_status,
            to_status=to_status,
            changed_by=actor,
            remarks=remarks,
            is_override=is_override,
        ))

    def _commit(self, request: FacilityRequest) -> FacilityRequest:
        facility_id = request.facility_id
        window = (request.schedule_start, request.schedule_end)
        request_id = request.id
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if not is_overlap_violation(exc):
                raise
            result = self.engine.check_availability(facility_id, window[0], window[1], request_id)
            logger.slot_conflict(
                facility_id,
                len(result.conflicting_requests),
                len(result.conflicting_blackouts),
                late=True
            )
            raise SlotUnavailableError(result, late=True) from exc

        self.db.refresh(request)
        return request
