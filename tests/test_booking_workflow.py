"""
Tests for the booking workflow

Test Coverage:
1. Submission: numbering, billing, exemption, conflicts, blackouts
2. Normal transitions along the lifecycle table
3. Admin override: justification, history flag, slot re-check
4. Citizen cancellation rules
5. Reschedule, payment, assignment
6. Store-level rejection after a passing pre-check (lost race)
7. Event day: gate pass, on-site event status, inspection
"""

import re

import pytest
from datetime import datetime, date
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import IntegrityError

from facility_booking.models import (
    FacilityRequest,
    StatusHistory,
    Inspection,
    RequestStatus,
    PaymentStatus,
    PaymentType,
    EventStatus,
    InspectionStatus,
)
from facility_booking.schemas.facility_request import FacilityRequestCreate
from facility_booking.services.booking_workflow import (
    BookingWorkflow,
    StatusTransition,
    StatusOverride,
    SlotUnavailableError,
    FacilityNotFoundError,
    RequestNotFoundError,
    InvalidScheduleError,
    InvalidTransitionError,
    CancellationNotAllowedError,
    SYSTEM_ACTOR,
)


def at(hour, day=15):
    return datetime(2030, 6, day, hour, 0)


def payload(facility, start, end, **overrides):
    data = {
        "facility_id": facility.id,
        "applicant_name": "San Roque Parish",
        "contact_person": "Jose Santos",
        "contact_number": "0917 765 4321",
        "activity_type": "Fiesta",
        "estimated_participants": 120,
        "schedule_start": start,
        "schedule_end": end,
    }
    data.update(overrides)
    return FacilityRequestCreate(**data)


def history(db, request_id):
    return db.query(StatusHistory).filter(StatusHistory.request_id == request_id).all()


def overlap_error():
    return IntegrityError(
        "INSERT INTO facility_requests", {},
        Exception('conflicting key value violates exclusion constraint "no_active_facility_request_overlap"')
    )


class TestSubmitRequest:

    def test_creates_pending_request_with_history(self, db, make_facility):
        facility = make_facility(hourly_rate=Decimal("500"))
        request = BookingWorkflow(db).submit_request(payload(facility, at(9), at(12)))

        assert request.status == RequestStatus.PENDING_REVIEW.value
        assert request.payment_status == PaymentStatus.PENDING.value
        assert request.total_amount == Decimal("1500.00")
        assert request.contact_number == "09177654321"
        assert request.request_number == f"FR-{datetime.utcnow().year}-0001"

        entries = history(db, request.id)
        assert len(entries) == 1
        assert entries[0].from_status is None
        assert entries[0].to_status == RequestStatus.PENDING_REVIEW.value
        assert entries[0].changed_by == SYSTEM_ACTOR

    def test_request_numbers_increase(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)
        first = workflow.submit_request(payload(facility, at(9), at(10)))
        second = workflow.submit_request(payload(facility, at(10), at(11)))

        assert first.request_number.endswith("-0001")
        assert second.request_number.endswith("-0002")

    def test_government_event_is_exempt(self, db, make_facility):
        facility = make_facility(hourly_rate=Decimal("500"))
        request = BookingWorkflow(db).submit_request(
            payload(facility, at(9), at(17), event_category="GOVERNMENT")
        )

        assert request.total_amount == Decimal("0")
        assert request.payment_status == PaymentStatus.EXEMPTED.value
        assert request.payment_type == PaymentType.EXEMPTED.value

    def test_conflict_reports_conflicts_and_creates_nothing(self, db, make_facility, make_request):
        facility = make_facility()
        existing = make_request(facility, at(9), at(12))

        with pytest.raises(SlotUnavailableError) as exc_info:
            BookingWorkflow(db).submit_request(payload(facility, at(11), at(13)))

        assert not exc_info.value.late
        assert [r.id for r in exc_info.value.result.conflicting_requests] == [existing.id]
        assert db.query(FacilityRequest).count() == 1

    def test_blackout_blocks_submission(self, db, make_facility, make_blackout):
        facility = make_facility()
        make_blackout(facility, date(2030, 6, 15), date(2030, 6, 15))

        with pytest.raises(SlotUnavailableError) as exc_info:
            BookingWorkflow(db).submit_request(payload(facility, at(9), at(10)))

        assert exc_info.value.result.conflicting_requests == []
        assert len(exc_info.value.result.conflicting_blackouts) == 1

    def test_inactive_facility_is_not_found(self, db, make_facility):
        facility = make_facility(is_active=False)
        with pytest.raises(FacilityNotFoundError):
            BookingWorkflow(db).submit_request(payload(facility, at(9), at(10)))

    def test_malformed_window_rejected(self, db, make_facility):
        facility = make_facility()
        with pytest.raises(InvalidScheduleError):
            BookingWorkflow(db).check_availability(facility.id, at(12), at(12))

    def test_lost_race_reported_as_late_conflict(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)

        with patch.object(db, "commit", side_effect=overlap_error()):
            with pytest.raises(SlotUnavailableError) as exc_info:
                workflow.submit_request(payload(facility, at(9), at(10)))

        assert exc_info.value.late
        assert db.query(FacilityRequest).count() == 0

    def test_request_number_collision_is_retried(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)
        real_commit = db.commit
        calls = {"n": 0}

        def flaky_commit():
            calls["n"] += 1
            if calls["n"] == 1:
                raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: request_number"))
            return real_commit()

        with patch.object(db, "commit", side_effect=flaky_commit):
            request = workflow.submit_request(payload(facility, at(9), at(10)))

        assert calls["n"] == 2
        assert request.status == RequestStatus.PENDING_REVIEW.value


class TestStatusTransitions:

    def test_normal_path_to_approval(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)
        request = workflow.submit_request(payload(facility, at(9), at(10)))

        workflow.apply_status_change(request.id, StatusTransition(RequestStatus.AWAITING_REQUIREMENTS), "clerk")
        workflow.set_payment(request.id, PaymentType.CASH, "clerk")
        request = workflow.record_payment(request.id, PaymentType.CASH, "cashier")

        assert request.status == RequestStatus.APPROVED.value
        assert request.payment_status == PaymentStatus.PAID.value
        assert request.paid_at is not None
        assert request.approved_at is not None
        assert len(history(db, request.id)) == 4

    def test_skipping_payment_is_refused(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)
        request = workflow.submit_request(payload(facility, at(9), at(10)))

        with pytest.raises(InvalidTransitionError):
            workflow.apply_status_change(request.id, StatusTransition(RequestStatus.APPROVED), "clerk")

    def test_unpaid_request_cannot_be_approved(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)
        request = workflow.submit_request(payload(facility, at(9), at(10)))
        workflow.apply_status_change(request.id, StatusTransition(RequestStatus.AWAITING_PAYMENT), "clerk")

        with pytest.raises(InvalidTransitionError):
            workflow.apply_status_change(request.id, StatusTransition(RequestStatus.APPROVED), "clerk")

    def test_exempted_request_can_be_approved_directly(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)
        request = workflow.submit_request(payload(facility, at(9), at(10), event_category="GOVERNMENT"))
        workflow.apply_status_change(request.id, StatusTransition(RequestStatus.AWAITING_PAYMENT), "clerk")

        request = workflow.apply_status_change(request.id, StatusTransition(RequestStatus.APPROVED), "clerk")
        assert request.status == RequestStatus.APPROVED.value

    @pytest.mark.parametrize("terminal", [
        RequestStatus.COMPLETED, RequestStatus.NO_SHOW, RequestStatus.REJECTED, RequestStatus.CANCELLED
    ])
    def test_terminal_status_has_no_normal_exit(self, db, make_facility, make_request, terminal):
        facility = make_facility()
        request = make_request(facility, at(9), at(10), status=terminal)

        with pytest.raises(InvalidTransitionError):
            BookingWorkflow(db).apply_status_change(
                request.id, StatusTransition(RequestStatus.PENDING_REVIEW), "clerk"
            )

    def test_same_status_is_refused(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(10), status=RequestStatus.APPROVED)
        with pytest.raises(InvalidTransitionError):
            BookingWorkflow(db).apply_status_change(
                request.id, StatusOverride(RequestStatus.APPROVED, "again"), "admin"
            )

    def test_unknown_request(self, db):
        with pytest.raises(RequestNotFoundError):
            BookingWorkflow(db).apply_status_change(
                "missing", StatusTransition(RequestStatus.REJECTED), "clerk"
            )

    def test_rejection_frees_the_slot(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(12))
        workflow = BookingWorkflow(db)

        rejected = workflow.apply_status_change(
            request.id, StatusTransition(RequestStatus.REJECTED, "Incomplete documents"), "clerk"
        )
        assert rejected.rejected_at is not None

        replacement = workflow.submit_request(payload(facility, at(9), at(12)))
        assert replacement.status == RequestStatus.PENDING_REVIEW.value

    def test_completion_stamps_completed_at(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(10), status=RequestStatus.APPROVED)
        request = BookingWorkflow(db).apply_status_change(
            request.id, StatusTransition(RequestStatus.NO_SHOW), "clerk"
        )
        assert request.completed_at is not None


class TestOverride:

    def test_override_requires_justification(self):
        with pytest.raises(ValueError):
            StatusOverride(RequestStatus.APPROVED, "   ")

    def test_override_is_recorded(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(10), status=RequestStatus.REJECTED)

        request = BookingWorkflow(db).apply_status_change(
            request.id, StatusOverride(RequestStatus.APPROVED, "Mayor's office request"), "admin"
        )

        assert request.status == RequestStatus.APPROVED.value
        entry = [h for h in history(db, request.id) if h.is_override]
        assert len(entry) == 1
        assert entry[0].remarks == "Admin override: Mayor's office request"
        assert entry[0].from_status == RequestStatus.REJECTED.value
        assert entry[0].changed_by == "admin"

    def test_override_cannot_reactivate_over_a_taken_slot(self, db, make_facility, make_request):
        facility = make_facility()
        old = make_request(facility, at(9), at(12), status=RequestStatus.REJECTED)
        make_request(facility, at(10), at(11), status=RequestStatus.APPROVED)

        with pytest.raises(SlotUnavailableError):
            BookingWorkflow(db).apply_status_change(
                old.id, StatusOverride(RequestStatus.APPROVED, "Reinstate"), "admin"
            )

        db.refresh(old)
        assert old.status == RequestStatus.REJECTED.value
        assert history(db, old.id) == []

    def test_reactivation_on_deactivated_facility_is_refused(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(12), status=RequestStatus.CANCELLED)
        facility.is_active = False
        db.commit()

        with pytest.raises(FacilityNotFoundError):
            BookingWorkflow(db).apply_status_change(
                request.id, StatusOverride(RequestStatus.APPROVED, "Restore"), "admin"
            )

        db.refresh(request)
        assert request.status == RequestStatus.CANCELLED.value
        assert history(db, request.id) == []

    def test_override_between_active_statuses_skips_recheck(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(10), status=RequestStatus.PENDING_REVIEW)

        request = BookingWorkflow(db).apply_status_change(
            request.id, StatusOverride(RequestStatus.APPROVED, "Pre-approved event"), "admin"
        )
        assert request.status == RequestStatus.APPROVED.value


class TestCitizenCancel:

    def test_cancel_pending_request(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)
        request = workflow.submit_request(payload(facility, at(9), at(10)))

        request = workflow.cancel_by_citizen(request.id, "0917-765-4321", "Event moved")

        assert request.status == RequestStatus.CANCELLED.value
        assert request.cancellation_reason == "Event moved"
        assert request.cancelled_at is not None

    def test_wrong_contact_is_forbidden(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)
        request = workflow.submit_request(payload(facility, at(9), at(10)))

        with pytest.raises(CancellationNotAllowedError) as exc_info:
            workflow.cancel_by_citizen(request.id, "09990000000")
        assert exc_info.value.forbidden

    @pytest.mark.parametrize("status", [RequestStatus.AWAITING_REQUIREMENTS, RequestStatus.APPROVED])
    def test_later_statuses_cannot_be_cancelled_by_citizen(self, db, make_facility, make_request, status):
        facility = make_facility()
        request = make_request(facility, at(9), at(10), status=status)

        with pytest.raises(CancellationNotAllowedError) as exc_info:
            BookingWorkflow(db).cancel_by_citizen(request.id, "09171234567")
        assert not exc_info.value.forbidden


class TestRescheduleAndPayment:

    def test_reschedule_recomputes_amount(self, db, make_facility):
        facility = make_facility(hourly_rate=Decimal("500"))
        workflow = BookingWorkflow(db)
        request = workflow.submit_request(payload(facility, at(9), at(10)))

        # Overlaps its own current window, which must not count as a conflict
        request = workflow.reschedule(request.id, at(9), at(12), "clerk", "Longer program")

        assert request.schedule_end == at(12)
        assert request.total_amount == Decimal("1500.00")
        assert request.status == RequestStatus.PENDING_REVIEW.value
        assert any("Rescheduled" in (h.remarks or "") for h in history(db, request.id))

    def test_reschedule_into_taken_slot(self, db, make_facility, make_request):
        facility = make_facility()
        make_request(facility, at(13), at(15))
        workflow = BookingWorkflow(db)
        request = workflow.submit_request(payload(facility, at(9), at(10)))

        with pytest.raises(SlotUnavailableError):
            workflow.reschedule(request.id, at(14), at(16), "clerk")

    def test_paid_request_keeps_its_amount(self, db, make_facility, make_request):
        facility = make_facility(hourly_rate=Decimal("500"))
        request = make_request(
            facility, at(9), at(10),
            status=RequestStatus.APPROVED,
            payment_status=PaymentStatus.PAID.value,
            total_amount=Decimal("500.00"),
        )
        workflow = BookingWorkflow(db)

        with pytest.raises(InvalidTransitionError):
            workflow.reschedule(request.id, at(14), at(16), "clerk")

        moved = workflow.reschedule(request.id, at(14), at(15), "clerk")
        assert moved.schedule_start == at(14)

    def test_inactive_request_cannot_be_rescheduled(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(10), status=RequestStatus.CANCELLED)
        with pytest.raises(InvalidTransitionError):
            BookingWorkflow(db).reschedule(request.id, at(11), at(12), "clerk")

    def test_waived_payment_approves_without_paid_mark(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)
        request = workflow.submit_request(payload(facility, at(9), at(10)))

        request = workflow.set_payment(request.id, PaymentType.WAIVED, "clerk")
        assert request.status == RequestStatus.AWAITING_PAYMENT.value
        assert request.payment_status == PaymentStatus.EXEMPTED.value

        request = workflow.record_payment(request.id, PaymentType.CASH, "cashier")
        assert request.status == RequestStatus.APPROVED.value
        assert request.payment_status == PaymentStatus.EXEMPTED.value
        assert request.paid_at is None

    def test_exempted_request_refuses_a_cash_payment_type(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)
        request = workflow.submit_request(payload(facility, at(9), at(10), event_category="GOVERNMENT"))

        with pytest.raises(InvalidTransitionError):
            workflow.set_payment(request.id, PaymentType.CASH, "clerk")

        db.refresh(request)
        assert request.payment_type == PaymentType.EXEMPTED.value
        assert request.payment_status == PaymentStatus.EXEMPTED.value
        assert request.status == RequestStatus.PENDING_REVIEW.value

        request = workflow.set_payment(request.id, PaymentType.EXEMPTED, "clerk")
        assert request.status == RequestStatus.AWAITING_PAYMENT.value
        assert request.payment_type == PaymentType.EXEMPTED.value

    def test_confirm_payment_requires_awaiting_payment(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)
        request = workflow.submit_request(payload(facility, at(9), at(10)))

        with pytest.raises(InvalidTransitionError):
            workflow.record_payment(request.id, PaymentType.CASH, "cashier")

    def test_assign_keeps_status(self, db, make_facility):
        facility = make_facility()
        workflow = BookingWorkflow(db)
        request = workflow.submit_request(payload(facility, at(9), at(10)))

        request = workflow.assign(request.id, "maria.cruz", "supervisor")

        assert request.handled_by == "maria.cruz"
        assign_entries = [h for h in history(db, request.id) if h.changed_by == "supervisor"]
        assert len(assign_entries) == 1
        assert assign_entries[0].from_status == assign_entries[0].to_status == RequestStatus.PENDING_REVIEW.value


class TestEventDay:

    def test_gate_pass_for_approved_request(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(12), status=RequestStatus.APPROVED)

        request = BookingWorkflow(db).generate_gate_pass(request.id, "guard.lito")

        assert re.fullmatch(r"GP-\d{14}-[0-9A-F]{9}", request.gate_pass)
        assert request.gate_pass_issued_at is not None
        assert request.event_status == EventStatus.SCHEDULED.value
        assert request.status == RequestStatus.APPROVED.value
        entries = history(db, request.id)
        assert [e.remarks for e in entries] == ["Gate pass generated"]
        assert entries[0].from_status == entries[0].to_status == RequestStatus.APPROVED.value

    def test_gate_pass_requires_approval(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(12), status=RequestStatus.PENDING_REVIEW)

        with pytest.raises(InvalidTransitionError):
            BookingWorkflow(db).generate_gate_pass(request.id, "guard.lito")

    def test_event_times_recorded_without_touching_status(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(12), status=RequestStatus.APPROVED)
        workflow = BookingWorkflow(db)

        workflow.record_event_times(
            request.id, EventStatus.IN_USE, "guard.lito", actual_start=datetime(2030, 6, 15, 9, 10)
        )
        request = workflow.record_event_times(
            request.id, EventStatus.COMPLETED, "guard.lito", actual_end=datetime(2030, 6, 15, 11, 50)
        )

        assert request.event_status == EventStatus.COMPLETED.value
        assert request.actual_start_time == datetime(2030, 6, 15, 9, 10)
        assert request.actual_end_time == datetime(2030, 6, 15, 11, 50)
        assert request.status == RequestStatus.APPROVED.value
        assert [e.remarks for e in history(db, request.id)] == [
            "Event status changed to IN_USE",
            "Event status changed to COMPLETED",
        ]

    def test_event_end_before_start_is_invalid(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(12), status=RequestStatus.APPROVED)

        with pytest.raises(InvalidScheduleError):
            BookingWorkflow(db).record_event_times(
                request.id, EventStatus.IN_USE, "guard.lito",
                actual_start=at(11), actual_end=at(10)
            )

    def test_event_of_cancelled_request_cannot_be_tracked(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(12), status=RequestStatus.CANCELLED)

        with pytest.raises(InvalidTransitionError):
            BookingWorkflow(db).record_event_times(request.id, EventStatus.IN_USE, "guard.lito")

    @pytest.mark.parametrize("has_damages,violations,billing,expected", [
        (False, None, Decimal("0"), InspectionStatus.NO_ISSUES),
        (True, None, Decimal("0"), InspectionStatus.WITH_DAMAGES),
        (False, "Exceeded curfew", Decimal("0"), InspectionStatus.WITH_VIOLATIONS),
        (True, "Exceeded curfew", Decimal("1500"), InspectionStatus.PENDING_BILLING),
    ])
    def test_inspection_status_follows_findings(
        self, db, make_facility, make_request, has_damages, violations, billing, expected
    ):
        facility = make_facility()
        request = make_request(facility, at(9), at(12), status=RequestStatus.APPROVED)

        inspection = BookingWorkflow(db).record_inspection(
            request.id, "inspector.ben",
            has_damages=has_damages, violations=violations, billing_amount=billing,
        )

        assert inspection.status == expected.value
        assert inspection.inspected_by == "inspector.ben"
        db.refresh(request)
        assert request.event_status == EventStatus.COMPLETED.value
        assert request.status == RequestStatus.APPROVED.value
        assert history(db, request.id)[-1].remarks == f"Post-event inspection completed: {expected.value}"

    def test_inspection_of_pending_request_is_refused(self, db, make_facility, make_request):
        facility = make_facility()
        request = make_request(facility, at(9), at(12), status=RequestStatus.PENDING_REVIEW)

        with pytest.raises(InvalidTransitionError):
            BookingWorkflow(db).record_inspection(request.id, "inspector.ben")
        assert db.query(Inspection).count() == 0
