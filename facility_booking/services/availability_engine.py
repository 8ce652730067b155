"""
Availability Engine

Decides whether a facility may be reserved over a proposed half-open window
[start, end) and reports every reason it cannot:

- active facility requests of the same facility whose windows overlap
- blackout dates of the same facility whose windows overlap

The engine never touches the ORM session directly. It reads through a
BookingDataAccess object passed in by the caller, so the overlap rules can be
exercised against an in-memory store in tests.

Billing (compute_payment_amount) lives here as well because it must be
computed from the exact window the availability check admitted.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Protocol, Sequence, Any

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ..models.facility_request import FacilityRequest, ACTIVE_STATUSES, EventCategory
from ..models.blackout_date import BlackoutDate, blackout_window

logger = logging.getLogger(__name__)

BILLING_UNIT = timedelta(hours=1)


class AvailabilityLookupError(Exception):
    """Bookings or blackout dates could not be read. Retryable."""


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """
    Half-open interval overlap: [a_start, a_end) and [b_start, b_end).

    Back-to-back windows ([09:00, 12:00) and [12:00, 14:00)) do not overlap.
    """
    return a_start < b_end and b_start < a_end


@dataclass
class AvailabilityResult:
    """Verdict plus the full conflict set"""
    available: bool
    conflicting_requests: List[Any] = field(default_factory=list)
    conflicting_blackouts: List[Any] = field(default_factory=list)


class BookingDataAccess(Protocol):
    """
    Read contract the engine needs from the booking store.

    Implementations may narrow results to the window and to ACTIVE_STATUSES
    for efficiency; the engine re-applies both rules to whatever it receives.
    """

    def requests_for(
        self,
        facility_id: str,
        window_start: datetime,
        window_end: datetime,
        exclude_request_id: Optional[str] = None
    ) -> Sequence[Any]:
        ...

    def blackouts_for(
        self,
        facility_id: str,
        window_start: datetime,
        window_end: datetime
    ) -> Sequence[Any]:
        ...


class SqlAlchemyBookingStore:
    """BookingDataAccess over the relational store."""

    def __init__(self, db: Session):
        self.db = db

    def requests_for(
        self,
        facility_id: str,
        window_start: datetime,
        window_end: datetime,
        exclude_request_id: Optional[str] = None
    ) -> List[FacilityRequest]:
        query = self.db.query(FacilityRequest).filter(
            FacilityRequest.facility_id == facility_id,
            FacilityRequest.status.in_(ACTIVE_STATUSES),
            FacilityRequest.schedule_start < window_end,
            FacilityRequest.schedule_end > window_start,
        )
        if exclude_request_id:
            query = query.filter(FacilityRequest.id != exclude_request_id)

        try:
            return query.order_by(FacilityRequest.schedule_start).all()
        except SQLAlchemyError as exc:
            raise AvailabilityLookupError(
                f"Could not read facility requests for facility {facility_id}"
            ) from exc

    def blackouts_for(
        self,
        facility_id: str,
        window_start: datetime,
        window_end: datetime
    ) -> List[BlackoutDate]:
        # Date-level superset; the engine applies the exact datetime predicate
        query = self.db.query(BlackoutDate).filter(
            BlackoutDate.facility_id == facility_id,
            BlackoutDate.end_date >= window_start.date(),
            BlackoutDate.start_date <= window_end.date(),
        )

        try:
            return query.order_by(BlackoutDate.start_date).all()
        except SQLAlchemyError as exc:
            raise AvailabilityLookupError(
                f"Could not read blackout dates for facility {facility_id}"
            ) from exc


class AvailabilityEngine:
    """
    Pure read-then-decide conflict detector.

    Assumes well-formed input (known facility, proposed_start < proposed_end);
    validating that is the caller's job.
    """

    def __init__(self, store: BookingDataAccess):
        self.store = store

    def check_availability(
        self,
        facility_id: str,
        proposed_start: datetime,
        proposed_end: datetime,
        exclude_request_id: Optional[str] = None
    ) -> AvailabilityResult:
        candidates = self.store.requests_for(
            facility_id, proposed_start, proposed_end, exclude_request_id
        )
        conflicting_requests = [
            r for r in candidates
            if r.status in ACTIVE_STATUSES
            and (exclude_request_id is None or r.id != exclude_request_id)
            and overlaps(proposed_start, proposed_end, r.schedule_start, r.schedule_end)
        ]

        conflicting_blackouts = []
        for blackout in self.store.blackouts_for(facility_id, proposed_start, proposed_end):
            window_start, window_end = blackout_window(blackout.start_date, blackout.end_date)
            if overlaps(proposed_start, proposed_end, window_start, window_end):
                conflicting_blackouts.append(blackout)

        available = not conflicting_requests and not conflicting_blackouts
        if not available:
            logger.debug(
                "Facility %s unavailable for [%s, %s): %d request(s), %d blackout(s)",
                facility_id, proposed_start, proposed_end,
                len(conflicting_requests), len(conflicting_blackouts)
            )

        return AvailabilityResult(
            available=available,
            conflicting_requests=conflicting_requests,
            conflicting_blackouts=conflicting_blackouts,
        )


def billable_hours(start: datetime, end: datetime) -> int:
    """Duration rounded up to whole hours: 61 minutes bills as 2."""
    return math.ceil((end - start) / BILLING_UNIT)


def compute_payment_amount(facility, start: datetime, end: datetime, event_category: str) -> Decimal:
    """
    Amount due for reserving `facility` over [start, end).

    Government events are exempt. Everything else is
    ceil(hours) * facility.hourly_rate.
    """
    if event_category == EventCategory.GOVERNMENT:
        return Decimal("0.00")

    rate = Decimal(str(facility.hourly_rate or 0))
    return (rate * billable_hours(start, end)).quantize(Decimal("0.01"))
