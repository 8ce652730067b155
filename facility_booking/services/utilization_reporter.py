"""
Utilization Reporter

Read-only rollups over facility requests:
- per-facility utilization for a window
- admin overview (status counts, revenue, event categories)
- staff dashboard summary
- export rows for CSV/JSON reports

Utilization is time based. For a window [range_start, range_end):

    bookable_hours = window hours - blackout hours inside the window
    booked_hours   = hours of active requests inside the window
    utilization    = booked_hours / bookable_hours * 100

Both figures are clipped to the same window and use ACTIVE_STATUSES and the
same overlap predicate as the availability engine, so a facility the engine
reports as fully booked shows 100%.
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..models.facility import Facility
from ..models.blackout_date import BlackoutDate, blackout_window
from ..models.facility_request import (
    FacilityRequest,
    RequestStatus,
    EventCategory,
    PaymentStatus,
    ACTIVE_STATUSES,
)
from .availability_engine import overlaps

logger = logging.getLogger(__name__)

HOUR = timedelta(hours=1)


@dataclass
class FacilityUtilization:
    facility_id: str
    facility_name: str
    facility_type: str
    active_request_count: int
    approved_request_count: int
    booked_hours: float
    bookable_hours: float
    utilization_percent: float


@dataclass
class UtilizationReport:
    range_start: datetime
    range_end: datetime
    facilities: List[FacilityUtilization] = field(default_factory=list)

    @property
    def total_booked_hours(self) -> float:
        return round(sum(f.booked_hours for f in self.facilities), 2)

    @property
    def total_bookable_hours(self) -> float:
        return round(sum(f.bookable_hours for f in self.facilities), 2)

    @property
    def overall_utilization_percent(self) -> float:
        return _percent(self.total_booked_hours, self.total_bookable_hours)

    def to_dict(self) -> dict:
        return {
            "range_start": self.range_start,
            "range_end": self.range_end,
            "facilities": [asdict(f) for f in self.facilities],
            "total_booked_hours": self.total_booked_hours,
            "total_bookable_hours": self.total_bookable_hours,
            "overall_utilization_percent": self.overall_utilization_percent,
        }


def _percent(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 2)


def clipped_duration(start: datetime, end: datetime, range_start: datetime, range_end: datetime) -> timedelta:
    """Length of [start, end) that falls inside [range_start, range_end)."""
    if not overlaps(start, end, range_start, range_end):
        return timedelta(0)
    return min(end, range_end) - max(start, range_start)


def _merged_duration(windows: List[tuple]) -> timedelta:
    """Total length of a set of half-open windows, overlaps counted once."""
    total = timedelta(0)
    current_start = current_end = None
    for start, end in sorted(windows):
        if current_end is None or start > current_end:
            if current_end is not None:
                total += current_end - current_start
            current_start, current_end = start, end
        else:
            current_end = max(current_end, end)
    if current_end is not None:
        total += current_end - current_start
    return total


class UtilizationReporter:

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def facility_utilization(
        self,
        range_start: datetime,
        range_end: datetime,
        facility_id: Optional[str] = None
    ) -> UtilizationReport:
        """Utilization of active facilities over [range_start, range_end)."""
        if range_start >= range_end:
            raise ValueError("range_end must be after range_start")

        query = self.db.query(Facility).filter(Facility.is_active == True)  # noqa: E712
        if facility_id:
            query = query.filter(Facility.id == facility_id)
        facilities = query.order_by(Facility.name).all()

        report = UtilizationReport(range_start=range_start, range_end=range_end)
        for facility in facilities:
            report.facilities.append(self._facility_figures(facility, range_start, range_end))
        return report

    def _facility_figures(self, facility: Facility, range_start: datetime, range_end: datetime) -> FacilityUtilization:
        requests = self.db.query(FacilityRequest).filter(
            FacilityRequest.facility_id == facility.id,
            FacilityRequest.status.in_(ACTIVE_STATUSES),
            FacilityRequest.schedule_start < range_end,
            FacilityRequest.schedule_end > range_start,
        ).all()
        requests = [
            r for r in requests
            if overlaps(r.schedule_start, r.schedule_end, range_start, range_end)
        ]

        blackouts = self.db.query(BlackoutDate).filter(
            BlackoutDate.facility_id == facility.id,
            BlackoutDate.end_date >= range_start.date(),
            BlackoutDate.start_date <= range_end.date(),
        ).all()
        blackout_windows = []
        for blackout in blackouts:
            start, end = blackout_window(blackout.start_date, blackout.end_date)
            if overlaps(start, end, range_start, range_end):
                blackout_windows.append((max(start, range_start), min(end, range_end)))

        booked = sum(
            (clipped_duration(r.schedule_start, r.schedule_end, range_start, range_end) for r in requests),
            timedelta(0)
        )
        bookable = (range_end - range_start) - _merged_duration(blackout_windows)

        booked_hours = round(booked / HOUR, 2)
        bookable_hours = round(bookable / HOUR, 2)

        return FacilityUtilization(
            facility_id=facility.id,
            facility_name=facility.name,
            facility_type=facility.facility_type,
            active_request_count=len(requests),
            approved_request_count=sum(1 for r in requests if r.status == RequestStatus.APPROVED.value),
            booked_hours=booked_hours,
            bookable_hours=bookable_hours,
            utilization_percent=_percent(booked_hours, bookable_hours),
        )

    def overview(
        self,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None
    ) -> Dict:
        """Admin dashboard figures, optionally limited to requests created in a window."""
        query = self.db.query(FacilityRequest)
        if range_start and range_end:
            query = query.filter(
                FacilityRequest.created_at >= range_start,
                FacilityRequest.created_at < range_end,
            )

        status_counts = {status.value: 0 for status in RequestStatus}
        for status, count in query.with_entities(
            FacilityRequest.status, func.count(FacilityRequest.id)
        ).group_by(FacilityRequest.status).all():
            status_counts[status] = count

        category_counts = {category.value: 0 for category in EventCategory}
        for category, count in query.with_entities(
            FacilityRequest.event_category, func.count(FacilityRequest.id)
        ).group_by(FacilityRequest.event_category).all():
            category_counts[category] = count

        paid_revenue = query.with_entities(func.sum(FacilityRequest.total_amount)).filter(
            FacilityRequest.payment_status == PaymentStatus.PAID.value
        ).scalar()
        # Exempted government events carry 0; waived private events keep their billed amount
        exempted_amount = query.with_entities(func.sum(FacilityRequest.total_amount)).filter(
            FacilityRequest.payment_status == PaymentStatus.EXEMPTED.value
        ).scalar()

        most_requested = query.with_entities(
            FacilityRequest.facility_id, func.count(FacilityRequest.id).label("request_count")
        ).group_by(FacilityRequest.facility_id).order_by(
            func.count(FacilityRequest.id).desc()
        ).limit(5).all()
        names = dict(self.db.query(Facility.id, Facility.name).filter(
            Facility.id.in_([row[0] for row in most_requested])
        ).all()) if most_requested else {}

        total = sum(status_counts.values())
        active = sum(status_counts[s] for s in ACTIVE_STATUSES)

        return {
            "total_requests": total,
            "active_requests": active,
            "status_counts": status_counts,
            "event_categories": category_counts,
            "no_shows": status_counts[RequestStatus.NO_SHOW.value],
            "facilities_count": self.db.query(func.count(Facility.id)).filter(
                Facility.is_active == True  # noqa: E712
            ).scalar() or 0,
            "revenue": {
                "paid": Decimal(str(paid_revenue or 0)),
                "exempted": Decimal(str(exempted_amount or 0)),
            },
            "approval_rate_percent": _percent(status_counts[RequestStatus.APPROVED.value], total),
            "most_requested_facilities": [
                {"facility_id": fid, "facility_name": names.get(fid), "request_count": count}
                for fid, count in most_requested
            ],
        }

    def staff_summary(self, now: Optional[datetime] = None) -> Dict:
        """Work queue counts plus today's and upcoming approved events."""
        now = now or datetime.utcnow()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1)
        horizon = now + timedelta(days=self.settings.upcoming_events_days)

        queue = {
            status.value: 0 for status in (
                RequestStatus.PENDING_REVIEW,
                RequestStatus.AWAITING_REQUIREMENTS,
                RequestStatus.AWAITING_PAYMENT,
                RequestStatus.APPROVED,
            )
        }
        for status, count in self.db.query(
            FacilityRequest.status, func.count(FacilityRequest.id)
        ).filter(FacilityRequest.status.in_(list(queue))).group_by(FacilityRequest.status).all():
            queue[status] = count

        approved = self.db.query(FacilityRequest).filter(
            FacilityRequest.status == RequestStatus.APPROVED.value
        )
        today_events = approved.filter(
            FacilityRequest.schedule_start < day_end,
            FacilityRequest.schedule_end > day_start,
        ).count()
        upcoming = approved.filter(
            FacilityRequest.schedule_start >= now,
            FacilityRequest.schedule_start < horizon,
        ).order_by(FacilityRequest.schedule_start).limit(self.settings.upcoming_events_limit).all()

        return {
            "queue": queue,
            "today_events": today_events,
            "upcoming_events": upcoming,
        }

    def export_rows(
        self,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None
    ) -> List[Dict]:
        """Flat request rows for report export, newest first."""
        query = self.db.query(FacilityRequest, Facility.name).join(
            Facility, Facility.id == FacilityRequest.facility_id
        )
        if range_start and range_end:
            query = query.filter(
                FacilityRequest.created_at >= range_start,
                FacilityRequest.created_at < range_end,
            )

        rows = []
        for request, facility_name in query.order_by(FacilityRequest.created_at.desc()).all():
            rows.append({
                "request_number": request.request_number,
                "applicant_name": request.applicant_name,
                "organization": request.organization_name or "N/A",
                "facility": facility_name,
                "activity_type": request.activity_type,
                "schedule_start": request.schedule_start.isoformat(),
                "schedule_end": request.schedule_end.isoformat(),
                "status": request.status,
                "payment_status": request.payment_status,
                "total_amount": str(request.total_amount),
                "event_category": request.event_category,
                "handled_by": request.handled_by or "Unassigned",
                "created_at": request.created_at.isoformat(),
            })
        logger.info("Prepared %d export rows", len(rows))
        return rows
