"""
Admin Router

Facility catalog and blackout management, reporting, and the explicit
override path for request status.
"""

import csv
import io
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.facility import Facility
from ..models.blackout_date import BlackoutDate, blackout_window
from ..models.facility_request import FacilityRequest, ACTIVE_STATUSES
from ..schemas.facility import (
    FacilityCreate,
    FacilityUpdate,
    FacilityResponse,
    BlackoutDateCreate,
    BlackoutDateResponse,
)
from ..schemas.facility_request import (
    FacilityRequestResponse,
    OverrideStatusRequest,
    AssignRequest,
    ConflictingRequest,
)
from ..schemas.report import AdminDashboardResponse, UtilizationReportResponse
from ..services.availability_engine import SqlAlchemyBookingStore, overlaps
from ..services.booking_workflow import BookingWorkflow, StatusOverride
from ..services.utilization_reporter import UtilizationReporter
from ..utils.dependencies import get_admin_actor, WORKFLOW_ERRORS, to_http_exception
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def _date_range(date_from: Optional[date], date_to: Optional[date]):
    """Inclusive date filter to a half-open datetime range, or (None, None)"""
    if not date_from and not date_to:
        return None, None
    if not date_from or not date_to:
        raise HTTPException(status_code=400, detail="Both date_from and date_to are required")
    if date_from > date_to:
        raise HTTPException(status_code=400, detail="date_from must be on or before date_to")
    return (
        datetime.combine(date_from, time.min),
        datetime.combine(date_to + timedelta(days=1), time.min),
    )


# ============ Dashboard & Reports ============

@router.get("/dashboard", response_model=AdminDashboardResponse)
async def admin_dashboard(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: Session = Depends(get_db)
):
    """Overview of all requests, optionally limited to those created in a date range"""
    range_start, range_end = _date_range(date_from, date_to)
    return UtilizationReporter(db).overview(range_start, range_end)


@router.get("/utilization", response_model=UtilizationReportResponse)
async def facility_utilization(
    date_from: date,
    date_to: date,
    facility_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Booked vs bookable hours per facility for the days date_from..date_to"""
    range_start, range_end = _date_range(date_from, date_to)
    report = UtilizationReporter(db).facility_utilization(range_start, range_end, facility_id)
    return report.to_dict()


@router.get("/reports/export")
async def export_report(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    format: str = Query("csv", pattern="^(csv|json)$"),
    db: Session = Depends(get_db)
):
    """Export request rows as CSV download or JSON"""
    range_start, range_end = _date_range(date_from, date_to)
    rows = UtilizationReporter(db).export_rows(range_start, range_end)

    if format == "json":
        return {"count": len(rows), "rows": rows}

    output = io.StringIO()
    writer = csv.writer(output)
    if rows:
        writer.writerow([key.replace("_", " ").title() for key in rows[0]])
        for row in rows:
            writer.writerow(row.values())
    output.seek(0)

    filename = f"facility_requests_{datetime.utcnow().strftime('%Y%m%d')}.csv"
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


# ============ Facilities ============

@router.get("/facilities", response_model=List[FacilityResponse])
async def list_facilities(
    include_inactive: bool = True,
    db: Session = Depends(get_db)
):
    query = db.query(Facility)
    if not include_inactive:
        query = query.filter(Facility.is_active == True)  # noqa: E712
    return query.order_by(Facility.name).all()


@router.post("/facilities", response_model=FacilityResponse, status_code=status.HTTP_201_CREATED)
async def create_facility(
    data: FacilityCreate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor)
):
    facility = Facility(**data.model_dump())
    db.add(facility)
    db.commit()
    db.refresh(facility)
    logger.info(f"Facility {facility.name} created by {actor}")
    return facility


@router.get("/facilities/{facility_id}", response_model=FacilityResponse)
async def get_facility(facility_id: str, db: Session = Depends(get_db)):
    facility = db.query(Facility).filter(Facility.id == facility_id).first()
    if not facility:
        raise HTTPException(status_code=404, detail="Facility not found")
    return facility


@router.put("/facilities/{facility_id}", response_model=FacilityResponse)
async def update_facility(
    facility_id: str,
    data: FacilityUpdate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor)
):
    """Partial update; rate changes apply to requests submitted afterwards"""
    facility = db.query(Facility).filter(Facility.id == facility_id).first()
    if not facility:
        raise HTTPException(status_code=404, detail="Facility not found")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(facility, field, value)

    db.commit()
    db.refresh(facility)
    logger.info(f"Facility {facility.name} updated by {actor}")
    return facility


@router.delete("/facilities/{facility_id}")
async def delete_facility(
    facility_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor)
):
    """
    Delete a facility.

    Refused while active requests exist. A facility with only historical
    requests is deactivated instead so its request history stays intact.
    """
    facility = db.query(Facility).filter(Facility.id == facility_id).first()
    if not facility:
        raise HTTPException(status_code=404, detail="Facility not found")

    requests = db.query(FacilityRequest.status).filter(FacilityRequest.facility_id == facility_id)
    if requests.filter(FacilityRequest.status.in_(ACTIVE_STATUSES)).first():
        raise HTTPException(status_code=400, detail="Cannot delete facility with active requests")

    if requests.first():
        facility.is_active = False
        db.commit()
        logger.info(f"Facility {facility.name} deactivated by {actor}")
        return {"message": "Facility has request history and was deactivated", "deactivated": True}

    db.delete(facility)
    db.commit()
    logger.info(f"Facility {facility_id} deleted by {actor}")
    return {"message": "Facility deleted successfully", "deactivated": False}


# ============ Blackout dates ============

@router.get("/blackout-dates", response_model=List[BlackoutDateResponse])
async def list_blackout_dates(
    facility_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    query = db.query(BlackoutDate)
    if facility_id:
        query = query.filter(BlackoutDate.facility_id == facility_id)
    return query.order_by(BlackoutDate.start_date.desc()).all()


@router.post("/blackout-dates", response_model=BlackoutDateResponse, status_code=status.HTTP_201_CREATED)
async def create_blackout_date(
    data: BlackoutDateCreate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor)
):
    """
    Block a facility for whole days (both bounds inclusive).

    Refused with 409 while active requests sit inside the window; those must
    be rescheduled or closed first.
    """
    facility = db.query(Facility).filter(Facility.id == data.facility_id).first()
    if not facility:
        raise HTTPException(status_code=404, detail="Facility not found")

    window_start, window_end = blackout_window(data.start_date, data.end_date)
    try:
        candidates = SqlAlchemyBookingStore(db).requests_for(facility.id, window_start, window_end)
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)
    conflicts = [
        r for r in candidates
        if r.status in ACTIVE_STATUSES
        and overlaps(r.schedule_start, r.schedule_end, window_start, window_end)
    ]
    if conflicts:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Active requests fall inside the blackout window",
                "conflicts": [ConflictingRequest.model_validate(r).model_dump(mode="json") for r in conflicts],
            }
        )

    blackout = BlackoutDate(
        facility_id=facility.id,
        start_date=data.start_date,
        end_date=data.end_date,
        reason=data.reason,
        category=data.category.value,
        created_by=actor,
    )
    db.add(blackout)
    db.commit()
    db.refresh(blackout)
    logger.info(f"Blackout {blackout.start_date}..{blackout.end_date} on {facility.name} created by {actor}")
    return blackout


@router.delete("/blackout-dates/{blackout_id}")
async def delete_blackout_date(
    blackout_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor)
):
    blackout = db.query(BlackoutDate).filter(BlackoutDate.id == blackout_id).first()
    if not blackout:
        raise HTTPException(status_code=404, detail="Blackout date not found")

    db.delete(blackout)
    db.commit()
    logger.info(f"Blackout {blackout_id} deleted by {actor}")
    return {"message": "Blackout date deleted successfully"}


# ============ Request overrides ============

@router.put("/requests/{request_id}/override-status", response_model=FacilityRequestResponse)
async def override_status(
    request_id: str,
    data: OverrideStatusRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor)
):
    """
    Set any status outside the normal lifecycle.

    The justification is recorded in the status history and the change is
    logged at WARNING level. Reactivating a request still requires its slot.
    """
    try:
        change = StatusOverride(data.status, data.justification)
        return BookingWorkflow(db).apply_status_change(request_id, change, actor)
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)


@router.put("/requests/{request_id}/reassign", response_model=FacilityRequestResponse)
async def reassign_request(
    request_id: str,
    data: AssignRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor)
):
    try:
        return BookingWorkflow(db).assign(request_id, data.handler, actor)
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)
