"""
Staff Router

Work queue for staff: review requests, walk them through the lifecycle,
reschedule, take payment, assign handlers, and run the event day
(gate pass, on-site event status, post-event inspection).
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from sqlalchemy import or_
from typing import Optional
from datetime import date, datetime, time, timedelta

from ..database import get_db
from ..models.facility_request import FacilityRequest, RequestStatus, EventCategory
from ..schemas.facility_request import (
    FacilityRequestResponse,
    FacilityRequestDetail,
    StatusChangeRequest,
    RescheduleRequest,
    SetPaymentRequest,
    ConfirmPaymentRequest,
    AssignRequest,
    EventStatusUpdate,
    InspectionCreate,
    InspectionResponse,
)
from ..schemas.pagination import PaginatedResponse, paginate_query
from ..schemas.report import StaffDashboardResponse
from ..services.booking_workflow import BookingWorkflow, StatusTransition
from ..services.utilization_reporter import UtilizationReporter
from ..utils.dependencies import get_staff_actor, WORKFLOW_ERRORS, to_http_exception

router = APIRouter(prefix="/api/staff", tags=["Staff"])


@router.get("/dashboard", response_model=StaffDashboardResponse)
async def staff_dashboard(db: Session = Depends(get_db)):
    summary = UtilizationReporter(db).staff_summary()
    return StaffDashboardResponse(
        queue=summary["queue"],
        today_events=summary["today_events"],
        upcoming_events=[FacilityRequestResponse.model_validate(r) for r in summary["upcoming_events"]],
    )


@router.get("/requests", response_model=PaginatedResponse[FacilityRequestResponse])
async def list_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    facility_id: Optional[str] = None,
    event_category: Optional[EventCategory] = None,
    handled_by: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """
    List requests, newest first.

    date_from/date_to select requests whose schedule touches those days
    (both inclusive).
    """
    query = db.query(FacilityRequest)

    if status_filter:
        query = query.filter(FacilityRequest.status == status_filter.value)
    if facility_id:
        query = query.filter(FacilityRequest.facility_id == facility_id)
    if event_category:
        query = query.filter(FacilityRequest.event_category == event_category.value)
    if handled_by:
        query = query.filter(FacilityRequest.handled_by == handled_by)
    if date_from:
        query = query.filter(FacilityRequest.schedule_end > datetime.combine(date_from, time.min))
    if date_to:
        query = query.filter(
            FacilityRequest.schedule_start < datetime.combine(date_to + timedelta(days=1), time.min)
        )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            FacilityRequest.request_number.ilike(pattern),
            FacilityRequest.applicant_name.ilike(pattern),
            FacilityRequest.organization_name.ilike(pattern),
        ))

    items, total = paginate_query(query.order_by(FacilityRequest.created_at.desc()), page, page_size)
    return PaginatedResponse[FacilityRequestResponse].create(
        items=[FacilityRequestResponse.model_validate(i) for i in items],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/requests/{request_id}", response_model=FacilityRequestDetail)
async def get_request(request_id: str, db: Session = Depends(get_db)):
    facility_request = db.query(FacilityRequest).filter(FacilityRequest.id == request_id).first()
    if not facility_request:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    return facility_request


@router.put("/requests/{request_id}/assign", response_model=FacilityRequestResponse)
async def assign_request(
    request_id: str,
    data: AssignRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(get_staff_actor)
):
    try:
        return BookingWorkflow(db).assign(request_id, data.handler, actor)
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)


@router.put("/requests/{request_id}/status", response_model=FacilityRequestResponse)
async def update_status(
    request_id: str,
    data: StatusChangeRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(get_staff_actor)
):
    """Normal lifecycle transition; invalid moves return 400"""
    try:
        return BookingWorkflow(db).apply_status_change(
            request_id, StatusTransition(data.status, data.remarks), actor
        )
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)


@router.put("/requests/{request_id}/schedule", response_model=FacilityRequestResponse)
async def reschedule_request(
    request_id: str,
    data: RescheduleRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(get_staff_actor)
):
    try:
        return BookingWorkflow(db).reschedule(
            request_id, data.schedule_start, data.schedule_end, actor, data.remarks
        )
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)


@router.put("/requests/{request_id}/payment", response_model=FacilityRequestResponse)
async def set_payment(
    request_id: str,
    data: SetPaymentRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(get_staff_actor)
):
    try:
        return BookingWorkflow(db).set_payment(request_id, data.payment_type, actor)
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)


@router.post("/requests/{request_id}/payment/confirm", response_model=FacilityRequestResponse)
async def confirm_payment(
    request_id: str,
    data: Optional[ConfirmPaymentRequest] = None,
    db: Session = Depends(get_db),
    actor: str = Depends(get_staff_actor)
):
    """Settle payment and approve; the body is optional and defaults to CASH"""
    data = data or ConfirmPaymentRequest()
    try:
        return BookingWorkflow(db).record_payment(request_id, data.payment_type, actor)
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)


@router.post("/requests/{request_id}/gate-pass", response_model=FacilityRequestResponse)
async def generate_gate_pass(
    request_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_staff_actor)
):
    try:
        return BookingWorkflow(db).generate_gate_pass(request_id, actor)
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)


@router.put("/requests/{request_id}/event-status", response_model=FacilityRequestResponse)
async def update_event_status(
    request_id: str,
    data: EventStatusUpdate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_staff_actor)
):
    """On-site progress (IN_USE, COMPLETED, NO_SHOW) with actual times"""
    try:
        return BookingWorkflow(db).record_event_times(
            request_id, data.event_status, actor, data.actual_start_time, data.actual_end_time
        )
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)


@router.post(
    "/requests/{request_id}/inspection",
    response_model=InspectionResponse,
    status_code=status.HTTP_201_CREATED
)
async def submit_inspection(
    request_id: str,
    data: InspectionCreate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_staff_actor)
):
    try:
        return BookingWorkflow(db).record_inspection(
            request_id,
            actor,
            has_damages=data.has_damages,
            damage_description=data.damage_description,
            violations=data.violations,
            billing_amount=data.billing_amount,
            remarks=data.remarks,
        )
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)
