"""
Citizen Router

Public endpoints: browse facilities, check a window, submit a request,
track and cancel one's own requests.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
from sqlalchemy import or_
from typing import List, Optional

from ..database import get_db
from ..models.facility import Facility
from ..models.facility_request import FacilityRequest
from ..schemas.facility import FacilityResponse
from ..schemas.facility_request import (
    AvailabilityCheck,
    AvailabilityResponse,
    ConflictingRequest,
    ConflictingBlackout,
    FacilityRequestCreate,
    FacilityRequestResponse,
    FacilityRequestDetail,
    CitizenCancelRequest,
)
from ..services.availability_engine import compute_payment_amount
from ..services.booking_workflow import BookingWorkflow
from ..utils.dependencies import WORKFLOW_ERRORS, to_http_exception
from ..utils.logging_config import get_logger
from ..utils.rate_limiter import limiter, get_rate_limit
from ..utils.sanitization import normalize_contact_number

logger = get_logger(__name__)

router = APIRouter(prefix="/api/citizen", tags=["Citizen"])


@router.get("/facilities", response_model=List[FacilityResponse])
async def list_facilities(
    facility_type: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Active facilities open for booking"""
    query = db.query(Facility).filter(Facility.is_active == True)  # noqa: E712
    if facility_type:
        query = query.filter(Facility.facility_type == facility_type)
    return query.order_by(Facility.name).all()


@router.post("/check-availability", response_model=AvailabilityResponse)
@limiter.limit(get_rate_limit("availability_check"))
async def check_availability(
    request: Request,
    data: AvailabilityCheck,
    db: Session = Depends(get_db)
):
    """
    Check a window without reserving it.

    An unavailable window is a normal answer (200 with available=false),
    not an error.
    """
    workflow = BookingWorkflow(db)
    try:
        result = workflow.check_availability(
            data.facility_id, data.schedule_start, data.schedule_end, data.exclude_request_id
        )
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)

    facility = db.query(Facility).filter(Facility.id == data.facility_id).first()
    return AvailabilityResponse(
        available=result.available,
        conflicts=[ConflictingRequest.model_validate(r) for r in result.conflicting_requests],
        blackouts=[ConflictingBlackout.model_validate(b) for b in result.conflicting_blackouts],
        estimated_amount=compute_payment_amount(
            facility, data.schedule_start, data.schedule_end, data.event_category
        ),
    )


@router.post("/facility-requests", response_model=FacilityRequestResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("citizen_submission"))
async def submit_facility_request(
    request: Request,
    data: FacilityRequestCreate,
    db: Session = Depends(get_db)
):
    """Submit a reservation request; 409 with the conflict set if the slot is taken"""
    workflow = BookingWorkflow(db)
    try:
        return workflow.submit_request(data)
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)


@router.get("/my-requests", response_model=List[FacilityRequestResponse])
async def my_requests(
    email: Optional[str] = Query(None, max_length=255),
    contact_number: Optional[str] = Query(None, max_length=30),
    db: Session = Depends(get_db)
):
    """Requests submitted under an email address or contact number"""
    if not email and not contact_number:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email or contact number is required"
        )

    filters = []
    if email:
        filters.append(FacilityRequest.email == email.strip())
    if contact_number:
        filters.append(FacilityRequest.contact_number == normalize_contact_number(contact_number))

    return db.query(FacilityRequest).filter(or_(*filters)).order_by(
        FacilityRequest.created_at.desc()
    ).all()


@router.get("/requests/{request_number}", response_model=FacilityRequestDetail)
async def track_request(request_number: str, db: Session = Depends(get_db)):
    """Track a request by its public number, with status history"""
    facility_request = db.query(FacilityRequest).filter(
        FacilityRequest.request_number == request_number.strip().upper()
    ).first()
    if not facility_request:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    return facility_request


@router.put("/requests/{request_id}/cancel", response_model=FacilityRequestResponse)
async def cancel_request(
    request_id: str,
    data: CitizenCancelRequest,
    db: Session = Depends(get_db)
):
    workflow = BookingWorkflow(db)
    try:
        facility_request = workflow.cancel_by_citizen(request_id, data.contact_number, data.reason)
    except WORKFLOW_ERRORS as e:
        raise to_http_exception(e)

    logger.info(f"Request {facility_request.request_number} cancelled by applicant")
    return facility_request
