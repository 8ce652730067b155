"""
Router dependencies and domain error mapping.

Identity is not authenticated here; staff and admin calls name their actor
through the X-Actor header so every history row records who acted.
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from ..schemas.facility_request import ConflictingRequest, ConflictingBlackout
from ..services.availability_engine import AvailabilityLookupError
from ..services.booking_workflow import (
    FacilityNotFoundError,
    RequestNotFoundError,
    InvalidScheduleError,
    InvalidTransitionError,
    CancellationNotAllowedError,
    SlotUnavailableError,
)
from .logging_config import actor_var


def _actor(value: Optional[str], default: str) -> str:
    actor = (value or "").strip()[:255] or default
    actor_var.set(actor)
    return actor


async def get_staff_actor(x_actor: Optional[str] = Header(None)) -> str:
    return _actor(x_actor, "staff")


async def get_admin_actor(x_actor: Optional[str] = Header(None)) -> str:
    return _actor(x_actor, "admin")


def slot_unavailable_detail(exc: SlotUnavailableError) -> dict:
    result = exc.result
    return {
        "message": str(exc),
        "late": exc.late,
        "conflicts": [
            ConflictingRequest.model_validate(r).model_dump(mode="json")
            for r in result.conflicting_requests
        ],
        "blackouts": [
            ConflictingBlackout.model_validate(b).model_dump(mode="json")
            for b in result.conflicting_blackouts
        ],
    }


def to_http_exception(exc: Exception) -> HTTPException:
    """Translate a workflow error into the HTTP error the API returns."""
    if isinstance(exc, SlotUnavailableError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=slot_unavailable_detail(exc))
    if isinstance(exc, (FacilityNotFoundError, RequestNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, CancellationNotAllowedError):
        code = status.HTTP_403_FORBIDDEN if exc.forbidden else status.HTTP_400_BAD_REQUEST
        return HTTPException(status_code=code, detail=str(exc))
    if isinstance(exc, (InvalidScheduleError, InvalidTransitionError, ValueError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, AvailabilityLookupError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Availability could not be determined, try again later"
        )
    raise exc


WORKFLOW_ERRORS = (
    SlotUnavailableError,
    FacilityNotFoundError,
    RequestNotFoundError,
    InvalidScheduleError,
    InvalidTransitionError,
    CancellationNotAllowedError,
    AvailabilityLookupError,
    ValueError,
)
