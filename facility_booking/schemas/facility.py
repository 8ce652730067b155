from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal

from ..models.blackout_date import BlackoutCategory
from ..utils.sanitization import sanitize_text


class FacilityCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    facility_type: str = Field(..., min_length=1, max_length=50)
    capacity: int = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=2000)
    location: Optional[str] = Field(None, max_length=255)
    amenities: List[str] = Field(default_factory=list)
    hourly_rate: Decimal = Field(Decimal("0"), ge=0)

    @field_validator('name', 'facility_type', 'description', 'location', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return sanitize_text(v)


class FacilityUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    facility_type: Optional[str] = Field(None, min_length=1, max_length=50)
    capacity: Optional[int] = Field(None, gt=0)
    description: Optional[str] = Field(None, max_length=2000)
    location: Optional[str] = Field(None, max_length=255)
    amenities: Optional[List[str]] = None
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None

    @field_validator('name', 'facility_type', 'description', 'location', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return sanitize_text(v)


class FacilityResponse(BaseModel):
    id: str
    name: str
    facility_type: str
    capacity: int
    description: Optional[str] = None
    location: Optional[str] = None
    amenities: List[str] = Field(default_factory=list)
    hourly_rate: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @field_validator('amenities', mode='before')
    @classmethod
    def default_amenities(cls, v):
        return v or []

    class Config:
        from_attributes = True


class BlackoutDateCreate(BaseModel):
    facility_id: str = Field(..., min_length=1, max_length=36)
    start_date: date
    end_date: date
    reason: Optional[str] = Field(None, max_length=1000)
    category: BlackoutCategory = BlackoutCategory.MAINTENANCE

    @field_validator('reason', mode='before')
    @classmethod
    def sanitize_reason(cls, v):
        return sanitize_text(v)

    @model_validator(mode='after')
    def validate_dates(self):
        """Bounds are inclusive; a single-day blackout has start_date == end_date"""
        if self.start_date > self.end_date:
            raise ValueError('start_date must be on or before end_date')
        return self


class BlackoutDateResponse(BaseModel):
    id: str
    facility_id: str
    facility_name: Optional[str] = None
    start_date: date
    end_date: date
    reason: Optional[str] = None
    category: str
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
