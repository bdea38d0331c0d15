"""Facility API endpoints."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, status
from pydantic import BaseModel, Field, field_validator, model_validator

from pickleplus.api.dependencies import DbSession, raise_booking_error
from pickleplus.models import Facility
from pickleplus.services.facility_resolver import FacilityResolver, is_access_code

logger = logging.getLogger(__name__)

router = APIRouter(tags=["facilities"])


class FacilityCreate(BaseModel):
    """Facility creation model."""

    name: str = Field(min_length=1, max_length=100)
    address: str = Field(min_length=1)
    access_code: str = Field(min_length=1, max_length=50)
    city: Optional[str] = Field(default=None, max_length=50)

    @field_validator("access_code")
    @classmethod
    def validate_access_code(cls, value: str) -> str:
        if not is_access_code(value):
            raise ValueError("access code must look like TC001-SG")
        return value


class FacilityResponse(BaseModel):
    """Facility response model."""

    id: int
    name: str
    address: str
    city: Optional[str] = None
    access_code: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CheckInRequest(BaseModel):
    """Facility check-in by scanned/typed code or by explicit selection."""

    code: Optional[str] = None
    facility_id: Optional[int] = None

    @model_validator(mode="after")
    def exactly_one_selector(self) -> "CheckInRequest":
        if (self.code is None) == (self.facility_id is None):
            raise ValueError("provide either code or facility_id")
        return self


@router.get("/facilities", response_model=List[FacilityResponse])
async def list_facilities(db: DbSession) -> List[Facility]:
    """Get all active facilities."""
    return await FacilityResolver(db).list_facilities()


@router.post("/facilities", response_model=FacilityResponse, status_code=status.HTTP_201_CREATED)
async def create_facility(facility_data: FacilityCreate, db: DbSession) -> Facility:
    """Create new facility."""
    result = await FacilityResolver(db).create_facility(**facility_data.model_dump())
    if not result.is_ok:
        raise_booking_error(result.error)
    return result.value


@router.post("/facility-checkin", response_model=FacilityResponse)
async def facility_checkin(request: CheckInRequest, db: DbSession) -> Facility:
    """Resolve a check-in code or facility id to the facility to book at."""
    selector = request.code if request.code is not None else {"facility_id": request.facility_id}
    result = await FacilityResolver(db).resolve(selector)
    if not result.is_ok:
        raise_booking_error(result.error)
    logger.info(f"Check-in resolved to facility {result.value.id}")
    return result.value
