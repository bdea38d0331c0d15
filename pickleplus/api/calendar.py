"""Class calendar and enrollment API endpoints."""

import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import select

from pickleplus.api.dependencies import DbSession, raise_booking_error
from pickleplus.models import ClassOffering, ClassStatus, EnrollmentState, Facility
from pickleplus.services.audit_service import log_audit
from pickleplus.services.enrollment_coordinator import (
    EnrollmentCoordinator,
    EnrollmentOutcome,
    MyClassEntry,
)
from pickleplus.services.results import BookingError, BookingErrorKind
from pickleplus.services.schedule_cache import schedule_cache
from pickleplus.services.schedule_view import AvailabilityKind, ScheduleView, snapshot
from pickleplus.utils.timezone import LOCAL_TZ, now_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])


# === PYDANTIC MODELS ===

class CapacityResponse(BaseModel):
    min: int
    max: int
    current: int

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    kind: AvailabilityKind
    needed_count: Optional[int] = None
    spots_left: Optional[int] = None

    class Config:
        from_attributes = True


class ClassResponse(BaseModel):
    """Class offering as shown on the calendar."""

    id: int
    facility_id: int
    name: str
    description: Optional[str] = None
    date: date
    start_time: time
    end_time: time
    skill_level: str
    capacity: CapacityResponse
    price: Optional[float] = None
    coach_id: Optional[int] = None
    coach_name: Optional[str] = None
    court_number: Optional[int] = None
    waitlist_count: int
    status: ClassStatus
    availability: AvailabilityResponse

    class Config:
        from_attributes = True


class WeeklyScheduleResponse(BaseModel):
    facility_id: int
    week_start: date
    previous_week: date
    next_week: date
    days: Dict[date, List[ClassResponse]]

    class Config:
        from_attributes = True


class ClassCreate(BaseModel):
    """Class offering creation model."""

    facility_id: int
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    class_date: date
    start_time: time
    end_time: time
    skill_level: str = "beginner"
    min_participants: int = Field(default=1, ge=0)
    max_participants: int = Field(default=8, ge=1)
    price: Optional[Decimal] = Field(default=None, ge=0)
    coach_id: Optional[int] = None
    coach_name: Optional[str] = None
    court_number: Optional[int] = None
    auto_cancel_hours: int = Field(default=24, ge=0)

    @model_validator(mode="after")
    def check_times_and_capacity(self) -> "ClassCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.min_participants > self.max_participants:
            raise ValueError("min_participants cannot exceed max_participants")
        return self


class ClassCancelRequest(BaseModel):
    reason: str = "Cancelled by administrator"


class EnrollmentRequest(BaseModel):
    user_id: int
    enrollment_type: Literal["advance", "walk_in"] = "advance"


class CancelEnrollmentRequest(BaseModel):
    user_id: int


class EnrollmentRecordResponse(BaseModel):
    id: int
    class_id: int
    user_id: int
    state: EnrollmentState
    position: Optional[int] = None
    enrollment_type: str
    payment_status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EnrollmentResponse(BaseModel):
    outcome: EnrollmentOutcome
    record: EnrollmentRecordResponse
    class_offering: ClassResponse


class CancellationResponse(BaseModel):
    record: EnrollmentRecordResponse
    promoted: Optional[EnrollmentRecordResponse] = None
    class_offering: ClassResponse


class ClassCancellationResponse(BaseModel):
    class_offering: ClassResponse
    affected_user_ids: List[int]


class ClassDetailResponse(BaseModel):
    class_offering: ClassResponse
    user_enrollment: Optional[EnrollmentRecordResponse] = None


class MyClassResponse(BaseModel):
    record: EnrollmentRecordResponse
    class_offering: ClassResponse
    starts_at: datetime


class MyClassesResponse(BaseModel):
    upcoming: List[MyClassResponse]
    past: List[MyClassResponse]


def _my_class(entry: MyClassEntry) -> MyClassResponse:
    return MyClassResponse(
        record=EnrollmentRecordResponse.model_validate(entry.record),
        class_offering=ClassResponse.model_validate(entry.offering),
        starts_at=entry.starts_at,
    )


# === SCHEDULE ===

@router.get("/weekly-schedule/{facility_id}", response_model=WeeklyScheduleResponse)
async def get_weekly_schedule(
    facility_id: int,
    db: DbSession,
    week: Optional[date] = Query(None, description="Any date inside the requested week"),
) -> WeeklyScheduleResponse:
    """Get the facility's classes for one week, grouped by day."""
    anchor = week or now_utc().astimezone(LOCAL_TZ).date()
    result = await ScheduleView(db).weekly_schedule(facility_id, anchor)
    if not result.is_ok:
        raise_booking_error(result.error)
    return WeeklyScheduleResponse.model_validate(result.value)


@router.get("/classes/{facility_id}", response_model=List[ClassResponse])
async def get_daily_classes(
    facility_id: int,
    db: DbSession,
    day: Optional[date] = Query(None, alias="date", description="Day to list, defaults to today"),
) -> List[ClassResponse]:
    """Get the facility's classes for a single day."""
    target = day or now_utc().astimezone(LOCAL_TZ).date()
    result = await ScheduleView(db).daily_classes(facility_id, target)
    if not result.is_ok:
        raise_booking_error(result.error)
    return [ClassResponse.model_validate(item) for item in result.value]


@router.get("/classes/{class_id}/details", response_model=ClassDetailResponse)
async def get_class_details(
    class_id: int,
    db: DbSession,
    user_id: Optional[int] = Query(None, description="Include this player's booking state"),
) -> ClassDetailResponse:
    """Get one class, optionally with the player's enrollment or waitlist position."""
    result = await ScheduleView(db).class_detail(class_id)
    if not result.is_ok:
        raise_booking_error(result.error)

    user_enrollment = None
    if user_id is not None:
        record = await EnrollmentCoordinator(db).find_active_record(class_id, user_id)
        if record is not None:
            user_enrollment = EnrollmentRecordResponse.model_validate(record)

    return ClassDetailResponse(
        class_offering=ClassResponse.model_validate(result.value),
        user_enrollment=user_enrollment,
    )


@router.post("/classes", response_model=ClassResponse, status_code=status.HTTP_201_CREATED)
async def create_class(class_data: ClassCreate, db: DbSession) -> ClassResponse:
    """Create new class offering."""
    facility_result = await db.execute(
        select(Facility).where(Facility.id == class_data.facility_id, Facility.is_active == True)
    )
    facility = facility_result.scalar_one_or_none()
    if facility is None:
        raise_booking_error(BookingError(BookingErrorKind.NOT_FOUND, "Facility not found"))

    offering = ClassOffering(**class_data.model_dump(), status=ClassStatus.SCHEDULED)
    try:
        db.add(offering)
        await db.flush()
        await log_audit(
            db=db,
            action_type="CREATE",
            entity_type="class",
            entity_id=offering.id,
            entity_name=offering.name,
            description=(
                f"Class created: '{offering.name}' at {facility.name} "
                f"on {offering.class_date} {offering.start_time.strftime('%H:%M')}"
            ),
            user_type="admin",
            changes={
                "min_participants": offering.min_participants,
                "max_participants": offering.max_participants,
            },
        )
        await db.commit()
        await db.refresh(offering)
    except Exception as e:
        await db.rollback()
        logger.error(f"❌ Error creating class '{class_data.name}': {e}")
        raise

    schedule_cache.invalidate_class(offering.facility_id, offering.class_date)
    logger.info(f"✅ Created class {offering.id} '{offering.name}' on {offering.class_date}")
    return ClassResponse.model_validate(snapshot(offering))


@router.post("/classes/{class_id}/cancel", response_model=ClassCancellationResponse)
async def cancel_class(
    class_id: int,
    db: DbSession,
    request: Optional[ClassCancelRequest] = None,
) -> ClassCancellationResponse:
    """Cancel a class and release all of its bookings."""
    reason = request.reason if request is not None else ClassCancelRequest().reason
    result = await EnrollmentCoordinator(db).cancel_class(class_id, reason=reason)
    if not result.is_ok:
        raise_booking_error(result.error)
    return ClassCancellationResponse(
        class_offering=ClassResponse.model_validate(result.value.offering),
        affected_user_ids=result.value.affected_user_ids,
    )


# === ENROLLMENT ===

@router.post("/classes/{class_id}/enroll", response_model=EnrollmentResponse)
async def enroll(class_id: int, request: EnrollmentRequest, db: DbSession) -> EnrollmentResponse:
    """Enroll in a class, or join its waitlist when it is full."""
    result = await EnrollmentCoordinator(db).request_enrollment(
        class_id, request.user_id, enrollment_type=request.enrollment_type
    )
    if not result.is_ok:
        raise_booking_error(result.error)
    return EnrollmentResponse(
        outcome=result.outcome,
        record=EnrollmentRecordResponse.model_validate(result.record),
        class_offering=ClassResponse.model_validate(result.offering),
    )


@router.delete("/classes/{class_id}/enroll", response_model=CancellationResponse)
async def cancel_enrollment(
    class_id: int, request: CancelEnrollmentRequest, db: DbSession
) -> CancellationResponse:
    """Cancel an enrollment or waitlist place; the next waitlisted player moves up."""
    result = await EnrollmentCoordinator(db).cancel(class_id, request.user_id)
    if not result.is_ok:
        raise_booking_error(result.error)
    summary = result.value
    return CancellationResponse(
        record=EnrollmentRecordResponse.model_validate(summary.record),
        promoted=(
            EnrollmentRecordResponse.model_validate(summary.promoted)
            if summary.promoted is not None
            else None
        ),
        class_offering=ClassResponse.model_validate(summary.offering),
    )


@router.get("/my-classes", response_model=MyClassesResponse)
async def get_my_classes(
    db: DbSession,
    user_id: int = Query(..., description="Player ID"),
    upcoming: Optional[bool] = Query(None, description="Only upcoming (true) or only past (false)"),
) -> MyClassesResponse:
    """Get a player's bookings split into upcoming and past classes."""
    classes = await EnrollmentCoordinator(db).my_classes(user_id, upcoming=upcoming)
    return MyClassesResponse(
        upcoming=[_my_class(entry) for entry in classes.upcoming],
        past=[_my_class(entry) for entry in classes.past],
    )
