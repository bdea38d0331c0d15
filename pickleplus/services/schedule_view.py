"""Schedule view: weekly and daily class projections with availability."""

import logging
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pickleplus.core.settings import settings
from pickleplus.models import ClassOffering, ClassStatus, Facility
from pickleplus.services.results import BookingErrorKind, Result
from pickleplus.services.schedule_cache import Fingerprint, ScheduleCache, schedule_cache
from pickleplus.utils.timezone import shift_week, week_days, week_start

logger = logging.getLogger(__name__)


class AvailabilityKind(str, Enum):
    """Availability label, in precedence order."""

    CANCELLED = "CANCELLED"
    FULL = "FULL"
    BELOW_MINIMUM = "BELOW_MINIMUM"
    LOW_AVAILABILITY = "LOW_AVAILABILITY"
    AVAILABLE = "AVAILABLE"


@dataclass(frozen=True)
class AvailabilityStatus:
    kind: AvailabilityKind
    needed_count: Optional[int] = None  # BELOW_MINIMUM only
    spots_left: Optional[int] = None  # LOW_AVAILABILITY only


@dataclass(frozen=True)
class Capacity:
    min: int
    max: int
    current: int


@dataclass(frozen=True)
class ScheduledClass:
    """Read-only snapshot of a class offering as shown on the calendar."""

    id: int
    facility_id: int
    name: str
    description: Optional[str]
    date: date
    start_time: time
    end_time: time
    skill_level: str
    capacity: Capacity
    price: Optional[Decimal]
    coach_id: Optional[int]
    coach_name: Optional[str]
    court_number: Optional[int]
    waitlist_count: int
    status: ClassStatus
    availability: AvailabilityStatus


@dataclass(frozen=True)
class WeekView:
    facility_id: int
    week_start: date
    days: Dict[date, List[ScheduledClass]] = field(default_factory=dict)

    @property
    def previous_week(self) -> date:
        return shift_week(self.week_start, -1)

    @property
    def next_week(self) -> date:
        return shift_week(self.week_start, 1)


def availability_status(
    offering: ClassOffering, low_threshold: Optional[int] = None
) -> AvailabilityStatus:
    """Derive the availability label; the first matching rule wins.

    1. CANCELLED - cancelled upstream
    2. FULL - no free slots
    3. BELOW_MINIMUM - still needs ``min - current`` players to run
    4. LOW_AVAILABILITY - at most ``low_threshold`` slots left
    5. AVAILABLE
    """
    if low_threshold is None:
        low_threshold = settings.low_availability_threshold

    current = offering.current_enrollment
    if offering.status == ClassStatus.CANCELLED:
        return AvailabilityStatus(AvailabilityKind.CANCELLED)
    if current >= offering.max_participants:
        return AvailabilityStatus(AvailabilityKind.FULL)
    if current < offering.min_participants:
        return AvailabilityStatus(
            AvailabilityKind.BELOW_MINIMUM,
            needed_count=offering.min_participants - current,
        )
    spots_left = offering.spots_left
    if spots_left <= low_threshold:
        return AvailabilityStatus(AvailabilityKind.LOW_AVAILABILITY, spots_left=spots_left)
    return AvailabilityStatus(AvailabilityKind.AVAILABLE)


def snapshot(offering: ClassOffering) -> ScheduledClass:
    return ScheduledClass(
        id=offering.id,
        facility_id=offering.facility_id,
        name=offering.name,
        description=offering.description,
        date=offering.class_date,
        start_time=offering.start_time,
        end_time=offering.end_time,
        skill_level=offering.skill_level,
        capacity=Capacity(
            min=offering.min_participants,
            max=offering.max_participants,
            current=offering.current_enrollment,
        ),
        price=offering.price,
        coach_id=offering.coach_id,
        coach_name=offering.coach_name,
        court_number=offering.court_number,
        waitlist_count=offering.waitlist_count,
        status=offering.status,
        availability=availability_status(offering),
    )


class ScheduleView:
    """Projection of a facility's classes onto calendar weeks and days."""

    def __init__(self, db: AsyncSession, cache: Optional[ScheduleCache] = schedule_cache):
        self.db = db
        self.cache = cache

    async def weekly_schedule(self, facility_id: int, week_anchor: date) -> Result[WeekView]:
        """Get all classes of the week containing ``week_anchor``, grouped by day.

        Any date inside the same week gives the same view. Every day of the
        week is present, days without classes map to an empty list.
        """
        start = week_start(week_anchor)
        end = start + timedelta(days=6)
        key = (facility_id, start)

        if self.cache is not None:
            # Read before the projection so a concurrent write can only make the entry stale
            fingerprint = await self._fingerprint(facility_id, start, end)
            cached = self.cache.get(key, fingerprint)
            if cached is not None:
                return Result.ok(cached)

        if not await self._facility_exists(facility_id):
            return Result.fail(BookingErrorKind.NOT_FOUND, "Facility not found")

        offerings = await self._offerings(facility_id, start, end)

        days: Dict[date, List[ScheduledClass]] = {day: [] for day in week_days(start)}
        for offering in offerings:
            days[offering.class_date].append(snapshot(offering))

        view = WeekView(facility_id=facility_id, week_start=start, days=days)
        if self.cache is not None:
            self.cache.store(key, view, fingerprint)

        logger.info(
            f"Weekly schedule for facility {facility_id}, week {start}: "
            f"{len(offerings)} classes"
        )
        return Result.ok(view)

    async def daily_classes(self, facility_id: int, day: date) -> Result[List[ScheduledClass]]:
        """Get classes of a single day, ordered by start time."""
        if not await self._facility_exists(facility_id):
            return Result.fail(BookingErrorKind.NOT_FOUND, "Facility not found")
        offerings = await self._offerings(facility_id, day, day)
        return Result.ok([snapshot(offering) for offering in offerings])

    async def class_detail(self, class_id: int) -> Result[ScheduledClass]:
        result = await self.db.execute(
            select(ClassOffering)
            .where(ClassOffering.id == class_id)
            .execution_options(populate_existing=True)
        )
        offering = result.scalar_one_or_none()
        if offering is None:
            return Result.fail(BookingErrorKind.CLASS_NOT_FOUND, "Class not found")
        return Result.ok(snapshot(offering))

    async def _facility_exists(self, facility_id: int) -> bool:
        result = await self.db.execute(
            select(Facility.id).where(
                Facility.id == facility_id,
                Facility.is_active == True,
            )
        )
        return result.scalar_one_or_none() is not None

    async def _offerings(self, facility_id: int, first_day: date, last_day: date) -> List[ClassOffering]:
        result = await self.db.execute(
            select(ClassOffering)
            .where(
                ClassOffering.facility_id == facility_id,
                ClassOffering.class_date >= first_day,
                ClassOffering.class_date <= last_day,
            )
            .order_by(ClassOffering.class_date, ClassOffering.start_time, ClassOffering.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _fingerprint(self, facility_id: int, first_day: date, last_day: date) -> Fingerprint:
        result = await self.db.execute(
            select(
                func.count(ClassOffering.id),
                func.coalesce(func.sum(ClassOffering.version), 0),
            ).where(
                ClassOffering.facility_id == facility_id,
                ClassOffering.class_date >= first_day,
                ClassOffering.class_date <= last_day,
            )
        )
        count, versions = result.one()
        return int(count), int(versions)
