"""Enrollment coordinator: enroll, waitlist, cancel and promote atomically per class."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from pickleplus.models import (
    ACTIVE_STATES,
    ClassOffering,
    ClassStatus,
    EnrollmentRecord,
    EnrollmentState,
)
from pickleplus.services.audit_service import log_audit
from pickleplus.services.results import BookingError, BookingErrorKind, Result
from pickleplus.services.schedule_cache import ScheduleCache, schedule_cache
from pickleplus.services.schedule_view import ScheduledClass, snapshot
from pickleplus.utils.timezone import LOCAL_TZ, combine_date_time_to_utc, now_utc

logger = logging.getLogger(__name__)


class ClassLockRegistry:
    """One ``asyncio.Lock`` per class offering id, held through ``hold()``.

    Serializes enroll/cancel for the same class inside this process; the
    ``SELECT ... FOR UPDATE`` row lock covers other processes. A lock is
    dropped as soon as nobody holds or waits for it. asyncio locks belong to
    one event loop, so the registry starts over when it is used from a new
    loop.
    """

    def __init__(self):
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._locks: Dict[int, asyncio.Lock] = {}
        self._holders: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, class_id: int) -> AsyncIterator[None]:
        loop = asyncio.get_running_loop()
        if loop is not self._loop:
            self._loop = loop
            self._locks = {}
            self._holders = {}

        lock = self._locks.get(class_id)
        if lock is None:
            lock = self._locks[class_id] = asyncio.Lock()
        self._holders[class_id] = self._holders.get(class_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._holders.get(class_id, 1) - 1
            if remaining > 0:
                self._holders[class_id] = remaining
            else:
                self._holders.pop(class_id, None)
                self._locks.pop(class_id, None)


class_locks = ClassLockRegistry()


class EnrollmentOutcome(str, Enum):
    """Outcome of an enrollment request."""

    ENROLLED = "ENROLLED"
    WAITLISTED = "WAITLISTED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class EnrollmentResult:
    outcome: EnrollmentOutcome
    record: Optional[EnrollmentRecord] = None
    offering: Optional[ScheduledClass] = None
    error: Optional[BookingError] = None

    @classmethod
    def rejected(cls, kind: BookingErrorKind, message: str) -> "EnrollmentResult":
        return cls(
            outcome=EnrollmentOutcome.REJECTED,
            error=BookingError(kind=kind, message=message),
        )

    @property
    def is_ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class CancellationSummary:
    record: EnrollmentRecord
    promoted: Optional[EnrollmentRecord]
    offering: ScheduledClass


@dataclass(frozen=True)
class ClassCancellationSummary:
    offering: ScheduledClass
    affected_user_ids: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class MyClassEntry:
    record: EnrollmentRecord
    offering: ScheduledClass
    starts_at: datetime


@dataclass(frozen=True)
class MyClasses:
    upcoming: List[MyClassEntry]
    past: List[MyClassEntry]


class EnrollmentCoordinator:
    """Owns every change to class capacity and waitlists.

    Each mutation runs as one transaction under the class lock: either the
    whole enroll / cancel / promote sequence commits or none of it does.
    """

    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[ScheduleCache] = schedule_cache,
        locks: ClassLockRegistry = class_locks,
    ):
        self.db = db
        self.cache = cache
        self.locks = locks

    async def request_enrollment(
        self,
        class_id: int,
        user_id: int,
        enrollment_type: str = "advance",
    ) -> EnrollmentResult:
        """Enroll a player, or put them on the waitlist when the class is full."""
        async with self.locks.hold(class_id):
            try:
                offering = await self._lock_offering(class_id)
                if offering is None:
                    await self.db.rollback()
                    return EnrollmentResult.rejected(
                        BookingErrorKind.CLASS_NOT_FOUND, "Class not found"
                    )
                if offering.status == ClassStatus.CANCELLED:
                    await self.db.rollback()
                    return EnrollmentResult.rejected(
                        BookingErrorKind.CLASS_CANCELLED, "Class has been cancelled"
                    )

                record = await self._find_record(class_id, user_id)
                if record is not None and record.is_active:
                    # Rollback expires loaded rows
                    state_label = record.state.value.lower()
                    await self.db.rollback()
                    return EnrollmentResult.rejected(
                        BookingErrorKind.ALREADY_ACTIVE,
                        f"User is already {state_label} for this class",
                    )

                if record is None:
                    record = EnrollmentRecord(
                        class_id=class_id,
                        user_id=user_id,
                        state=EnrollmentState.PENDING,
                        enrollment_type=enrollment_type,
                        payment_status="pending",
                    )
                    self.db.add(record)
                else:
                    # Re-booking after a cancellation reuses the row
                    record.state = EnrollmentState.PENDING
                    record.enrollment_type = enrollment_type
                    record.payment_status = "pending"

                if offering.is_bookable:
                    offering.current_enrollment += 1
                    record.state = EnrollmentState.ENROLLED
                    record.position = None
                    outcome = EnrollmentOutcome.ENROLLED
                    action, verb = "ENROLL", "enrolled in"
                else:
                    record.state = EnrollmentState.WAITLISTED
                    record.position = offering.waitlist_count + 1
                    offering.waitlist_count += 1
                    outcome = EnrollmentOutcome.WAITLISTED
                    action, verb = "WAITLIST", "waitlisted for"
                record.updated_at = now_utc()

                await log_audit(
                    db=self.db,
                    action_type=action,
                    entity_type="class",
                    entity_id=offering.id,
                    entity_name=offering.name,
                    description=f"User {user_id} {verb} '{offering.name}' on {offering.class_date}",
                    user_id=user_id,
                    changes={
                        "state": record.state.value,
                        "position": record.position,
                        "current_enrollment": offering.current_enrollment,
                        "waitlist_count": offering.waitlist_count,
                    },
                )
                await self.db.commit()

            except (IntegrityError, StaleDataError) as e:
                await self.db.rollback()
                logger.warning(
                    f"Enrollment conflict for user {user_id} in class {class_id}: {e}"
                )
                return EnrollmentResult.rejected(
                    BookingErrorKind.CONCURRENCY_CONFLICT,
                    "Enrollment changed concurrently, reload the class and try again",
                )
            except Exception as e:
                await self.db.rollback()
                logger.error(f"❌ Error enrolling user {user_id} in class {class_id}: {e}")
                raise

            self._invalidate(offering)

        await self.db.refresh(record)
        logger.info(
            f"✅ User {user_id} {outcome.value} in class {class_id} "
            f"({offering.current_enrollment}/{offering.max_participants}, "
            f"waitlist {offering.waitlist_count})"
        )
        return EnrollmentResult(outcome=outcome, record=record, offering=snapshot(offering))

    async def cancel(self, class_id: int, user_id: int) -> Result[CancellationSummary]:
        """Cancel a player's active record and promote the head of the waitlist.

        Cancelling an ENROLLED record frees a slot that goes to the
        lowest-position WAITLISTED player, so a non-empty waitlist leaves the
        enrollment count unchanged. Remaining positions are renumbered 1..n.
        """
        async with self.locks.hold(class_id):
            try:
                offering = await self._lock_offering(class_id)
                if offering is None:
                    await self.db.rollback()
                    return Result.fail(BookingErrorKind.CLASS_NOT_FOUND, "Class not found")

                record = await self._find_record(class_id, user_id)
                if record is None or not record.is_active:
                    await self.db.rollback()
                    return Result.fail(
                        BookingErrorKind.NOT_ENROLLED,
                        "User has no active enrollment for this class",
                    )

                previous_state = record.state
                previous_position = record.position
                record.state = EnrollmentState.CANCELLED
                record.position = None
                record.updated_at = now_utc()

                promoted = None
                if previous_state == EnrollmentState.ENROLLED:
                    offering.current_enrollment -= 1
                    promoted = await self._promote_next(offering)
                await self._renumber_waitlist(offering)

                await log_audit(
                    db=self.db,
                    action_type="UNENROLL",
                    entity_type="class",
                    entity_id=offering.id,
                    entity_name=offering.name,
                    description=(
                        f"User {user_id} cancelled {previous_state.value.lower()} "
                        f"booking for '{offering.name}' on {offering.class_date}"
                    ),
                    user_id=user_id,
                    changes={
                        "before": {"state": previous_state.value, "position": previous_position},
                        "after": {"state": EnrollmentState.CANCELLED.value},
                        "current_enrollment": offering.current_enrollment,
                        "waitlist_count": offering.waitlist_count,
                    },
                )
                if promoted is not None:
                    await log_audit(
                        db=self.db,
                        action_type="PROMOTE",
                        entity_type="class",
                        entity_id=offering.id,
                        entity_name=offering.name,
                        description=(
                            f"User {promoted.user_id} promoted from waitlist "
                            f"into '{offering.name}'"
                        ),
                        user_type="system",
                        user_id=promoted.user_id,
                        changes={"state": EnrollmentState.ENROLLED.value},
                    )

                await self.db.commit()

            except StaleDataError as e:
                await self.db.rollback()
                logger.warning(f"Cancellation conflict for user {user_id} in class {class_id}: {e}")
                return Result.fail(
                    BookingErrorKind.CONCURRENCY_CONFLICT,
                    "Class changed concurrently, reload it and try again",
                )
            except Exception as e:
                await self.db.rollback()
                logger.error(f"❌ Error cancelling user {user_id} in class {class_id}: {e}")
                raise

            self._invalidate(offering)

        if promoted is not None:
            logger.info(
                f"🔄 User {promoted.user_id} promoted from waitlist in class {class_id} "
                f"after user {user_id} cancelled"
            )
        logger.info(
            f"✅ User {user_id} cancelled {previous_state.value} booking in class {class_id} "
            f"({offering.current_enrollment}/{offering.max_participants}, "
            f"waitlist {offering.waitlist_count})"
        )
        return Result.ok(
            CancellationSummary(record=record, promoted=promoted, offering=snapshot(offering))
        )

    async def cancel_class(
        self, class_id: int, reason: str = "Cancelled by administrator", actor: str = "admin"
    ) -> Result[ClassCancellationSummary]:
        """Cancel a whole class and release every active record."""
        async with self.locks.hold(class_id):
            try:
                offering = await self._lock_offering(class_id)
                if offering is None:
                    await self.db.rollback()
                    return Result.fail(BookingErrorKind.CLASS_NOT_FOUND, "Class not found")
                if offering.status == ClassStatus.CANCELLED:
                    await self.db.rollback()
                    return Result.fail(
                        BookingErrorKind.CLASS_CANCELLED, "Class is already cancelled"
                    )

                affected = await self._release_class(offering, reason, actor)
                await self.db.commit()

            except StaleDataError as e:
                await self.db.rollback()
                logger.warning(f"Class {class_id} changed while cancelling: {e}")
                return Result.fail(
                    BookingErrorKind.CONCURRENCY_CONFLICT,
                    "Class changed concurrently, reload it and try again",
                )
            except Exception as e:
                await self.db.rollback()
                logger.error(f"❌ Error cancelling class {class_id}: {e}")
                raise

            self._invalidate(offering)

        logger.info(f"🚫 Class {class_id} cancelled ({reason}), {len(affected)} bookings released")
        return Result.ok(
            ClassCancellationSummary(offering=snapshot(offering), affected_user_ids=affected)
        )

    async def auto_cancel_underfilled(self, now: Optional[datetime] = None) -> List[int]:
        """Cancel scheduled classes that are still below minimum close to their start.

        A class is cancelled once its start is within ``auto_cancel_hours``
        and it has not reached ``min_participants``. Classes that already
        started are left alone.

        Returns:
            IDs of cancelled classes
        """
        if now is None:
            now = now_utc()
        today_local = now.astimezone(LOCAL_TZ).date()

        result = await self.db.execute(
            select(ClassOffering.id, ClassOffering.class_date, ClassOffering.start_time,
                   ClassOffering.auto_cancel_hours)
            .where(
                ClassOffering.status == ClassStatus.SCHEDULED,
                ClassOffering.auto_cancel_hours.is_not(None),
                ClassOffering.current_enrollment < ClassOffering.min_participants,
                ClassOffering.class_date >= today_local - timedelta(days=1),
            )
            .order_by(ClassOffering.class_date, ClassOffering.start_time)
        )
        candidates = result.all()
        # Release the read snapshot before taking class locks
        await self.db.rollback()

        cancelled: List[int] = []
        for class_id, class_date, start_time, auto_cancel_hours in candidates:
            starts_at = combine_date_time_to_utc(class_date, start_time)
            if starts_at <= now or starts_at - now > timedelta(hours=auto_cancel_hours):
                continue

            async with self.locks.hold(class_id):
                try:
                    offering = await self._lock_offering(class_id)
                    # Re-check under the lock, enrollments may have arrived meanwhile
                    if (
                        offering is None
                        or offering.status != ClassStatus.SCHEDULED
                        or offering.is_viable
                    ):
                        await self.db.rollback()
                        continue
                    reason = (
                        f"Minimum of {offering.min_participants} players not reached "
                        f"{auto_cancel_hours}h before start"
                    )
                    affected = await self._release_class(offering, reason, actor="system")
                    await self.db.commit()
                except StaleDataError as e:
                    # Booked elsewhere meanwhile; the next run re-checks it
                    await self.db.rollback()
                    logger.warning(f"Class {class_id} changed during auto-cancel: {e}")
                    continue
                except Exception as e:
                    await self.db.rollback()
                    logger.error(f"❌ Error auto-cancelling class {class_id}: {e}")
                    raise

                self._invalidate(offering)

            cancelled.append(class_id)
            logger.info(
                f"🚫 Auto-cancelled class {class_id} ({reason}), {len(affected)} bookings released"
            )

        if cancelled:
            logger.info(f"Auto-cancel run cancelled {len(cancelled)} classes")
        return cancelled

    async def find_active_record(self, class_id: int, user_id: int) -> Optional[EnrollmentRecord]:
        record = await self._find_record(class_id, user_id)
        if record is not None and record.is_active:
            return record
        return None

    async def my_classes(
        self,
        user_id: int,
        now: Optional[datetime] = None,
        upcoming: Optional[bool] = None,
    ) -> MyClasses:
        """Get a player's active bookings split into upcoming and past.

        Args:
            user_id: Player ID
            now: Reference time (defaults to current UTC time)
            upcoming: True - only upcoming, False - only past, None - both

        Returns:
            Upcoming classes soonest first, past classes most recent first
        """
        if now is None:
            now = now_utc()

        result = await self.db.execute(
            select(EnrollmentRecord, ClassOffering)
            .join(ClassOffering, ClassOffering.id == EnrollmentRecord.class_id)
            .where(
                EnrollmentRecord.user_id == user_id,
                EnrollmentRecord.state.in_(ACTIVE_STATES),
            )
            .order_by(ClassOffering.class_date, ClassOffering.start_time, ClassOffering.id)
            .execution_options(populate_existing=True)
        )

        upcoming_entries: List[MyClassEntry] = []
        past_entries: List[MyClassEntry] = []
        for record, offering in result.all():
            starts_at = combine_date_time_to_utc(offering.class_date, offering.start_time)
            entry = MyClassEntry(record=record, offering=snapshot(offering), starts_at=starts_at)
            if starts_at > now:
                upcoming_entries.append(entry)
            else:
                past_entries.append(entry)

        past_entries.reverse()
        if upcoming is True:
            past_entries = []
        elif upcoming is False:
            upcoming_entries = []
        return MyClasses(upcoming=upcoming_entries, past=past_entries)

    async def _lock_offering(self, class_id: int) -> Optional[ClassOffering]:
        result = await self.db.execute(
            select(ClassOffering)
            .where(ClassOffering.id == class_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _find_record(self, class_id: int, user_id: int) -> Optional[EnrollmentRecord]:
        result = await self.db.execute(
            select(EnrollmentRecord)
            .where(
                EnrollmentRecord.class_id == class_id,
                EnrollmentRecord.user_id == user_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _waitlisted(self, class_id: int) -> List[EnrollmentRecord]:
        result = await self.db.execute(
            select(EnrollmentRecord)
            .where(
                EnrollmentRecord.class_id == class_id,
                EnrollmentRecord.state == EnrollmentState.WAITLISTED,
            )
            .order_by(EnrollmentRecord.position, EnrollmentRecord.id)
            .execution_options(populate_existing=True)
        )
        return [r for r in result.scalars().all() if r.state == EnrollmentState.WAITLISTED]

    async def _promote_next(self, offering: ClassOffering) -> Optional[EnrollmentRecord]:
        if offering.current_enrollment >= offering.max_participants:
            return None
        waiting = await self._waitlisted(offering.id)
        if not waiting:
            return None
        head = waiting[0]
        head.state = EnrollmentState.ENROLLED
        head.position = None
        head.updated_at = now_utc()
        offering.current_enrollment += 1
        return head

    async def _renumber_waitlist(self, offering: ClassOffering) -> None:
        """Keep waitlist positions gapless (1..n) in FIFO order."""
        waiting = await self._waitlisted(offering.id)
        for position, record in enumerate(waiting, start=1):
            if record.position != position:
                record.position = position
                record.updated_at = now_utc()
        offering.waitlist_count = len(waiting)

    async def _release_class(self, offering: ClassOffering, reason: str, actor: str) -> List[int]:
        result = await self.db.execute(
            select(EnrollmentRecord)
            .where(
                EnrollmentRecord.class_id == offering.id,
                EnrollmentRecord.state.in_(ACTIVE_STATES),
            )
            .execution_options(populate_existing=True)
        )
        records = result.scalars().all()
        released_at = now_utc()
        for record in records:
            record.state = EnrollmentState.CANCELLED
            record.position = None
            record.updated_at = released_at

        before = {
            "status": offering.status.value,
            "current_enrollment": offering.current_enrollment,
            "waitlist_count": offering.waitlist_count,
        }
        offering.status = ClassStatus.CANCELLED
        offering.current_enrollment = 0
        offering.waitlist_count = 0

        affected = [record.user_id for record in records]
        await log_audit(
            db=self.db,
            action_type="CANCEL_CLASS",
            entity_type="class",
            entity_id=offering.id,
            entity_name=offering.name,
            description=f"Class '{offering.name}' on {offering.class_date} cancelled: {reason}",
            user_type=actor,
            changes={"before": before, "affected_user_ids": affected, "reason": reason},
        )
        return affected

    def _invalidate(self, offering: ClassOffering) -> None:
        if self.cache is not None:
            self.cache.invalidate_class(offering.facility_id, offering.class_date)
