from datetime import timedelta

from pickleplus.models import ClassOffering, ClassStatus
from pickleplus.utils.timezone import LOCAL_TZ, now_utc
from pickleplus.workers.booking_scheduler import BookingScheduler


async def test_run_auto_cancel_cancels_underfilled_class(session_factory, make_class):
    starts = (now_utc() + timedelta(hours=2)).astimezone(LOCAL_TZ).replace(second=0, microsecond=0)
    offering = await make_class(
        class_date=starts.date(),
        start_time=starts.time(),
        end_time=starts.time(),
        min_participants=4,
    )

    cancelled = await BookingScheduler(session_factory=session_factory).run_auto_cancel()

    assert cancelled == [offering.id]
    async with session_factory() as session:
        reloaded = await session.get(ClassOffering, offering.id)
    assert reloaded.status == ClassStatus.CANCELLED


async def test_run_auto_cancel_survives_errors():
    def broken_factory():
        raise RuntimeError("database unavailable")

    assert await BookingScheduler(session_factory=broken_factory).run_auto_cancel() == []


async def test_start_registers_job_and_stop_shuts_down():
    scheduler = BookingScheduler()

    await scheduler.start()
    try:
        assert scheduler.is_running
        assert scheduler.scheduler.get_job("auto_cancel_underfilled") is not None
    finally:
        await scheduler.stop()

    assert not scheduler.is_running
