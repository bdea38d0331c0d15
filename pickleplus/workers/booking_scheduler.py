"""
Background scheduler for booking housekeeping.

Runs as its own process:

    python -m pickleplus.workers.booking_scheduler
"""

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from pickleplus.core.database import AsyncSessionLocal
from pickleplus.core.settings import settings
from pickleplus.services.enrollment_coordinator import EnrollmentCoordinator
from pickleplus.utils.timezone import LOCAL_TZ

logger = logging.getLogger(__name__)


class BookingScheduler:
    """Periodic jobs that act on class offerings."""

    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory
        self.scheduler = AsyncIOScheduler(timezone=LOCAL_TZ)
        self.is_running = False

    async def start(self):
        """Start the scheduler."""

        if self.is_running:
            logger.warning("Booking scheduler is already running")
            return

        self.scheduler.add_job(
            self.run_auto_cancel,
            IntervalTrigger(minutes=settings.auto_cancel_check_minutes),
            id="auto_cancel_underfilled",
            name="Cancel classes still below minimum close to start",
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        self.is_running = True

        logger.info(
            f"✅ Booking scheduler started, auto-cancel check every "
            f"{settings.auto_cancel_check_minutes} min"
        )

    async def stop(self):
        """Stop the scheduler."""

        if not self.is_running:
            return

        self.scheduler.shutdown()
        self.is_running = False

        logger.info("Booking scheduler stopped")

    async def run_auto_cancel(self) -> list[int]:
        """One auto-cancel pass; errors are logged so the next run still happens."""
        try:
            async with self.session_factory() as db:
                cancelled = await EnrollmentCoordinator(db).auto_cancel_underfilled()
        except Exception as e:
            logger.exception(f"❌ Auto-cancel run failed: {e}")
            return []

        if cancelled:
            logger.info(f"🚫 Auto-cancelled classes: {cancelled}")
        return cancelled


# Global scheduler instance
scheduler = BookingScheduler()


async def main():
    """Run the booking scheduler until interrupted."""
    await scheduler.start()
    # First pass right away instead of waiting a full interval
    await scheduler.run_auto_cancel()

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Received stop signal")
    finally:
        await scheduler.stop()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    asyncio.run(main())
