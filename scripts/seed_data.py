"""Seed database with sample facilities and two weeks of classes."""

import asyncio
import sys
from datetime import time, timedelta
from decimal import Decimal

sys.path.append(".")

from pickleplus.core.database import AsyncSessionLocal, init_db
from pickleplus.models import ClassOffering, ClassStatus, Facility
from pickleplus.utils.timezone import LOCAL_TZ, now_utc, week_start

# (weekday offset from week start, start, end, name, skill level, min, max, court)
WEEKLY_TEMPLATE = [
    (0, time(9, 0), time(10, 30), "Sunday Social Play", "beginner", 4, 8, 1),
    (1, time(7, 0), time(8, 0), "Early Bird Drills", "intermediate", 3, 6, 2),
    (1, time(19, 0), time(20, 30), "Beginner Fundamentals", "beginner", 4, 6, 1),
    (3, time(18, 30), time(20, 0), "Dinking & Third Shot Clinic", "intermediate", 4, 6, 2),
    (5, time(19, 0), time(21, 0), "Advanced Match Play", "advanced", 4, 8, 3),
    (6, time(10, 0), time(11, 30), "Weekend Round Robin", "beginner", 6, 12, 1),
]


async def seed_data():
    """Seed database with sample data."""
    await init_db()

    async with AsyncSessionLocal() as db:
        # Create facilities
        facilities = [
            Facility(
                name="Pickle+ Kallang",
                address="1 Stadium Place, Singapore 397628",
                city="Singapore",
                access_code="TC001-SG",
            ),
            Facility(
                name="Pickle+ Tampines Hub",
                address="1 Tampines Walk, Singapore 528523",
                city="Singapore",
                access_code="TC002-SG",
            ),
        ]

        for facility in facilities:
            db.add(facility)

        await db.commit()

        # Create classes for the current and the next week
        first_week = week_start(now_utc().astimezone(LOCAL_TZ).date())
        offerings = []
        for facility in facilities:
            for week in range(2):
                start = first_week + timedelta(days=7 * week)
                for offset, start_time, end_time, name, level, minimum, maximum, court in WEEKLY_TEMPLATE:
                    offerings.append(
                        ClassOffering(
                            facility_id=facility.id,
                            name=name,
                            class_date=start + timedelta(days=offset),
                            start_time=start_time,
                            end_time=end_time,
                            skill_level=level,
                            min_participants=minimum,
                            max_participants=maximum,
                            price=Decimal("25.00"),
                            coach_name="Coach Lim",
                            court_number=court,
                            status=ClassStatus.SCHEDULED,
                        )
                    )

        for offering in offerings:
            db.add(offering)

        await db.commit()

        print("✅ Sample data seeded successfully!")
        print(f"Created:")
        print(f"  - {len(facilities)} facilities")
        print(f"  - {len(offerings)} class offerings")


if __name__ == "__main__":
    asyncio.run(seed_data())
