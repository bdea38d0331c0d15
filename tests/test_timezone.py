from datetime import date, datetime, time, timedelta, timezone

import pytest

from pickleplus.utils.timezone import combine_date_time_to_utc, shift_week, week_days, week_start

SUNDAY = 6
MONDAY = 0


@pytest.mark.parametrize("offset", range(7))
def test_every_day_of_a_week_maps_to_the_same_start(offset):
    anchor = date(2025, 3, 9) + timedelta(days=offset)

    assert week_start(anchor, SUNDAY) == date(2025, 3, 9)


def test_week_start_is_idempotent():
    start = week_start(date(2025, 3, 12), SUNDAY)

    assert week_start(start, SUNDAY) == start


def test_monday_weeks():
    assert week_start(date(2025, 3, 9), MONDAY) == date(2025, 3, 3)
    assert week_start(date(2025, 3, 10), MONDAY) == date(2025, 3, 10)


def test_week_start_accepts_datetimes():
    assert week_start(datetime(2025, 3, 12, 23, 30), SUNDAY) == date(2025, 3, 9)


def test_default_first_day_is_sunday():
    assert week_start(date(2025, 3, 12)) == date(2025, 3, 9)


def test_shift_week_moves_by_whole_weeks():
    anchor = date(2025, 3, 12)

    assert shift_week(anchor, 1, SUNDAY) == date(2025, 3, 16)
    assert shift_week(anchor, -1, SUNDAY) == date(2025, 3, 2)
    assert shift_week(anchor, 0, SUNDAY) == date(2025, 3, 9)


def test_shift_week_round_trip_across_year_end():
    anchor = date(2024, 12, 31)

    assert shift_week(shift_week(anchor, 1, SUNDAY), -1, SUNDAY) == week_start(anchor, SUNDAY)
    assert shift_week(anchor, 1, SUNDAY) == date(2025, 1, 5)


def test_week_days_covers_seven_consecutive_dates():
    days = week_days(date(2025, 3, 9))

    assert len(days) == 7
    assert days[0] == date(2025, 3, 9)
    assert days[-1] == date(2025, 3, 15)


def test_local_class_time_converts_to_utc():
    # Asia/Singapore is UTC+8 all year
    assert combine_date_time_to_utc(date(2025, 3, 12), time(18, 0)) == datetime(
        2025, 3, 12, 10, 0, tzinfo=timezone.utc
    )
