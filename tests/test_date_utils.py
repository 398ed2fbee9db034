import sys
from datetime import date, datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.date_utils import (
    coerce_date,
    days_between,
    factory_today,
    is_late_for_cutoff,
    parse_cutoff,
)


def test_factory_today_uses_local_calendar_day():
    # 19:30 UTC is already 01:30 the next day in Dhaka (UTC+6).
    now = datetime(2025, 3, 9, 19, 30, tzinfo=timezone.utc)

    assert factory_today("Asia/Dhaka", now=now) == date(2025, 3, 10)
    assert factory_today("UTC", now=now) == date(2025, 3, 9)


def test_factory_today_falls_back_to_utc_for_unknown_zone():
    now = datetime(2025, 3, 9, 19, 30, tzinfo=timezone.utc)

    assert factory_today("Mars/Olympus", now=now) == date(2025, 3, 9)


def test_coerce_date_accepts_common_shapes():
    assert coerce_date("2025-03-10") == date(2025, 3, 10)
    assert coerce_date("2025-03-10T08:00:00+00:00") == date(2025, 3, 10)
    assert coerce_date(datetime(2025, 3, 10, 8)) == date(2025, 3, 10)
    assert coerce_date(date(2025, 3, 10)) == date(2025, 3, 10)
    assert coerce_date("") is None
    assert coerce_date("soon") is None
    assert coerce_date(None) is None


def test_days_between_is_negative_for_past_dates():
    assert days_between(date(2025, 3, 5), date(2025, 3, 10)) == -5


def test_parse_cutoff():
    assert parse_cutoff("18:30") is not None
    assert parse_cutoff("18:30:00").hour == 18
    assert parse_cutoff("late") is None
    assert parse_cutoff(None) is None


def test_is_late_for_cutoff_in_factory_time():
    # 12:45 UTC is 18:45 in Dhaka.
    now = datetime(2025, 3, 10, 12, 45, tzinfo=timezone.utc)

    assert is_late_for_cutoff("18:30", "Asia/Dhaka", now=now) is True
    assert is_late_for_cutoff("19:00:00", "Asia/Dhaka", now=now) is False
    assert is_late_for_cutoff(None, "Asia/Dhaka", now=now) is False
