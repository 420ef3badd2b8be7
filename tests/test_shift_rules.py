from datetime import date, datetime, time

import pytest

from patrolhub.services.shift_rules import (
    coerce_datetime,
    current_shift,
    format_hhmm,
    is_same_day,
    operational_date,
)

from conftest import local


@pytest.mark.parametrize(
    "hour,minute,number,timing",
    [
        (5, 59, 3, "22:00-06:00"),
        (6, 0, 1, "06:00-14:00"),
        (13, 59, 1, "06:00-14:00"),
        (14, 0, 2, "14:00-22:00"),
        (21, 59, 2, "14:00-22:00"),
        (22, 0, 3, "22:00-06:00"),
    ],
)
def test_baseline_shifts(hour, minute, number, timing):
    shift = current_shift(local(2026, 3, 10, hour, minute))
    assert shift.shift_number == number
    assert shift.timing == timing


def test_eight_hour_shift_looks_ahead_thirty_minutes():
    early = current_shift(local(2026, 3, 10, 5, 45), "8h", "06:00")
    assert (early.shift_number, early.timing) == (1, "06:00-14:00")

    before_handover = current_shift(local(2026, 3, 10, 13, 29), "8h", "06:00")
    assert (before_handover.shift_number, before_handover.timing) == (1, "06:00-14:00")

    handover = current_shift(local(2026, 3, 10, 13, 30), "8h", "06:00")
    assert (handover.shift_number, handover.timing) == (2, "14:00-22:00")

    night = current_shift(local(2026, 3, 10, 21, 40), "8h", "06:00")
    assert (night.shift_number, night.timing) == (3, "22:00-06:00")


def test_eight_hour_shift_with_other_anchor_has_no_number():
    shift = current_shift(local(2026, 3, 10, 8, 0), "8h", "07:00")
    assert shift.shift_number is None
    assert shift.timing == "07:00-15:00"

    late = current_shift(local(2026, 3, 10, 23, 50), "8h", "07:00")
    assert late.timing == "23:00-07:00"


def test_eight_hour_without_start_uses_baseline():
    shift = current_shift(local(2026, 3, 10, 15, 0), "8h", None)
    assert shift.shift_number == 2


def test_operational_date_cutoff():
    assert operational_date(local(2026, 3, 10, 5, 29)) == date(2026, 3, 9)
    assert operational_date(local(2026, 3, 10, 5, 30)) == date(2026, 3, 10)
    assert operational_date(local(2026, 3, 10, 0, 10)) == date(2026, 3, 9)


def test_same_day_uses_site_timezone():
    assert is_same_day(local(2026, 3, 10, 0, 5), local(2026, 3, 10, 23, 55))
    assert not is_same_day(local(2026, 3, 10, 23, 55), local(2026, 3, 11, 0, 5))


@pytest.mark.parametrize(
    "value,expected",
    [
        ("6:00", "06:00"),
        ("06:00:00", "06:00"),
        (time(18, 5), "18:05"),
        (datetime(1899, 12, 30, 14, 0), "14:00"),
        ("25:00", None),
        ("abc", None),
        ("", None),
    ],
)
def test_format_hhmm(value, expected):
    assert format_hhmm(value) == expected


def test_coerce_datetime():
    assert coerce_datetime("2026-03-10T09:15:00+07:00") == local(2026, 3, 10, 9, 15)
    assert coerce_datetime("2026-03-10T09:15:00") == local(2026, 3, 10, 9, 15)
    assert coerce_datetime("not a date") is None
    assert coerce_datetime("") is None
