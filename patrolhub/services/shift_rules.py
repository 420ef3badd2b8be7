"""
Shift and calendar rules.
Computes the active shift window, the operational date, and normalizes
time-of-day cells to HH:mm. All wall-clock reasoning happens in the site
timezone (TZ_DEFAULT).
"""
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Optional

import pytz
from pydantic import BaseModel

from ..config import settings

EIGHT_HOURS_MIN = 8 * 60
DAY_MIN = 24 * 60
SHIFT_LOOKAHEAD_MIN = 30
OPERATIONAL_DAY_CUTOFF = time(5, 30)

_HHMM = re.compile(r"^\s*(\d{1,2})[:.h](\d{2})(?::\d{2})?\s*$")


class ShiftInfo(BaseModel):
    shift_number: Optional[int] = None
    timing: str
    start: str
    end: str


def site_tz(timezone_str: Optional[str] = None):
    return pytz.timezone(timezone_str or settings.tz_default)


def coerce_datetime(value: Any, timezone_str: Optional[str] = None) -> Optional[datetime]:
    """
    Convert a cell value to a timezone-aware datetime.

    Args:
        value: datetime, date, or ISO-8601 string
        timezone_str: Timezone applied to naive values (default TZ_DEFAULT)

    Returns:
        Aware datetime, or None when the value is blank or unparseable
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time())
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = site_tz(timezone_str).localize(dt)
    return dt


def to_local(dt: datetime, timezone_str: Optional[str] = None) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(site_tz(timezone_str))


def is_same_day(time1: datetime, time2: datetime, timezone_str: Optional[str] = None) -> bool:
    """
    Check if two times are on the same calendar day in the given timezone.

    Args:
        time1: First time (naive values are treated as UTC)
        time2: Second time (naive values are treated as UTC)
        timezone_str: Timezone string to use for day comparison

    Returns:
        True if both times are on the same day
    """
    return to_local(time1, timezone_str).date() == to_local(time2, timezone_str).date()


def operational_date(ts: datetime, timezone_str: Optional[str] = None) -> date:
    """Night shift entries before 05:30 count toward the previous day."""
    local = to_local(ts, timezone_str)
    if local.time() < OPERATIONAL_DAY_CUTOFF:
        return (local - timedelta(days=1)).date()
    return local.date()


def format_hhmm(value: Any) -> Optional[str]:
    """Normalize a time-of-day cell (time, datetime, "6:00", "06:00:00") to "HH:mm"."""
    if value is None or value == "":
        return None
    if isinstance(value, (datetime, time)):
        return f"{value.hour:02d}:{value.minute:02d}"
    match = _HHMM.match(str(value))
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def _minutes(hhmm: str) -> int:
    hour, minute = hhmm.split(":")
    return int(hour) * 60 + int(minute)


def _hhmm(minutes: int) -> str:
    minutes %= DAY_MIN
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def baseline_shift(now: datetime, timezone_str: Optional[str] = None) -> ShiftInfo:
    hour = to_local(now, timezone_str).hour
    if 6 <= hour < 14:
        return ShiftInfo(shift_number=1, timing="06:00-14:00", start="06:00", end="14:00")
    if 14 <= hour < 22:
        return ShiftInfo(shift_number=2, timing="14:00-22:00", start="14:00", end="22:00")
    return ShiftInfo(shift_number=3, timing="22:00-06:00", start="22:00", end="06:00")


def eight_hour_shift(now: datetime, shift_start: str, timezone_str: Optional[str] = None) -> ShiftInfo:
    """
    Rotating 8-hour window anchored at the site's configured start.

    A guard arriving up to 30 minutes early is placed in the upcoming window.
    Shift numbers follow the baseline only when the anchor is 06:00; other
    anchors yield the window without a number.
    """
    local = to_local(now, timezone_str) + timedelta(minutes=SHIFT_LOOKAHEAD_MIN)
    base = _minutes(shift_start)
    elapsed = (local.hour * 60 + local.minute - base) % DAY_MIN
    slot = elapsed // EIGHT_HOURS_MIN
    start = base + slot * EIGHT_HOURS_MIN
    start_s, end_s = _hhmm(start), _hhmm(start + EIGHT_HOURS_MIN)
    number = slot + 1 if base == 6 * 60 else None
    return ShiftInfo(shift_number=number, timing=f"{start_s}-{end_s}", start=start_s, end=end_s)


def current_shift(now: datetime, shift_type: Optional[str] = None, shift_start: Optional[str] = None,
                  timezone_str: Optional[str] = None) -> ShiftInfo:
    start = format_hhmm(shift_start)
    if (shift_type or "").strip().lower() == "8h" and start:
        return eight_hour_shift(now, start, timezone_str)
    return baseline_shift(now, timezone_str)
