"""
Time rules and reductions over time logs.
Handles date/time parsing, UTC normalization, and the two ways of reducing
a job's logs: payroll minutes (sum of closed logs) and the display window
(earliest start, latest stop).
"""
import math
import re
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Tuple, Union

import pytz

from ..errors import ValidationError


_HM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to timezone-aware UTC.
    Naive values (as returned by SQLite) are taken to be UTC already.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(pytz.UTC)


def today_local(timezone_str: str) -> date:
    """Current calendar date in the given timezone."""
    try:
        tz = pytz.timezone(timezone_str)
    except pytz.UnknownTimeZoneError:
        tz = pytz.UTC
    return utc_now().astimezone(tz).date()


def day_bounds_utc(date_from: date, date_to: date) -> Tuple[datetime, datetime]:
    """[date_from 00:00:00, date_to 23:59:59.999999] in UTC."""
    start = pytz.UTC.localize(datetime.combine(date_from, time.min))
    end = pytz.UTC.localize(datetime.combine(date_to, time.max))
    return start, end


def parse_date(value: Union[str, date, None], field: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required (YYYY-MM-DD)")
    s = value.strip()
    if not _DATE_RE.match(s):
        raise ValidationError(f"{field} must be YYYY-MM-DD")
    try:
        return date.fromisoformat(s)
    except ValueError:
        raise ValidationError(f"{field} must be a valid date (YYYY-MM-DD)")


def parse_time(value: Union[str, time, None], field: str = "time") -> Optional[time]:
    """
    Parse a time of day. Accepts HH:MM or HH:MM:SS.
    Empty values mean "no time" and return None.
    """
    if value is None:
        return None
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be HH:MM")
    s = value.strip()
    if not s:
        return None
    if not re.match(r"^\d{2}:\d{2}(:\d{2})?$", s):
        raise ValidationError(f"{field} must be HH:MM")
    try:
        return time.fromisoformat(s)
    except ValueError:
        raise ValidationError(f"{field} must be a valid time of day")


def parse_hm(value: str) -> int:
    """
    Parse "H:MM" into minutes.
    Hours 0..23, minutes 0..59.
    """
    m = _HM_RE.match(str(value or "").strip())
    if not m:
        raise ValidationError('Duration must look like "3:15"')
    hh, mm = int(m.group(1)), int(m.group(2))
    if hh > 23 or mm > 59:
        raise ValidationError('Duration must look like "3:15"')
    return hh * 60 + mm


def add_minutes_to_time(start: Optional[time], minutes: Optional[int]) -> Optional[time]:
    """Clock time `minutes` after `start`, wrapping at midnight."""
    if start is None or minutes is None:
        return None
    total = (start.hour * 60 + start.minute + max(0, int(minutes))) % 1440
    return time(total // 60, total % 60)


def minutes_between(started_at: Optional[datetime], stopped_at: Optional[datetime]) -> int:
    """
    Whole minutes between two instants, rounded half up.
    Missing ends and negative spans count as zero.
    """
    if started_at is None or stopped_at is None:
        return 0
    diff = (as_utc(stopped_at) - as_utc(started_at)).total_seconds()
    if diff <= 0:
        return 0
    return int(math.floor(diff / 60 + 0.5))


def payroll_minutes(logs: Iterable) -> int:
    """Sum of closed log durations for one job."""
    return sum(minutes_between(log.started_at, log.stopped_at) for log in logs)


def display_window(logs: Iterable) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Earliest start and latest stop across a job's logs."""
    started = None
    stopped = None
    for log in logs:
        s = as_utc(log.started_at)
        e = as_utc(log.stopped_at)
        if s is not None and (started is None or s < started):
            started = s
        if e is not None and (stopped is None or e > stopped):
            stopped = e
    return started, stopped


def iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return value.isoformat()


def hhmm(value: Optional[time]) -> Optional[str]:
    return value.strftime("%H:%M") if value is not None else None


def shift_days(value: date, days: int) -> date:
    return value + timedelta(days=days)
