# File: utils/dt_utils.py
"""Date and time utilities for taskcycle.

Pure Python date/time functions. All values are naive local wall-clock
datetimes; time zones are not modelled.
Uses the standard library plus dateutil for calendar arithmetic.

Weekday indices follow the stored data format: 0=Sunday ... 6=Saturday.

Functions:
    - dt_today_local: Get today's date
    - dt_now_local: Get current datetime
    - dt_parse: Normalize datetime inputs (ISO strings, dates, datetimes)
    - dt_parse_date: Parse date inputs
    - dt_parse_time: Parse "HH:MM" time strings
    - dt_format_time: Format a time as "HH:MM"
    - as_date: Reduce a date/datetime to its calendar day
    - start_of_day / dt_combine: Build datetimes from days and times
    - weekday_index / is_weekend / skip_weekend: Sunday-based weekday helpers
    - clamp_day / month_index: Month-length clamping arithmetic
    - dt_add_interval: Add day/week/month/year intervals with clamping
    - dt_format_duration: Bucket a duration into a compact display string
    - dt_time_until / dt_time_since: Symmetric countdown/elapsed strings
    - dt_format_interval_days: Compact display of an average interval
"""

from __future__ import annotations

from calendar import monthrange
from datetime import date, datetime, time, timedelta
import logging

# Third-party date utilities
from dateutil.relativedelta import relativedelta

# Module-level logger
_LOGGER = logging.getLogger(__name__)

# ==============================================================================
# Constants (local copies to avoid circular imports)
# These mirror const.py values but are defined locally for purity.
# ==============================================================================

TIME_UNIT_DAYS = "days"
TIME_UNIT_WEEKS = "weeks"
TIME_UNIT_MONTHS = "months"
TIME_UNIT_YEARS = "years"

DISPLAY_NO_VALUE = "—"

# Duration bucket thresholds (seconds)
_SECONDS_PER_MINUTE = 60
_SECONDS_PER_HOUR = 3600
_SECONDS_PER_DAY = 86400
_DAYS_PER_WEEK = 7
_DAYS_PER_MONTH = 30
_DAYS_PER_YEAR = 365


# ==============================================================================
# Current Time
# ==============================================================================


def dt_today_local() -> date:
    """Return today's date."""
    return datetime.now().date()


def dt_now_local() -> datetime:
    """Return the current local wall-clock datetime (naive)."""
    return datetime.now()


# ==============================================================================
# Parsing
# ==============================================================================


def dt_parse(value: str | date | datetime | None) -> datetime | None:
    """Normalize a datetime input.

    Accepts ISO-8601 strings (with or without fractional seconds), datetimes,
    and plain dates (promoted to midnight). Aware datetimes are converted to
    local wall-clock time and made naive.

    Args:
        value: Value to normalize, or None

    Returns:
        Naive datetime, or None if the input is empty or unparseable.

    Examples:
        dt_parse("2026-03-01T08:30:00.000") → datetime(2026, 3, 1, 8, 30)
        dt_parse(date(2026, 3, 1)) → datetime(2026, 3, 1, 0, 0)
        dt_parse("not a date") → None
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, time())
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            _LOGGER.debug("dt_parse: unable to parse '%s'", value)
            return None
    else:
        _LOGGER.debug("dt_parse: unsupported input type %s", type(value))
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def dt_parse_date(value: str | date | datetime | None) -> date | None:
    """Parse a date input, discarding any time component.

    Args:
        value: "YYYY-MM-DD" or full ISO datetime string, date, datetime, or None

    Returns:
        date object, or None if the input is empty or unparseable.

    Examples:
        dt_parse_date("2026-03-01") → date(2026, 3, 1)
        dt_parse_date("2026-03-01T00:00:00.000") → date(2026, 3, 1)
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            parsed = dt_parse(value)
            return parsed.date() if parsed else None
    return None


def dt_parse_time(value: str | time | None) -> time | None:
    """Parse an "HH:MM" (or "HH:MM:SS") time string.

    Returns:
        time object, or None if the input is empty or unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(value.strip())
    except (ValueError, AttributeError):
        _LOGGER.debug("dt_parse_time: unable to parse '%s'", value)
        return None


def dt_format_time(value: time | None) -> str | None:
    """Format a time as "HH:MM" (None passes through)."""
    if value is None:
        return None
    return f"{value.hour:02d}:{value.minute:02d}"


def dt_format_iso(value: date | datetime | None) -> str | None:
    """Format a date or datetime as an ISO-8601 string (None passes through)."""
    if value is None:
        return None
    return value.isoformat()


# ==============================================================================
# Calendar Day Helpers
# ==============================================================================


def as_date(value: date | datetime) -> date:
    """Reduce a date or datetime to its calendar day.

    datetime is a subclass of date, so the datetime check must come first.
    """
    if isinstance(value, datetime):
        return value.date()
    return value


def start_of_day(value: date | datetime) -> datetime:
    """Return midnight at the start of the given calendar day."""
    return datetime.combine(as_date(value), time())


def dt_combine(
    day: date, at: time | None, default_time: time | None = None
) -> datetime:
    """Combine a calendar day with a time of day.

    Args:
        day: Calendar day
        at: Explicit time of day, or None
        default_time: Time used when `at` is None (midnight if also None)

    Returns:
        Naive datetime
    """
    chosen = at if at is not None else (default_time or time())
    return datetime.combine(day, chosen)


def weekday_index(day: date | datetime) -> int:
    """Return the Sunday-based weekday index (0=Sunday ... 6=Saturday)."""
    return as_date(day).isoweekday() % 7


def is_weekend(day: date | datetime) -> bool:
    """Return True for Saturday and Sunday."""
    return weekday_index(day) in (0, 6)


def skip_weekend(day: date) -> date:
    """Advance a Saturday or Sunday to the following Monday."""
    index = weekday_index(day)
    if index == 6:
        return day + timedelta(days=2)
    if index == 0:
        return day + timedelta(days=1)
    return day


def days_in_month(year: int, month: int) -> int:
    """Return the number of days in a month."""
    return monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, clamping the day to the month length.

    Examples:
        clamp_day(2026, 2, 31) → date(2026, 2, 28)
        clamp_day(2028, 2, 29) → date(2028, 2, 29)
    """
    return date(year, month, min(day, days_in_month(year, month)))


def month_index(day: date) -> int:
    """Return a monotonically increasing month counter (year*12 + month-1)."""
    return day.year * 12 + day.month - 1


def dt_add_interval(base: date, interval: int, unit: str) -> date:
    """Add a calendar interval to a date.

    Month and year steps use relativedelta so month ends clamp instead of
    overflowing (Jan 31 + 1 month = Feb 28).

    Args:
        base: Starting date
        interval: Number of units to add
        unit: One of "days", "weeks", "months", "years"

    Returns:
        New date

    Raises:
        ValueError: If the unit is unknown.
    """
    if unit == TIME_UNIT_DAYS:
        return base + timedelta(days=interval)
    if unit == TIME_UNIT_WEEKS:
        return base + timedelta(weeks=interval)
    if unit == TIME_UNIT_MONTHS:
        return base + relativedelta(months=interval)
    if unit == TIME_UNIT_YEARS:
        return base + relativedelta(years=interval)
    raise ValueError(f"Unsupported interval unit: {unit}")


# ==============================================================================
# Duration Formatting
# ==============================================================================


def _pair(major: int, major_suffix: str, minor: int, minor_suffix: str) -> str:
    """Join a major/minor unit pair, omitting a zero minor part."""
    if minor:
        return f"{major}{major_suffix} {minor}{minor_suffix}"
    return f"{major}{major_suffix}"


def dt_format_duration(td: timedelta | None) -> str:
    """Bucket a duration into a compact human-readable string.

    Thresholds: under 1h shows minutes; under 24h hours+minutes; under 7d
    days+hours; under 30d weeks+days; under 365d months; otherwise years.
    The sign is ignored so countdowns and elapsed times format identically.

    Args:
        td: Duration to format, or None

    Returns:
        Formatted string, e.g. "45m", "3h 5m", "1d 1h", "2w 3d", "4mo", "2y".

    Examples:
        dt_format_duration(timedelta(hours=25)) → "1d 1h"
        dt_format_duration(timedelta(days=14)) → "2w"
        dt_format_duration(None) → "0m"
    """
    if td is None:
        return "0m"

    total_seconds = abs(int(td.total_seconds()))

    if total_seconds < _SECONDS_PER_HOUR:
        return f"{total_seconds // _SECONDS_PER_MINUTE}m"

    if total_seconds < _SECONDS_PER_DAY:
        hours, remainder = divmod(total_seconds, _SECONDS_PER_HOUR)
        return _pair(hours, "h", remainder // _SECONDS_PER_MINUTE, "m")

    days, remainder = divmod(total_seconds, _SECONDS_PER_DAY)
    if days < _DAYS_PER_WEEK:
        return _pair(days, "d", remainder // _SECONDS_PER_HOUR, "h")

    if days < _DAYS_PER_MONTH:
        weeks, rest_days = divmod(days, _DAYS_PER_WEEK)
        return _pair(weeks, "w", rest_days, "d")

    if days < _DAYS_PER_YEAR:
        return f"{days // _DAYS_PER_MONTH}mo"

    return f"{days // _DAYS_PER_YEAR}y"


def dt_time_until(target_dt: datetime | None, now: datetime | None = None) -> str | None:
    """Format the time remaining until a target datetime.

    Returns:
        Formatted duration, or None if the target is missing or already past.

    Examples:
        dt_time_until(now + timedelta(hours=2, minutes=30), now) → "2h 30m"
    """
    if target_dt is None:
        return None
    current = now or dt_now_local()
    if current >= target_dt:
        return None
    return dt_format_duration(target_dt - current)


def dt_time_since(reference_dt: datetime | None, now: datetime | None = None) -> str | None:
    """Format the time elapsed since a reference datetime.

    Shares dt_format_duration with dt_time_until, so the same gap reads the
    same in both directions.

    Returns:
        Formatted duration, or None if the reference is missing or in the future.
    """
    if reference_dt is None:
        return None
    current = now or dt_now_local()
    if reference_dt > current:
        return None
    return dt_format_duration(current - reference_dt)


def dt_format_interval_days(days: float) -> str:
    """Format an average interval (in fractional days) compactly.

    Examples:
        dt_format_interval_days(0) → "—"
        dt_format_interval_days(3.4) → "~3d"
        dt_format_interval_days(14) → "~2w"
        dt_format_interval_days(90) → "~3mo"
    """
    rounded = round(days)
    if rounded <= 0:
        return DISPLAY_NO_VALUE
    if rounded < _DAYS_PER_WEEK:
        return f"~{rounded}d"
    if rounded < _DAYS_PER_MONTH:
        return f"~{round(rounded / _DAYS_PER_WEEK)}w"
    if rounded < _DAYS_PER_YEAR:
        return f"~{round(rounded / _DAYS_PER_MONTH)}mo"
    return f"~{round(rounded / _DAYS_PER_YEAR)}y"
