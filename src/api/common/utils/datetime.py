import calendar
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo
from src.api.common.config import get_billing_config


def get_current_datetime() -> datetime:
    """Return current UTC datetime with timezone info."""
    # First create a UTC datetime
    dt = datetime.now(timezone.utc)
    # Ensure microseconds are stripped for consistency in tests
    dt = dt.replace(microsecond=0)
    # Double-check timezone info is present
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def get_business_timezone() -> ZoneInfo:
    return ZoneInfo(get_billing_config().timezone)


def normalize_datetime(value: Optional[datetime]) -> Optional[datetime]:
    """
    Convert a datetime to naive wall-clock time in the business timezone.

    Attendance and extension timestamps are stored naive so that comparisons
    behave the same on every database backend. Naive input is assumed to be
    wall-clock time already.
    """
    if value is None:
        return None
    if value.tzinfo is not None and value.tzinfo.utcoffset(value) is not None:
        value = value.astimezone(get_business_timezone())
    return value.replace(tzinfo=None)


def get_local_datetime() -> datetime:
    """Current wall-clock time in the business timezone (naive)."""
    return normalize_datetime(get_current_datetime())


def get_local_date() -> date:
    return get_local_datetime().date()


def get_date(date_str: str | None) -> Optional[date]:
    return None if date_str is None else date.fromisoformat(date_str[:10])


def get_month_boundaries(target_month: date) -> tuple[date, date]:
    """
    Get the start and end dates for a given month.

    Args:
        target_month: The month to get boundaries for

    Returns:
        Tuple of (month_start, month_end) dates
    """
    return get_month_start(target_month), get_month_end(target_month)


def get_month_start(target_month: date) -> date:
    """Get the first day of the given month."""
    return target_month.replace(day=1)


def get_month_end(target_month: date) -> date:
    """Get the last day of the given month."""
    _, last_day = calendar.monthrange(target_month.year, target_month.month)
    return target_month.replace(day=last_day)


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, clamping the day to the last day of the month."""
    _, last_day = calendar.monthrange(year, month)
    return date(year, month, min(max(day, 1), last_day))


def add_months(value: date, months: int, day: Optional[int] = None) -> date:
    """
    Shift a date by a number of months.

    The resulting day is `day` (or the original day) clamped to the length of
    the target month, so Jan 31 + 1 month is Feb 28/29.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    return clamp_day(year, month, day if day is not None else value.day)


def previous_month(year: int, month: int) -> tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def format_dot_date(value: Optional[date]) -> str:
    """Format a date as YYYY.MM.DD, or '-' when missing."""
    if value is None:
        return "-"
    return f"{value.year:04d}.{value.month:02d}.{value.day:02d}"
