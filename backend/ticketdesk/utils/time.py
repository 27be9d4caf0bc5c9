"""Time Utilities - UTC timestamps and formatting"""
from datetime import datetime, timezone
from typing import Optional
from dateutil import parser as date_parser


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """
    Make a datetime timezone-aware in UTC

    MongoDB hands datetimes back naive (in UTC), so values read from the
    database go through this before any arithmetic with utc_now().
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to datetime

    Args:
        iso_string: ISO formatted datetime string

    Returns:
        Datetime object in UTC
    """
    return as_utc(date_parser.isoparse(iso_string))


def minutes_since(dt: datetime, now: Optional[datetime] = None) -> int:
    """
    Whole minutes elapsed since the given datetime

    Returns:
        Positive if in past, negative if in future
    """
    now = now or utc_now()
    return int((as_utc(now) - as_utc(dt)).total_seconds() // 60)


def format_duration(minutes: int) -> str:
    """
    Format duration in minutes to human readable string

    Examples:
        >>> format_duration(45)
        '45 min'
        >>> format_duration(150)
        '2 hr 30 min'
        >>> format_duration(1500)
        '1 day 1 hr'
    """
    if minutes < 0:
        return f"-{format_duration(-minutes)}"

    if minutes < 60:
        return f"{minutes} min"

    hours = minutes // 60
    remaining_minutes = minutes % 60

    if hours < 24:
        if remaining_minutes > 0:
            return f"{hours} hr {remaining_minutes} min"
        return f"{hours} hr"

    days = hours // 24
    remaining_hours = hours % 24
    day_label = "day" if days == 1 else "days"

    if remaining_hours > 0:
        return f"{days} {day_label} {remaining_hours} hr"
    return f"{days} {day_label}"
