"""Shared validation utilities"""

import re
from datetime import date
from typing import Optional

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


def parse_date_string(value: str) -> date:
    """
    Parse a calendar date in the fixed YYYY-MM-DD form.

    Args:
        value: Date string such as "2025-01-13"

    Returns:
        The calendar date (no time component, no time zone)

    Raises:
        ValueError: If the string is not a valid YYYY-MM-DD date
    """
    if not value or not _DATE_PATTERN.match(value.strip()):
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")

    year, month, day = (int(part) for part in value.strip().split("-"))
    return date(year, month, day)


def validate_time_of_day(value: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a local time of day.

    Args:
        value: Time string in H:MM, HH:MM or HH:MM:SS format

    Returns:
        Zero-padded HH:MM string

    Raises:
        ValueError: If the time is out of range or malformed
    """
    if value is None:
        return value

    match = _TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")

    return f"{hours:02d}:{minutes:02d}"


def validate_weekday(value: Optional[str]) -> Optional[str]:
    """Normalize a weekday name to lowercase English (monday ... sunday)"""
    if value is None:
        return value

    weekday = value.strip().lower()
    if weekday not in WEEKDAYS:
        raise ValueError(f"Invalid weekday '{value}', expected one of {', '.join(WEEKDAYS)}")

    return weekday


def weekday_name(value: date) -> str:
    """Weekday name of a calendar date"""
    return WEEKDAYS[value.weekday()]
