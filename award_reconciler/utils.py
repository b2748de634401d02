"""
Shared utilities for award-reconciler.

Date handling follows one convention throughout: upstream timestamps are
treated as naive local time. A trailing ``Z`` is stripped before parsing and
day offsets compare calendar dates only.
"""

from __future__ import annotations

import re
import logging
from datetime import date, datetime
from typing import Union

logger = logging.getLogger(__name__)

DateLike = Union[str, date, datetime]


def parse_local_time(value: Union[str, datetime]) -> datetime:
    """
    Parse an ISO timestamp as naive local time.

    Any trailing ``Z`` or UTC offset is dropped rather than applied.

    Examples:
        >>> parse_local_time("2024-05-01T23:30:00Z")
        datetime.datetime(2024, 5, 1, 23, 30)
    """
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1]
    parsed = datetime.fromisoformat(text)
    return parsed.replace(tzinfo=None)


def to_date(value: DateLike) -> date:
    """Coerce a date, datetime or ISO string to a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if "T" in text or " " in text:
        return parse_local_time(text).date()
    return date.fromisoformat(text)


def local_date(value: Union[str, datetime]) -> str:
    """Return the YYYY-MM-DD local date of a timestamp."""
    return parse_local_time(value).date().isoformat()


def day_offset(reference: DateLike, timestamp: Union[str, datetime]) -> int:
    """
    Whole days between a reference date and a timestamp's local date.

    Examples:
        >>> day_offset("2024-05-01", "2024-05-02T01:10:00Z")
        1
    """
    return (parse_local_time(timestamp).date() - to_date(reference)).days


def depart_date_for(reference: DateLike, departs_at: Union[str, datetime, None]) -> str:
    """
    ISO departure date for a segment, derived from its day offset.

    Falls back to the reference date itself when the departure time is unknown.
    """
    base = to_date(reference)
    if departs_at is None:
        return base.isoformat()
    return date.fromordinal(base.toordinal() + day_offset(base, departs_at)).isoformat()


def format_duration(minutes: int) -> str:
    """
    Format duration in minutes to human-readable string.

    Examples:
        >>> format_duration(330)
        '5h 30m'
    """
    hours = minutes // 60
    mins = minutes % 60
    return f"{hours}h {mins}m"


def format_layover_duration(minutes: int) -> str:
    """
    Compact layover format: minutes only under an hour, no zero minutes.

    Examples:
        >>> format_layover_duration(45)
        '45m'
        >>> format_layover_duration(120)
        '2h'
    """
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    mins = minutes % 60
    return f"{hours}h" if mins == 0 else f"{hours}h {mins}m"


def airline_code_of(flight_number: str) -> str:
    """Marketing airline code: the first two characters of a flight number."""
    return flight_number[:2].upper()


def normalize_flight_number(flight_number: str) -> str:
    """Upper-case a flight number and drop internal whitespace."""
    return re.sub(r"\s+", "", flight_number or "").upper()


def validate_airport_code(code: str) -> str:
    """
    Validate and normalize an airport IATA code.

    Raises:
        ValueError: If code is not a valid IATA format
    """
    code = code.strip().upper()
    if not re.match(r'^[A-Z]{3}$', code):
        raise ValueError(f"Invalid airport code: {code}. Must be 3 letters.")
    return code


def validate_date(date_str: str) -> str:
    """
    Validate a date string in YYYY-MM-DD format.

    Raises:
        ValueError: If date format is invalid
    """
    if not re.match(r'^\d{4}-\d{2}-\d{2}$', date_str):
        raise ValueError(f"Invalid date format: {date_str}. Use YYYY-MM-DD.")

    try:
        datetime.strptime(date_str, "%Y-%m-%d")
    except ValueError as e:
        raise ValueError(f"Invalid date: {date_str}. {e}")

    return date_str


__all__ = [
    "parse_local_time",
    "to_date",
    "local_date",
    "day_offset",
    "depart_date_for",
    "format_duration",
    "format_layover_duration",
    "airline_code_of",
    "normalize_flight_number",
    "validate_airport_code",
    "validate_date",
]
