"""Timestamp extraction for raw appointment records.

The store hands back timestamps in several shapes: ISO-8601 strings with or
without an offset, ``YYYY-MM-DD HH:MM`` strings, epoch milliseconds, Jackson
style ``[y, m, d, h, mi]`` arrays, or a date and a separate time-of-day field.
Everything is collapsed into one naive local ``datetime`` with seconds zeroed.
"""
import re
from datetime import date, datetime, time
from typing import Any, Mapping, Optional

from ...exceptions import DateParseError

TIMESTAMP_FIELDS = ("scheduledAt", "appointmentDate", "dateTime", "date")

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_OF_DAY = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?\s*([AaPp][Mm])?$")


def _normalize(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt.replace(second=0, microsecond=0)


def parse_time_of_day(value: Any) -> time:
    """Parse ``HH:MM``, ``HH:MM:SS`` or ``h:mm AM`` into a ``time``."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if not isinstance(value, str):
        raise DateParseError(value, "time of day must be a string")
    match = _TIME_OF_DAY.match(value.strip())
    if not match:
        raise DateParseError(value, "malformed time of day")
    hour, minute = int(match.group(1)), int(match.group(2))
    period = match.group(4)
    if period:
        if not 1 <= hour <= 12:
            raise DateParseError(value, "hour out of range for 12-hour clock")
        hour = hour % 12
        if period.lower() == "pm":
            hour += 12
    if hour > 23 or minute > 59:
        raise DateParseError(value, "time of day out of range")
    return time(hour, minute)


def _is_date_only(value: Any) -> bool:
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    if isinstance(value, str):
        return bool(_DATE_ONLY.match(value.strip()))
    if isinstance(value, (list, tuple)):
        return len(value) == 3
    return False


def _parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        if isinstance(value, (list, tuple)):
            return date(*(int(part) for part in value))
        return date.fromisoformat(value.strip())
    except (TypeError, ValueError) as e:
        raise DateParseError(value, f"invalid date ({e})")


def parse_instant(value: Any) -> datetime:
    """Parse a single self-contained timestamp value."""
    if value is None or isinstance(value, bool):
        raise DateParseError(value, "missing timestamp")
    if isinstance(value, datetime):
        return _normalize(value)
    if isinstance(value, (int, float)):
        # epoch milliseconds, as emitted by JavaScript clients
        try:
            return _normalize(datetime.fromtimestamp(value / 1000))
        except (OverflowError, OSError, ValueError) as e:
            raise DateParseError(value, f"epoch value out of range ({e})")
    if isinstance(value, (list, tuple)):
        if len(value) < 5:
            raise DateParseError(value, "timestamp array needs at least 5 parts")
        try:
            parts = [int(part) for part in value[:6]]
            return _normalize(datetime(*parts))
        except (TypeError, ValueError) as e:
            raise DateParseError(value, f"invalid timestamp array ({e})")
    if not isinstance(value, str):
        raise DateParseError(value, f"unsupported timestamp type {type(value).__name__}")

    text = value.strip()
    if not text:
        raise DateParseError(value, "empty timestamp")
    if _DATE_ONLY.match(text):
        raise DateParseError(value, "timestamp has no time of day")
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return _normalize(datetime.fromisoformat(text))
    except ValueError:
        pass
    for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%d %I:%M %p", "%m/%d/%Y %H:%M", "%m/%d/%Y %I:%M %p"):
        try:
            return _normalize(datetime.strptime(text, fmt))
        except ValueError:
            continue
    raise DateParseError(value)


def combine(day: Any, time_of_day: Any) -> datetime:
    """Combine a date value and a time-of-day value into one instant."""
    return datetime.combine(_parse_date(day), parse_time_of_day(time_of_day))


def extract_scheduled_at(raw: Mapping[str, Any]) -> datetime:
    """Pick the first timestamp field present on ``raw`` and parse it.

    A date-only value is completed with the record's ``time`` field; without
    one the record has no usable instant.
    """
    for key in TIMESTAMP_FIELDS:
        value = raw.get(key)
        if value is None or value == "":
            continue
        if _is_date_only(value):
            time_of_day: Optional[Any] = raw.get("time")
            if time_of_day in (None, ""):
                raise DateParseError(value, f"'{key}' has no time of day and no 'time' field")
            return combine(value, time_of_day)
        return parse_instant(value)
    raise DateParseError(None, "record has no timestamp field")


def format_for_store(value: datetime, fmt: str = "%Y-%m-%dT%H:%M:%S") -> str:
    return value.strftime(fmt)
