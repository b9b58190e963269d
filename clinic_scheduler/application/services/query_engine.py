"""Filtering, search and ordering of canonical appointments for display."""
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from ..models import Appointment, AppointmentStats

ALL = "all"

DATE_FILTERS = ("today", "thisWeek", "thisMonth", "past", "upcoming", ALL)

SORT_KEYS: Dict[str, Callable[[Appointment], object]] = {
    "scheduled_at": lambda a: a.scheduled_at.timestamp(),
    "patient": lambda a: a.patient.display_name.casefold(),
    "doctor": lambda a: a.doctor.display_name.casefold(),
    "status": lambda a: a.status.value,
    "type": lambda a: a.type.casefold(),
    "id": lambda a: a.id,
}


@dataclass
class QueryOptions:
    search_term: str = ""
    status_filter: str = ALL
    date_filter: str = ALL
    type_filter: str = ALL
    sort_by: str = "scheduled_at"
    descending: bool = False

    def __post_init__(self):
        if self.date_filter not in DATE_FILTERS:
            raise ValueError(f"Invalid date filter '{self.date_filter}'. Must be one of: {list(DATE_FILTERS)}")
        if self.sort_by not in SORT_KEYS:
            raise ValueError(f"Invalid sort field '{self.sort_by}'. Must be one of: {list(SORT_KEYS)}")


def matches_search(appointment: Appointment, term: str) -> bool:
    term = (term or "").strip()
    if not term:
        return True
    needle = term.casefold()
    haystack = (
        appointment.patient.display_name,
        appointment.doctor.display_name,
        appointment.notes,
        appointment.type,
    )
    if any(needle in value.casefold() for value in haystack if value):
        return True
    if appointment.patient.phone and term in appointment.patient.phone:
        return True
    return term in appointment.id


def matches_status(appointment: Appointment, status_filter: str) -> bool:
    return status_filter in (None, "", ALL) or appointment.status.value == status_filter


def matches_type(appointment: Appointment, type_filter: str) -> bool:
    return type_filter in (None, "", ALL) or appointment.type == type_filter


def _week_start(value: datetime) -> datetime:
    day = value.replace(hour=0, minute=0, second=0, microsecond=0)
    return day - timedelta(days=day.weekday())


def matches_date(appointment: Appointment, date_filter: str, now: datetime) -> bool:
    when = appointment.scheduled_at
    is_today = when.date() == now.date()
    if date_filter in (None, "", ALL):
        return True
    if date_filter == "today":
        return is_today
    if date_filter == "thisWeek":
        return _week_start(when) == _week_start(now)
    if date_filter == "thisMonth":
        return (when.year, when.month) == (now.year, now.month)
    if date_filter == "past":
        return when < now and not is_today
    if date_filter == "upcoming":
        return when >= now or is_today
    raise ValueError(f"Invalid date filter '{date_filter}'")


def sort_appointments(appointments: Iterable[Appointment], sort_by: str = "scheduled_at", descending: bool = False) -> List[Appointment]:
    # sorted() is stable in both directions
    return sorted(appointments, key=SORT_KEYS[sort_by], reverse=descending)


def query(appointments: Iterable[Appointment], options: Optional[QueryOptions] = None, now: Optional[datetime] = None) -> List[Appointment]:
    """Apply search, status, type and date filters, then sort.

    ``now`` anchors the relative date filters and defaults to the current
    local time.
    """
    options = options or QueryOptions()
    if now is None:
        now = datetime.now()
    result = [a for a in appointments if matches_search(a, options.search_term)]
    result = [a for a in result if matches_status(a, options.status_filter)]
    result = [a for a in result if matches_type(a, options.type_filter)]
    result = [a for a in result if matches_date(a, options.date_filter, now)]
    return sort_appointments(result, options.sort_by, options.descending)


def summarize(appointments: Iterable[Appointment], now: datetime) -> AppointmentStats:
    """Dashboard counters: totals by status and type, today, next seven days."""
    appointments = list(appointments)
    week_end = now + timedelta(days=7)
    return AppointmentStats(
        total=len(appointments),
        by_status=dict(Counter(a.status.value for a in appointments)),
        by_type=dict(Counter(a.type for a in appointments)),
        today=sum(1 for a in appointments if a.scheduled_at.date() == now.date()),
        upcoming_week=sum(
            1 for a in appointments
            if not a.status.is_terminal and now <= a.scheduled_at <= week_end
        ),
    )
