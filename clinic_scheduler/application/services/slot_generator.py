from datetime import date, datetime, time
from typing import Iterable, List, Optional

from ..models import TimeSlot, WorkingHoursConfig

DEFAULT_WORKING_HOURS = WorkingHoursConfig()


def format_slot_label(value: time) -> str:
    """12-hour label without a leading zero, e.g. ``9:00 AM``."""
    hour = value.hour % 12 or 12
    period = "PM" if value.hour >= 12 else "AM"
    return f"{hour}:{value.minute:02d} {period}"


def _in_break(minute_of_day: int, config: WorkingHoursConfig) -> bool:
    return config.break_start * 60 <= minute_of_day < config.break_end * 60


def generate_slots(day: date, config: Optional[WorkingHoursConfig] = None, now: Optional[datetime] = None) -> List[TimeSlot]:
    """Bookable slots for ``day`` in ascending order.

    No slot starts inside ``[break_start, break_end)`` and every slot ends by
    ``end_hour``. When ``day`` is today, slots starting at or before ``now``
    are left out. An empty list means no availability.
    """
    config = config or DEFAULT_WORKING_HOURS
    if isinstance(day, datetime):
        day = day.date()
    if config.start_hour >= config.end_hour:
        return []
    if now is not None and day < now.date():
        return []

    slots: List[TimeSlot] = []
    end_of_day = config.end_hour * 60
    minute_of_day = config.start_hour * 60
    while minute_of_day + config.slot_minutes <= end_of_day:
        if not _in_break(minute_of_day, config):
            start = time(minute_of_day // 60, minute_of_day % 60)
            if now is None or datetime.combine(day, start) > now:
                slots.append(TimeSlot(start_time=start, label=format_slot_label(start)))
        minute_of_day += config.slot_minutes
    return slots


def slot_instant(day: date, slot: TimeSlot) -> datetime:
    if isinstance(day, datetime):
        day = day.date()
    return datetime.combine(day, slot.start_time)


def first_available_slot(slots: Iterable[TimeSlot]) -> Optional[TimeSlot]:
    return next((slot for slot in slots if slot.is_available), None)


def is_bookable_instant(instant: datetime, config: Optional[WorkingHoursConfig] = None, now: Optional[datetime] = None) -> bool:
    """Whether ``instant`` is the start of a slot ``generate_slots`` would emit."""
    start = instant.time().replace(second=0, microsecond=0)
    return any(slot.start_time == start for slot in generate_slots(instant.date(), config, now))
