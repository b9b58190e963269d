from datetime import date, datetime
from typing import Any, Iterable, List, Optional, Set

from ..models import Appointment, TimeSlot
from .identity_resolver import coerce_id
from .slot_generator import slot_instant


def _minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def occupied_instants(appointments: Iterable[Appointment], doctor_id: Any) -> Set[datetime]:
    """Instants held by non-cancelled appointments of one doctor."""
    doctor_key = coerce_id(doctor_id)
    if doctor_key is None:
        return set()
    return {
        _minute(a.scheduled_at)
        for a in appointments
        if a.doctor.id == doctor_key and a.is_active
    }


def mark_conflicts(slots: List[TimeSlot], existing_appointments: Iterable[Appointment], day: date, doctor_id: Any) -> List[TimeSlot]:
    """Flag every slot already held by a non-cancelled booking as unavailable.

    Matching is exact to the minute on the same doctor. Cancelled bookings do
    not hold their slot. The slots are updated in place and returned.
    """
    taken = occupied_instants(existing_appointments, doctor_id)
    for slot in slots:
        slot.is_available = slot_instant(day, slot) not in taken
    return slots


def find_conflict(existing_appointments: Iterable[Appointment], doctor_id: Any, instant: datetime,
                  ignore_id: Optional[str] = None) -> Optional[Appointment]:
    """Return the active booking holding ``instant`` for the doctor, if any."""
    doctor_key = coerce_id(doctor_id)
    target = _minute(instant)
    for appointment in existing_appointments:
        if appointment.id == ignore_id or not appointment.is_active:
            continue
        if appointment.doctor.id == doctor_key and _minute(appointment.scheduled_at) == target:
            return appointment
    return None
