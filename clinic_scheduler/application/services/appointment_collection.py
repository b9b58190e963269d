from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ..models import Appointment
from .identity_resolver import coerce_id


class AppointmentCollection:
    """In-memory canonical appointments, keyed by id, in insertion order."""

    def __init__(self, appointments: Iterable[Appointment] = ()) -> None:
        self._items: Dict[str, Appointment] = {}
        self.replace_all(appointments)

    def replace_all(self, appointments: Iterable[Appointment]) -> None:
        self._items = {a.id: a for a in appointments}

    def upsert(self, appointment: Appointment) -> None:
        self._items[appointment.id] = appointment

    def remove(self, appointment_id: str) -> Optional[Appointment]:
        return self._items.pop(appointment_id, None)

    def get(self, appointment_id) -> Optional[Appointment]:
        key = coerce_id(appointment_id)
        return self._items.get(key) if key is not None else None

    def for_doctor(self, doctor_id) -> List[Appointment]:
        key = coerce_id(doctor_id)
        return [a for a in self._items.values() if a.doctor.id == key]

    def values(self) -> List[Appointment]:
        return list(self._items.values())

    def double_bookings(self) -> List[Tuple[str, datetime, List[str]]]:
        """Doctor/instant pairs held by more than one active appointment."""
        held = defaultdict(list)
        for a in self._items.values():
            if a.is_active:
                held[(a.doctor.id, a.scheduled_at.replace(second=0, microsecond=0))].append(a.id)
        return [(doctor, when, ids) for (doctor, when), ids in held.items() if len(ids) > 1]

    def __iter__(self) -> Iterator[Appointment]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, appointment_id) -> bool:
        return self.get(appointment_id) is not None
