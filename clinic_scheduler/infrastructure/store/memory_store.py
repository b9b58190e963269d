import copy
from typing import Any, Dict, List, Optional

from ...application.ports.appointment_store import (
    AppointmentFilter,
    AppointmentStore,
    RawAppointment,
    RawPerson,
)
from ...application.services.identity_resolver import coerce_id
from ...exceptions import StoreConflictError, StoreError

PATIENT_ROLES = {"user", "patient"}
DOCTOR_ROLES = {"doctor"}


class InMemoryAppointmentStore(AppointmentStore):
    """Dict-backed store with the same contract as the REST backend.

    Every write bumps a per-record ``version``; an update that carries a
    stale ``version`` is rejected with ``StoreConflictError``.
    """

    def __init__(self, appointments: Optional[List[RawAppointment]] = None, users: Optional[List[RawPerson]] = None) -> None:
        self._appointments: Dict[str, RawAppointment] = {}
        self._users: List[RawPerson] = [copy.deepcopy(u) for u in users or []]
        self._next_id = 1
        for raw in appointments or []:
            record = copy.deepcopy(raw)
            key = coerce_id(record.get("id", record.get("_id")))
            if key is None:
                key = self._allocate_id()
                record["id"] = key
            self._appointments[key] = record

    def _allocate_id(self) -> str:
        while str(self._next_id) in self._appointments:
            self._next_id += 1
        key = str(self._next_id)
        self._next_id += 1
        return key

    def _people(self, roles) -> List[RawPerson]:
        return [copy.deepcopy(u) for u in self._users if str(u.get("role", "")).lower() in roles]

    @staticmethod
    def _ref(raw: RawAppointment, role: str) -> Optional[str]:
        value = raw.get(f"{role}Id")
        if value is None and isinstance(raw.get(role), dict):
            value = raw[role].get("id")
        return coerce_id(value)

    async def list_appointments(self, filter: Optional[AppointmentFilter] = None) -> List[RawAppointment]:
        records = list(self._appointments.values())
        if filter is not None and filter.doctor_id is not None:
            records = [r for r in records if self._ref(r, "doctor") == coerce_id(filter.doctor_id)]
        if filter is not None and filter.patient_id is not None:
            records = [r for r in records if self._ref(r, "patient") == coerce_id(filter.patient_id)]
        return [copy.deepcopy(r) for r in records]

    async def list_patients(self) -> List[RawPerson]:
        return self._people(PATIENT_ROLES)

    async def list_doctors(self) -> List[RawPerson]:
        return self._people(DOCTOR_ROLES)

    async def create_appointment(self, payload: Dict[str, Any]) -> RawAppointment:
        record = copy.deepcopy(payload)
        record["id"] = self._allocate_id()
        record["version"] = 1
        self._appointments[record["id"]] = record
        return copy.deepcopy(record)

    async def update_appointment(self, appointment_id: str, fields: Dict[str, Any]) -> RawAppointment:
        record = self._appointments.get(str(appointment_id))
        if record is None:
            raise StoreError(f"Appointment not found with id: {appointment_id}", status_code=404)
        fields = dict(fields)
        expected = fields.pop("version", None)
        current = record.get("version")
        if expected is not None and current is not None and str(expected) != str(current):
            raise StoreConflictError(
                f"Appointment {appointment_id} was modified (version {current}, expected {expected})",
                status_code=409,
            )
        record.update(copy.deepcopy(fields))
        record["version"] = int(current or 0) + 1
        return copy.deepcopy(record)

    async def delete_appointment(self, appointment_id: str) -> None:
        if self._appointments.pop(str(appointment_id), None) is None:
            raise StoreError(f"Appointment not found with id: {appointment_id}", status_code=404)
