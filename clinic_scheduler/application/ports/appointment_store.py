from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol


RawAppointment = Dict[str, Any]
RawPerson = Dict[str, Any]


@dataclass
class AppointmentFilter:
    doctor_id: Optional[str] = None
    patient_id: Optional[str] = None


class AppointmentStore(Protocol):
    async def list_appointments(self, filter: Optional[AppointmentFilter] = None) -> List[RawAppointment]:
        ...

    async def list_patients(self) -> List[RawPerson]:
        ...

    async def list_doctors(self) -> List[RawPerson]:
        ...

    async def create_appointment(self, payload: Dict[str, Any]) -> RawAppointment:
        ...

    async def update_appointment(self, appointment_id: str, fields: Dict[str, Any]) -> RawAppointment:
        ...

    async def delete_appointment(self, appointment_id: str) -> None:
        ...
