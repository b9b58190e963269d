# clinic_scheduler/schemas/scheduling.py
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Union
from datetime import datetime

from ..application.models import Appointment, AppointmentStats, PersonStub, TimeSlot
from ..application.services.slot_generator import format_slot_label
from ..application.services.status_machine import allowed_transitions


class PersonStubResponse(BaseModel):
    id: str
    display_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    specialization: Optional[str] = None
    is_placeholder: bool = False

    @classmethod
    def from_stub(cls, stub: PersonStub) -> "PersonStubResponse":
        return cls(
            id=stub.id,
            display_name=stub.display_name,
            phone=stub.phone,
            email=stub.email,
            specialization=stub.specialization,
            is_placeholder=stub.is_placeholder,
        )


class AppointmentResponse(BaseModel):
    id: str
    patient: PersonStubResponse
    doctor: PersonStubResponse
    scheduled_at: datetime
    date: str  # YYYY-MM-DD
    time: str  # h:mm AM/PM
    type: str
    status: str
    notes: str = ""
    version: Optional[str] = None
    allowed_transitions: List[str] = []

    @classmethod
    def from_appointment(cls, a: Appointment) -> "AppointmentResponse":
        return cls(
            id=a.id,
            patient=PersonStubResponse.from_stub(a.patient),
            doctor=PersonStubResponse.from_stub(a.doctor),
            scheduled_at=a.scheduled_at,
            date=a.scheduled_at.strftime("%Y-%m-%d"),
            time=format_slot_label(a.scheduled_at.time()),
            type=a.type,
            status=a.status.value,
            notes=a.notes,
            version=a.version,
            allowed_transitions=sorted(s.value for s in allowed_transitions(a.status)),
        )


class TimeSlotResponse(BaseModel):
    start_time: str  # HH:MM
    label: str
    is_available: bool
    is_break: bool = False

    @classmethod
    def from_slot(cls, slot: TimeSlot) -> "TimeSlotResponse":
        return cls(
            start_time=slot.start_time.strftime("%H:%M"),
            label=slot.label,
            is_available=slot.is_available,
            is_break=slot.is_break,
        )


class SlotsResponse(BaseModel):
    date: str
    doctor_id: str
    slots: List[TimeSlotResponse]
    first_available: Optional[str] = None


class BookingRequest(BaseModel):
    patient_id: Union[str, int]
    doctor_id: Union[str, int]
    date: str  # YYYY-MM-DD
    time: str  # HH:MM or h:mm AM/PM
    type: Optional[str] = None
    notes: str = ""
    status: str = "scheduled"


class StatusChangeRequest(BaseModel):
    status: str = Field(min_length=1)


class RescheduleRequest(BaseModel):
    date: str  # YYYY-MM-DD
    time: str  # HH:MM or h:mm AM/PM


class RescheduleResponse(BaseModel):
    cancelled: AppointmentResponse
    appointment: AppointmentResponse


class StatsResponse(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    today: int
    upcoming_week: int

    @classmethod
    def from_stats(cls, stats: AppointmentStats) -> "StatsResponse":
        return cls(
            total=stats.total,
            by_status=stats.by_status,
            by_type=stats.by_type,
            today=stats.today,
            upcoming_week=stats.upcoming_week,
        )


class MessageResponse(BaseModel):
    message: str
