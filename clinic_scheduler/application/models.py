from dataclasses import dataclass, field
from datetime import datetime, time
from enum import Enum
from typing import Optional


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)


UNKNOWN_PATIENT = "Unknown Patient"
UNKNOWN_DOCTOR = "Unknown Doctor"


@dataclass(frozen=True)
class PersonStub:
    id: str
    display_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    specialization: Optional[str] = None
    is_placeholder: bool = False


@dataclass(frozen=True)
class Appointment:
    id: str
    patient: PersonStub
    doctor: PersonStub
    scheduled_at: datetime
    type: str = "checkup"
    status: AppointmentStatus = AppointmentStatus.PENDING
    notes: str = ""
    version: Optional[str] = None

    @property
    def is_active(self) -> bool:
        """Whether the booking still occupies its slot."""
        return self.status != AppointmentStatus.CANCELLED


@dataclass
class TimeSlot:
    start_time: time
    label: str
    is_available: bool = True
    is_break: bool = False


@dataclass(frozen=True)
class WorkingHoursConfig:
    start_hour: int = 9
    end_hour: int = 17
    break_start: int = 12
    break_end: int = 13
    slot_minutes: int = 30

    def __post_init__(self):
        for name in ("start_hour", "end_hour", "break_start", "break_end"):
            value = getattr(self, name)
            if not 0 <= value <= 24:
                raise ValueError(f"{name} must be between 0 and 24, got {value}")
        if self.slot_minutes <= 0:
            raise ValueError(f"slot_minutes must be positive, got {self.slot_minutes}")


@dataclass(frozen=True)
class ResolutionFallback:
    """Identity resolution produced a placeholder stub for one role."""
    appointment_id: str
    role: str
    candidate_id: Optional[str] = None


@dataclass(frozen=True)
class AppointmentStats:
    total: int
    by_status: dict = field(default_factory=dict)
    by_type: dict = field(default_factory=dict)
    today: int = 0
    upcoming_week: int = 0
