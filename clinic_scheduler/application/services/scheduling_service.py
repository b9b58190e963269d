import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..models import (
    Appointment,
    AppointmentStats,
    AppointmentStatus,
    TimeSlot,
    WorkingHoursConfig,
)
from ..ports.appointment_store import AppointmentFilter, AppointmentStore
from ..ports.event_logger import SchedulingEventLogger
from ...exceptions import (
    AppointmentNotFoundError,
    DateParseError,
    MissingIdentifierError,
    SlotUnavailableError,
    StoreError,
)
from .appointment_collection import AppointmentCollection
from .conflict_detector import find_conflict, mark_conflicts
from .datetime_parsing import TIMESTAMP_FIELDS, format_for_store
from .identity_resolver import (
    PeopleIndex,
    build_collection,
    coerce_id,
    index_people,
    resolve,
    to_raw,
)
from .query_engine import QueryOptions, query, summarize
from .slot_generator import DEFAULT_WORKING_HOURS, generate_slots, is_bookable_instant
from .status_machine import INITIAL_STATUSES, apply_transition

logger = logging.getLogger(__name__)


@dataclass
class SchedulingService:
    """Store-backed scheduling for the dashboards.

    The canonical collection only changes after the store confirms a write,
    so a rejected transition or a failed call leaves it exactly as it was.
    Concurrent writes to the same appointment are not deduplicated here;
    callers disable the triggering control while a call is in flight.
    """
    store: AppointmentStore
    events: Optional[SchedulingEventLogger] = None
    working_hours: WorkingHoursConfig = DEFAULT_WORKING_HOURS
    default_type: str = "checkup"
    store_datetime_format: str = "%Y-%m-%dT%H:%M:%S"
    clock: Callable[[], datetime] = datetime.now
    collection: AppointmentCollection = field(default_factory=AppointmentCollection)
    patients: PeopleIndex = field(default_factory=dict)
    doctors: PeopleIndex = field(default_factory=dict)

    def _event(self, event: str, appointment_id: Optional[str] = None, success: bool = True, **details: Any) -> None:
        if self.events is not None:
            self.events.log(event, appointment_id=appointment_id, success=success, details=details)

    @staticmethod
    def _require_id(appointment_id: Any, operation: str) -> str:
        key = coerce_id(appointment_id)
        if key is None:
            raise MissingIdentifierError(operation)
        return key

    def _get(self, appointment_id: str) -> Appointment:
        appointment = self.collection.get(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)
        return appointment

    # ---- reads -------------------------------------------------------

    async def _load_people(self) -> Tuple[list, list]:
        results = await asyncio.gather(
            self.store.list_patients(), self.store.list_doctors(), return_exceptions=True
        )
        people = []
        for role, result in zip(("patients", "doctors"), results):
            if isinstance(result, StoreError):
                logger.warning(f"Failed to fetch {role}, continuing without them: {result}")
                result = []
            elif isinstance(result, BaseException):
                raise result
            people.append(result)
        return people[0], people[1]

    async def refresh(self, filter: Optional[AppointmentFilter] = None) -> List[Appointment]:
        """Re-fetch everything and rebuild the canonical collection."""
        try:
            raw_appointments = await self.store.list_appointments(filter)
        except StoreError as e:
            logger.error(f"Error fetching appointments: {e}")
            raise
        patients, doctors = await self._load_people()
        self.patients = index_people(patients)
        self.doctors = index_people(doctors)

        appointments, rejected, fallbacks = build_collection(
            raw_appointments, self.patients, self.doctors, default_type=self.default_type
        )
        self.collection.replace_all(appointments)

        for raw, error in rejected:
            raw_id = raw.get("id", raw.get("_id")) if isinstance(raw, dict) else None
            self._event("appointment.dropped", coerce_id(raw_id), success=False, reason=str(error))
        for fallback in fallbacks:
            logger.warning(f"Unknown {fallback.role} on appointment {fallback.appointment_id} (id={fallback.candidate_id!r})")
            self._event("identity.fallback", fallback.appointment_id, role=fallback.role, candidate_id=fallback.candidate_id)

        logger.info(f"Loaded {len(appointments)} appointments ({len(rejected)} dropped)")
        self._event("appointments.refreshed", kept=len(appointments), dropped=len(rejected))
        return appointments

    def appointments(self) -> List[Appointment]:
        return self.collection.values()

    def available_slots(self, day: date, doctor_id: Any, config: Optional[WorkingHoursConfig] = None,
                        now: Optional[datetime] = None) -> List[TimeSlot]:
        """Slots for ``(day, doctor_id)`` with booked ones marked unavailable."""
        if coerce_id(doctor_id) is None:
            raise ValueError("doctor_id must be provided to list slots")
        slots = generate_slots(day, config or self.working_hours, now or self.clock())
        return mark_conflicts(slots, self.collection.for_doctor(doctor_id), day, doctor_id)

    def query(self, options: Optional[QueryOptions] = None, now: Optional[datetime] = None) -> List[Appointment]:
        return query(self.collection.values(), options, now or self.clock())

    def stats(self, now: Optional[datetime] = None) -> AppointmentStats:
        return summarize(self.collection.values(), now or self.clock())

    # ---- writes ------------------------------------------------------

    def _confirmed(self, expected: Appointment, raw: Optional[Dict[str, Any]]) -> Appointment:
        """Reconcile the store's reply with the value we asked it to write."""
        if not raw:
            return expected
        base = to_raw(expected)
        if any(raw.get(key) not in (None, "") for key in TIMESTAMP_FIELDS):
            base.pop("scheduledAt")
        merged = {**base, **raw}
        try:
            return resolve(merged, self.patients, self.doctors, default_type=self.default_type)
        except (DateParseError, MissingIdentifierError) as e:
            logger.warning(f"Store reply for appointment {expected.id} could not be normalized: {e}")
            return expected

    def _check_slot(self, doctor_id: str, instant: datetime, config: WorkingHoursConfig, now: datetime,
                    ignore_id: Optional[str] = None) -> None:
        if not is_bookable_instant(instant, config, now):
            raise SlotUnavailableError(
                f"{instant:%Y-%m-%d %H:%M} is not a bookable slot (past, break or outside working hours)"
            )
        conflict = find_conflict(self.collection.values(), doctor_id, instant, ignore_id=ignore_id)
        if conflict is not None:
            raise SlotUnavailableError(
                f"Doctor {doctor_id} already has appointment {conflict.id} at {instant:%Y-%m-%d %H:%M}"
            )

    async def book(self, patient_id: Any, doctor_id: Any, scheduled_at: datetime, type: Optional[str] = None,
                   notes: str = "", status: Union[str, AppointmentStatus] = AppointmentStatus.SCHEDULED,
                   config: Optional[WorkingHoursConfig] = None, now: Optional[datetime] = None) -> Appointment:
        """Claim a free slot for a patient with a doctor."""
        patient_key = coerce_id(patient_id)
        doctor_key = coerce_id(doctor_id)
        if patient_key is None or doctor_key is None:
            raise ValueError("patient_id and doctor_id must be non-empty")
        initial = AppointmentStatus(status)
        if initial not in INITIAL_STATUSES:
            raise ValueError(f"New appointments start as one of {sorted(s.value for s in INITIAL_STATUSES)}")
        instant = scheduled_at.replace(second=0, microsecond=0)
        self._check_slot(doctor_key, instant, config or self.working_hours, now or self.clock())

        payload = {
            "patientId": patient_key,
            "doctorId": doctor_key,
            "appointmentDate": format_for_store(instant, self.store_datetime_format),
            "type": type or self.default_type,
            "notes": notes or "",
            "status": initial.value,
        }
        try:
            raw = await self.store.create_appointment(payload)
        except StoreError as e:
            logger.error(f"Error booking appointment: {e}")
            self._event("appointment.booked", success=False, reason=str(e))
            raise

        try:
            appointment = resolve({**payload, **(raw or {})}, self.patients, self.doctors, default_type=self.default_type)
        except (DateParseError, MissingIdentifierError) as e:
            # The write went through; reload so the claimed slot shows as taken.
            logger.warning(f"Store reply for new booking could not be normalized, reloading: {e}")
            await self.refresh()
            appointment = find_conflict(self.collection.values(), doctor_key, instant)
            if appointment is None:
                raise
        else:
            self.collection.upsert(appointment)
        logger.info(f"Booked appointment {appointment.id} with doctor {doctor_key} at {instant:%Y-%m-%d %H:%M}")
        self._event("appointment.booked", appointment.id, doctor_id=doctor_key, scheduled_at=instant.isoformat())
        return appointment

    async def transition(self, appointment_id: Any, new_status: Union[str, AppointmentStatus]) -> Appointment:
        """Validate and persist a status change."""
        key = self._require_id(appointment_id, "change appointment status")
        current = self._get(key)
        updated = apply_transition(current, new_status)

        fields: Dict[str, Any] = {"status": updated.status.value}
        if current.version is not None:
            fields["version"] = current.version
        try:
            raw = await self.store.update_appointment(key, fields)
        except StoreError as e:
            logger.error(f"Error updating appointment {key} status: {e}")
            self._event("appointment.status_changed", key, success=False, reason=str(e))
            raise

        confirmed = self._confirmed(updated, raw)
        self.collection.upsert(confirmed)
        logger.info(f"Appointment {key}: {current.status.value} -> {confirmed.status.value}")
        self._event("appointment.status_changed", key, previous=current.status.value, status=confirmed.status.value)
        return confirmed

    async def accept(self, appointment_id: Any) -> Appointment:
        return await self.transition(appointment_id, AppointmentStatus.ACCEPTED)

    async def cancel(self, appointment_id: Any) -> Appointment:
        return await self.transition(appointment_id, AppointmentStatus.CANCELLED)

    async def complete(self, appointment_id: Any) -> Appointment:
        return await self.transition(appointment_id, AppointmentStatus.COMPLETED)

    async def mark_no_show(self, appointment_id: Any) -> Appointment:
        return await self.transition(appointment_id, AppointmentStatus.NO_SHOW)

    async def reschedule(self, appointment_id: Any, new_scheduled_at: datetime,
                         config: Optional[WorkingHoursConfig] = None,
                         now: Optional[datetime] = None) -> Tuple[Appointment, Appointment]:
        """Cancel the existing booking and book the same visit at a new time.

        Both the cancellation and the new slot are validated before the first
        write. Returns ``(cancelled, new)``.
        """
        key = self._require_id(appointment_id, "reschedule appointment")
        current = self._get(key)
        apply_transition(current, AppointmentStatus.CANCELLED)
        for role, person in (("patient", current.patient), ("doctor", current.doctor)):
            if coerce_id(person.id) is None:
                raise MissingIdentifierError("reschedule appointment", f"{role} id")
        config = config or self.working_hours
        now = now or self.clock()
        self._check_slot(current.doctor.id, new_scheduled_at.replace(second=0, microsecond=0), config, now, ignore_id=key)

        cancelled = await self.transition(key, AppointmentStatus.CANCELLED)
        new = await self.book(
            current.patient.id,
            current.doctor.id,
            new_scheduled_at,
            type=current.type,
            notes=current.notes,
            config=config,
            now=now,
        )
        self._event("appointment.rescheduled", key, new_id=new.id)
        return cancelled, new

    async def delete(self, appointment_id: Any) -> None:
        key = self._require_id(appointment_id, "delete appointment")
        try:
            await self.store.delete_appointment(key)
        except StoreError as e:
            logger.error(f"Error deleting appointment {key}: {e}")
            self._event("appointment.deleted", key, success=False, reason=str(e))
            raise
        self.collection.remove(key)
        logger.info(f"Deleted appointment {key}")
        self._event("appointment.deleted", key)
