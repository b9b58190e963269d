"""Reconcile raw appointment records into canonical ``Appointment`` values.

Patient and doctor references arrive as bare ids (``patientId``), embedded
objects (``patient: {...}``) or not at all, and ids may be numbers on one
endpoint and strings on another. ``resolve`` is a pure function of its inputs:
the same raw record and lookup tables always produce the same stubs.

Id precedence per role, first hit wins:

1. ``<role>Id``, then ``<role>_id`` on the record
2. ``<role>.id``, ``<role>._id``, ``<role>.<role>Id``, ``<role>.userId``
3. a bare ``<role>`` value that is numeric or matches a lookup key

When the candidate id is in the lookup table the table entry wins, since it
is fresher than whatever was embedded in the appointment payload.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..models import (
    Appointment,
    AppointmentStatus,
    PersonStub,
    ResolutionFallback,
    UNKNOWN_DOCTOR,
    UNKNOWN_PATIENT,
)
from ...exceptions import DateParseError, MissingIdentifierError
from .datetime_parsing import extract_scheduled_at

logger = logging.getLogger(__name__)

RawPeople = Union[Mapping[Any, Mapping[str, Any]], Iterable[Mapping[str, Any]], None]
PeopleIndex = Dict[str, Mapping[str, Any]]

_PLACEHOLDERS = {"patient": UNKNOWN_PATIENT, "doctor": UNKNOWN_DOCTOR}

_STATUS_ALIASES = {
    "confirmed": AppointmentStatus.ACCEPTED,
    "canceled": AppointmentStatus.CANCELLED,
    "noshow": AppointmentStatus.NO_SHOW,
    "no-show": AppointmentStatus.NO_SHOW,
}


def coerce_id(value: Any) -> Optional[str]:
    """Turn a raw identifier into a stable string key, or ``None``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def index_people(people: RawPeople) -> PeopleIndex:
    """Build an id-keyed lookup from a mapping or a list of raw people."""
    if not people:
        return {}
    index: PeopleIndex = {}
    if isinstance(people, Mapping):
        for key, person in people.items():
            person_id = coerce_id(key)
            if person_id is not None and isinstance(person, Mapping):
                index[person_id] = person
        return index
    for person in people:
        if not isinstance(person, Mapping):
            continue
        person_id = coerce_id(person.get("id"))
        if person_id is None:
            person_id = coerce_id(person.get("_id"))
        if person_id is not None:
            index[person_id] = person
    return index


def normalize_status(value: Any) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    if not isinstance(value, str):
        return AppointmentStatus.PENDING
    key = value.strip().lower().replace("_", "-").replace(" ", "-")
    if key in _STATUS_ALIASES:
        return _STATUS_ALIASES[key]
    try:
        return AppointmentStatus(key)
    except ValueError:
        return AppointmentStatus.PENDING


def display_name(person: Mapping[str, Any]) -> Optional[str]:
    for key in ("fullName", "displayName", "name"):
        value = person.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    first = person.get("firstName") or ""
    last = person.get("lastName") or ""
    full = f"{first} {last}".strip()
    if full:
        return full
    email = person.get("email")
    if isinstance(email, str) and email.strip():
        return email.strip()
    return None


def _text(person: Optional[Mapping[str, Any]], *keys: str) -> Optional[str]:
    if not person:
        return None
    for key in keys:
        value = person.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def _candidate_id(raw: Mapping[str, Any], role: str, known: PeopleIndex) -> Optional[str]:
    for key in (f"{role}Id", f"{role}_id"):
        candidate = coerce_id(raw.get(key))
        if candidate is not None:
            return candidate
    embedded = raw.get(role)
    if isinstance(embedded, Mapping):
        for key in ("id", "_id", f"{role}Id", "userId"):
            candidate = coerce_id(embedded.get(key))
            if candidate is not None:
                return candidate
        return None
    if isinstance(embedded, (int, float)) and not isinstance(embedded, bool):
        return coerce_id(embedded)
    if isinstance(embedded, str) and coerce_id(embedded) in known:
        return coerce_id(embedded)
    return None


def _embedded_person(raw: Mapping[str, Any], role: str, known: PeopleIndex) -> Optional[Mapping[str, Any]]:
    embedded = raw.get(role)
    if isinstance(embedded, Mapping):
        return embedded
    if isinstance(embedded, str) and embedded.strip() and coerce_id(embedded) not in known:
        # a bare string that is not a known id is the person's name
        return {"name": embedded}
    return None


def resolve_person(raw: Mapping[str, Any], role: str, known: PeopleIndex) -> PersonStub:
    """Resolve one role of ``raw`` to a ``PersonStub``. Never raises."""
    placeholder = _PLACEHOLDERS[role]
    candidate = _candidate_id(raw, role, known)
    embedded = _embedded_person(raw, role, known)

    entry = known.get(candidate) if candidate is not None else None
    if entry is not None:
        name = display_name(entry) or display_name(embedded or {})
        return PersonStub(
            id=candidate,
            display_name=name or placeholder,
            phone=_text(entry, "phone", "phoneNumber") or _text(embedded, "phone", "phoneNumber"),
            email=_text(entry, "email") or _text(embedded, "email"),
            specialization=_text(entry, "specialization") or _text(embedded, "specialization"),
            is_placeholder=name is None,
        )

    if embedded is not None:
        name = display_name(embedded)
        return PersonStub(
            id=candidate or "",
            display_name=name or placeholder,
            phone=_text(embedded, "phone", "phoneNumber"),
            email=_text(embedded, "email"),
            specialization=_text(embedded, "specialization"),
            is_placeholder=name is None,
        )

    return PersonStub(id=candidate or "", display_name=placeholder, is_placeholder=True)


def resolve(raw: Mapping[str, Any], known_patients: RawPeople = None, known_doctors: RawPeople = None,
            default_type: str = "checkup") -> Appointment:
    """Build a canonical ``Appointment`` from a raw store record.

    Raises ``MissingIdentifierError`` when the record has neither ``id`` nor
    ``_id`` and ``DateParseError`` when no valid instant can be extracted.
    Identity resolution itself never fails; it degrades to placeholder stubs.
    """
    return _resolve_indexed(raw, index_people(known_patients), index_people(known_doctors), default_type)


def _resolve_indexed(raw: Mapping[str, Any], patients: PeopleIndex, doctors: PeopleIndex,
                     default_type: str) -> Appointment:
    appointment_id = coerce_id(raw.get("id"))
    if appointment_id is None:
        appointment_id = coerce_id(raw.get("_id"))
    if appointment_id is None:
        raise MissingIdentifierError("normalize appointment")

    scheduled_at = extract_scheduled_at(raw)

    appointment_type = raw.get("type")
    notes = raw.get("notes")
    if notes in (None, ""):
        notes = raw.get("description")
    version = raw.get("version")
    if version is None:
        version = raw.get("updatedAt")

    return Appointment(
        id=appointment_id,
        patient=resolve_person(raw, "patient", patients),
        doctor=resolve_person(raw, "doctor", doctors),
        scheduled_at=scheduled_at,
        type=appointment_type if isinstance(appointment_type, str) and appointment_type.strip() else default_type,
        status=normalize_status(raw.get("status")),
        notes=str(notes) if notes is not None else "",
        version=str(version) if version is not None else None,
    )


def fallbacks_for(appointment: Appointment) -> List[ResolutionFallback]:
    """List the roles of ``appointment`` that resolved to a placeholder."""
    events = []
    for role, stub in (("patient", appointment.patient), ("doctor", appointment.doctor)):
        if stub.is_placeholder:
            events.append(ResolutionFallback(
                appointment_id=appointment.id,
                role=role,
                candidate_id=stub.id or None,
            ))
    return events


def build_collection(raw_appointments: Iterable[Mapping[str, Any]], known_patients: RawPeople = None,
                     known_doctors: RawPeople = None, default_type: str = "checkup"
                     ) -> Tuple[List[Appointment], List[Tuple[Any, Exception]], List[ResolutionFallback]]:
    """Resolve a batch of raw records, skipping the ones that cannot be normalized.

    Returns ``(appointments, rejected, fallbacks)`` where ``rejected`` pairs each
    dropped raw record with the error that excluded it.
    """
    patients = index_people(known_patients)
    doctors = index_people(known_doctors)
    appointments: List[Appointment] = []
    rejected: List[Tuple[Any, Exception]] = []
    fallbacks: List[ResolutionFallback] = []
    for raw in raw_appointments or []:
        if not isinstance(raw, Mapping):
            logger.warning(f"Skipping non-object appointment record: {raw!r}")
            rejected.append((raw, MissingIdentifierError("normalize appointment")))
            continue
        try:
            appointment = _resolve_indexed(raw, patients, doctors, default_type)
        except (DateParseError, MissingIdentifierError) as e:
            logger.warning(f"Dropping appointment record {raw.get('id', raw.get('_id'))!r}: {e}")
            rejected.append((raw, e))
            continue
        appointments.append(appointment)
        fallbacks.extend(fallbacks_for(appointment))
    return appointments, rejected, fallbacks


def _person_to_raw(stub: PersonStub) -> Dict[str, Any]:
    raw: Dict[str, Any] = {"id": stub.id}
    if not stub.is_placeholder:
        raw["displayName"] = stub.display_name
    for key, value in (("phone", stub.phone), ("email", stub.email), ("specialization", stub.specialization)):
        if value is not None:
            raw[key] = value
    return raw


def to_raw(appointment: Appointment) -> Dict[str, Any]:
    """Render an appointment in the canonical raw shape ``resolve`` accepts unchanged."""
    raw: Dict[str, Any] = {
        "id": appointment.id,
        "patient": _person_to_raw(appointment.patient),
        "doctor": _person_to_raw(appointment.doctor),
        "scheduledAt": appointment.scheduled_at,
        "type": appointment.type,
        "status": appointment.status.value,
        "notes": appointment.notes,
    }
    if appointment.version is not None:
        raw["version"] = appointment.version
    return raw
