from datetime import datetime

import pytest

from clinic_scheduler.application.models import AppointmentStatus, UNKNOWN_DOCTOR, UNKNOWN_PATIENT
from clinic_scheduler.application.services.identity_resolver import (
    build_collection,
    coerce_id,
    fallbacks_for,
    normalize_status,
    resolve,
    to_raw,
)
from clinic_scheduler.exceptions import DateParseError, MissingIdentifierError


DOCTORS = [{"id": "3", "fullName": "Dr. Lee", "specialization": "Cardiology", "role": "DOCTOR"}]
PATIENTS = [{"id": 7, "firstName": "Ana", "lastName": "Silva", "phone": "555-0101", "role": "patient"}]


def test_known_doctor_and_unknown_patient():
    raw = {"id": 1, "patientId": 7, "doctorId": "3", "appointmentDate": "2025-06-10T09:00:00"}
    appt = resolve(raw, known_patients=[], known_doctors=DOCTORS)
    assert appt.doctor.display_name == "Dr. Lee"
    assert appt.doctor.specialization == "Cardiology"
    assert appt.patient.display_name == UNKNOWN_PATIENT
    assert appt.patient.id == "7"
    assert appt.patient.is_placeholder is True
    assert appt.scheduled_at == datetime(2025, 6, 10, 9, 0)


def test_numeric_and_string_ids_match_once_coerced():
    raw = {"id": 2, "patientId": "7", "doctorId": 3, "appointmentDate": "2025-06-10T09:30:00"}
    appt = resolve(raw, PATIENTS, DOCTORS)
    assert appt.id == "2"
    assert appt.patient.id == "7"
    assert appt.patient.display_name == "Ana Silva"
    assert appt.patient.phone == "555-0101"
    assert appt.doctor.id == "3"


def test_lookup_table_wins_over_embedded_object():
    raw = {
        "id": "a1",
        "patient": {"id": 7, "fullName": "Old Name", "email": "ana@example.com"},
        "doctor": {"_id": "3", "name": "Stale Doctor"},
        "dateTime": "2025-06-10 10:00",
    }
    appt = resolve(raw, PATIENTS, DOCTORS)
    assert appt.patient.display_name == "Ana Silva"
    # embedded object only fills contact fields the lookup entry lacks
    assert appt.patient.email == "ana@example.com"
    assert appt.doctor.display_name == "Dr. Lee"


def test_embedded_object_used_when_not_in_lookup():
    raw = {
        "_id": "b2",
        "patient": {"id": 99, "firstName": "Jo", "lastName": "Park"},
        "doctor": {"email": "kim@clinic.test"},
        "date": "2025-06-10",
        "time": "2:30 PM",
    }
    appt = resolve(raw, PATIENTS, DOCTORS)
    assert appt.id == "b2"
    assert appt.patient.display_name == "Jo Park"
    assert appt.patient.id == "99"
    assert appt.doctor.display_name == "kim@clinic.test"
    assert appt.doctor.id == ""
    assert appt.scheduled_at == datetime(2025, 6, 10, 14, 30)


def test_explicit_role_id_field_takes_precedence_over_embedded_id():
    raw = {"id": 5, "doctorId": "3", "doctor": {"id": "8", "name": "Dr. Other"}, "appointmentDate": "2025-06-10T11:00"}
    appt = resolve(raw, [], DOCTORS)
    assert appt.doctor.id == "3"
    assert appt.doctor.display_name == "Dr. Lee"


def test_id_preferred_over_underscore_id():
    raw = {"id": "primary", "_id": "secondary", "appointmentDate": "2025-06-10T09:00"}
    assert resolve(raw).id == "primary"


def test_embedded_object_without_name_gets_placeholder():
    raw = {"id": 1, "doctor": {"id": "42"}, "appointmentDate": "2025-06-10T09:00"}
    appt = resolve(raw)
    assert appt.doctor.display_name == UNKNOWN_DOCTOR
    assert appt.doctor.id == "42"
    assert appt.doctor.is_placeholder is True


def test_bare_string_reference_is_a_name_unless_it_is_a_known_id():
    raw = {"id": 1, "patient": "Walk-in Visitor", "doctor": "3", "appointmentDate": "2025-06-10T09:00"}
    appt = resolve(raw, [], DOCTORS)
    assert appt.patient.display_name == "Walk-in Visitor"
    assert appt.doctor.display_name == "Dr. Lee"


def test_defaults_for_type_status_and_notes():
    appt = resolve({"id": 1, "appointmentDate": "2025-06-10T09:00"})
    assert appt.type == "checkup"
    assert appt.status == AppointmentStatus.PENDING
    assert appt.notes == ""


def test_description_used_when_notes_missing():
    appt = resolve({"id": 1, "appointmentDate": "2025-06-10T09:00", "description": "bring x-rays"})
    assert appt.notes == "bring x-rays"


def test_seconds_are_zeroed():
    appt = resolve({"id": 1, "appointmentDate": "2025-06-10T09:00:42.123"})
    assert appt.scheduled_at == datetime(2025, 6, 10, 9, 0)


def test_offset_timestamps_are_converted_to_local_time():
    appt = resolve({"id": 1, "appointmentDate": "2025-06-10T09:00:00Z"})
    expected = datetime.fromisoformat("2025-06-10T09:00:00+00:00").astimezone().replace(tzinfo=None)
    assert appt.scheduled_at == expected


def test_jackson_array_timestamp():
    appt = resolve({"id": 1, "appointmentDate": [2025, 6, 10, 15, 30]})
    assert appt.scheduled_at == datetime(2025, 6, 10, 15, 30)


@pytest.mark.parametrize("raw_date", ["not a date", "2025-13-40T09:00", "2025-06-10", ""])
def test_malformed_dates_raise(raw_date):
    with pytest.raises(DateParseError):
        resolve({"id": 1, "appointmentDate": raw_date})


def test_missing_id_raises():
    with pytest.raises(MissingIdentifierError):
        resolve({"appointmentDate": "2025-06-10T09:00"})


@pytest.mark.parametrize("raw_status,expected", [
    ("SCHEDULED", AppointmentStatus.SCHEDULED),
    ("no_show", AppointmentStatus.NO_SHOW),
    ("No Show", AppointmentStatus.NO_SHOW),
    ("confirmed", AppointmentStatus.ACCEPTED),
    ("canceled", AppointmentStatus.CANCELLED),
    ("rescheduled", AppointmentStatus.PENDING),
    (None, AppointmentStatus.PENDING),
])
def test_status_normalization(raw_status, expected):
    assert normalize_status(raw_status) == expected


def test_coerce_id():
    assert coerce_id(1) == "1"
    assert coerce_id(1.0) == "1"
    assert coerce_id(" 7 ") == "7"
    assert coerce_id("") is None
    assert coerce_id(True) is None
    assert coerce_id(None) is None


def test_resolution_is_idempotent():
    raw = {"id": 1, "patientId": 7, "doctor": {"id": "3"}, "appointmentDate": "2025-06-10T09:00"}
    assert resolve(raw, PATIENTS, DOCTORS) == resolve(raw, PATIENTS, DOCTORS)
    assert raw == {"id": 1, "patientId": 7, "doctor": {"id": "3"}, "appointmentDate": "2025-06-10T09:00"}


def test_canonical_shape_passes_through_unchanged():
    raw = {"id": 1, "patientId": 7, "doctorId": "3", "appointmentDate": "2025-06-10T09:00",
           "status": "accepted", "type": "follow-up", "notes": "n", "version": 4}
    appt = resolve(raw, PATIENTS, DOCTORS)
    assert resolve(to_raw(appt)) == appt

    unknown = resolve({"id": 2, "patientId": 404, "appointmentDate": "2025-06-10T10:00"})
    assert resolve(to_raw(unknown)) == unknown


def test_build_collection_drops_bad_records_and_reports_fallbacks():
    raws = [
        {"id": 1, "patientId": 7, "doctorId": "3", "appointmentDate": "2025-06-10T09:00"},
        {"id": 2, "patientId": 7, "doctorId": "3", "appointmentDate": "garbage"},
        {"patientId": 7, "doctorId": "3", "appointmentDate": "2025-06-10T10:00"},
        {"id": 4, "patientId": 8, "doctorId": "3", "appointmentDate": "2025-06-10T11:00"},
        "not-a-record",
    ]
    appointments, rejected, fallbacks = build_collection(raws, PATIENTS, DOCTORS)
    assert [a.id for a in appointments] == ["1", "4"]
    assert len(rejected) == 3
    assert isinstance(rejected[0][1], DateParseError)
    assert isinstance(rejected[1][1], MissingIdentifierError)
    assert [(f.appointment_id, f.role, f.candidate_id) for f in fallbacks] == [("4", "patient", "8")]


def test_fallbacks_for_reports_both_roles():
    appt = resolve({"id": 9, "appointmentDate": "2025-06-10T09:00"})
    assert [f.role for f in fallbacks_for(appt)] == ["patient", "doctor"]
