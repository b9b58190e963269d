import json
import logging

from clinic_scheduler.infrastructure.audit.std_logger import StdSchedulingEventLogger


def test_events_are_json_lines(caplog):
    caplog.set_level(logging.INFO, logger="clinic_scheduler.infrastructure.audit.std_logger")
    events = StdSchedulingEventLogger()
    events.log("appointment.booked", appointment_id="12", details={"doctor_id": "3"})
    events.log("appointment.dropped", appointment_id="13", success=False, details={"reason": "bad date"})

    first, second = caplog.records
    assert first.levelno == logging.INFO
    assert second.levelno == logging.WARNING
    entry = json.loads(first.getMessage()[len("SCHEDULING: "):])
    assert entry["event"] == "appointment.booked"
    assert entry["appointment_id"] == "12"
    assert entry["success"] is True
    assert entry["details"] == {"doctor_id": "3"}


def test_event_timestamps_are_utc(caplog):
    caplog.set_level(logging.INFO, logger="clinic_scheduler.infrastructure.audit.std_logger")
    StdSchedulingEventLogger().log("appointments.refreshed")
    entry = json.loads(caplog.records[0].getMessage()[len("SCHEDULING: "):])
    assert entry["timestamp"].endswith("+00:00")
