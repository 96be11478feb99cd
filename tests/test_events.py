"""Tests for event envelopes and event parsing."""

import json

import pytest

from medbook.core.exceptions import MalformedEvent
from medbook.schemas.events import (
    EventKind,
    ProcessingCompleted,
    ScheduleRequested,
    parse_event,
    resolve_kind,
    unwrap_envelope,
)

PAYLOAD = {
    "appointmentId": "APT-1700000000000-abc123def456",
    "insuredId": "01234",
    "scheduleId": 100,
    "countryISO": "PE",
    "status": "completed",
}


def test_unwrap_notification_envelope():
    body = json.dumps({"Type": "Notification", "Message": json.dumps(PAYLOAD)})
    payload, envelope = unwrap_envelope(body)
    assert payload == PAYLOAD
    assert envelope["Type"] == "Notification"


def test_unwrap_event_envelope_with_object_detail():
    body = json.dumps(
        {
            "source": "medbook.appointments",
            "detail-type": "Appointment Completed",
            "detail": PAYLOAD,
        }
    )
    payload, envelope = unwrap_envelope(body)
    assert payload == PAYLOAD
    assert envelope["detail-type"] == "Appointment Completed"


def test_unwrap_event_envelope_with_string_detail():
    payload, _ = unwrap_envelope({"detail": json.dumps(PAYLOAD)})
    assert payload == PAYLOAD


def test_unwrap_bare_payload():
    payload, envelope = unwrap_envelope(json.dumps(PAYLOAD).encode())
    assert payload == PAYLOAD
    assert envelope is payload


@pytest.mark.parametrize(
    "body",
    [
        "not json",
        json.dumps([1, 2, 3]),
        json.dumps("a string"),
        json.dumps({"Message": "not json"}),
        json.dumps({"Message": json.dumps([PAYLOAD])}),
        json.dumps({"detail": 42}),
    ],
)
def test_unwrap_rejects_malformed_bodies(body):
    with pytest.raises(MalformedEvent):
        unwrap_envelope(body)


def test_resolve_kind_prefers_payload_status():
    kind = resolve_kind({"status": "failed"}, {"detail-type": "Appointment Completed"})
    assert kind is EventKind.FAILED


def test_resolve_kind_falls_back_to_detail_type():
    assert resolve_kind({}, {"detail-type": "Appointment Completed"}) is EventKind.COMPLETED
    assert resolve_kind({}, {"detail-type": "Appointment Failed"}) is EventKind.FAILED


def test_resolve_kind_scheduling_and_unknown():
    assert resolve_kind({"eventType": "APPOINTMENT_SCHEDULED"}, {}) is EventKind.SCHEDULE_REQUESTED
    assert resolve_kind({"status": "archived"}, {}) is EventKind.UNKNOWN
    assert resolve_kind({}, {}) is EventKind.UNKNOWN


def test_parse_event_reads_wire_names():
    event = parse_event(ProcessingCompleted, PAYLOAD)
    assert event.appointment_id == PAYLOAD["appointmentId"]
    assert event.insured_id == "01234"
    assert event.schedule_id == 100


def test_parse_event_reports_missing_fields():
    with pytest.raises(MalformedEvent) as exc_info:
        parse_event(ScheduleRequested, {"appointmentId": "APT-1", "countryISO": "PE"})
    assert "insuredId" in exc_info.value.message
    assert "scheduleId" in exc_info.value.message


def test_to_wire_uses_camel_case_and_drops_empty_fields():
    event = ScheduleRequested(
        appointment_id="APT-1",
        insured_id="01234",
        schedule_id=7,
        country_iso="CL",
    )
    assert event.to_wire() == {
        "appointmentId": "APT-1",
        "insuredId": "01234",
        "scheduleId": 7,
        "countryISO": "CL",
        "eventType": "APPOINTMENT_SCHEDULED",
    }


def test_unwrap_rejects_invalid_utf8():
    with pytest.raises(MalformedEvent):
        unwrap_envelope(b'{"appointmentId": "\xff\xfe"}')
