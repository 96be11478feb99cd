"""Tests for applying processing outcomes to appointments."""

import json

import pytest

from medbook.core.exceptions import MalformedEvent
from medbook.repositories.appointment_repository import AppointmentRepository, StatusUpdateOutcome
from medbook.services.reconciliation_service import ReconciliationService
from tests.helpers import message

APPOINTMENT_ID = "APT-1700000000000-abc123def456"


def completed_event(appointment_id: str = APPOINTMENT_ID, **extra) -> dict:
    detail = {
        "appointmentId": appointment_id,
        "insuredId": "01234",
        "scheduleId": 100,
        "countryISO": "PE",
        "status": "completed",
        "completedAt": "2026-10-18T10:00:00+00:00",
        "schedule": {
            "scheduleId": 100,
            "centerId": 4,
            "specialityId": 3,
            "medicId": 4,
            "date": "2026-10-21T09:00:00+00:00",
            "centerName": "Center 4",
            "medicName": "Ana Torres",
        },
        **extra,
    }
    return {"source": "medbook.appointments", "detail-type": "Appointment Completed", "detail": detail}


def failed_event(appointment_id: str = APPOINTMENT_ID, error: str = "Schedule 100 is not available") -> dict:
    return {
        "source": "medbook.appointments",
        "detail-type": "Appointment Failed",
        "detail": {
            "appointmentId": appointment_id,
            "insuredId": "01234",
            "scheduleId": 100,
            "countryISO": "PE",
            "status": "failed",
            "error": error,
            "failedAt": "2026-10-18T10:00:00+00:00",
        },
    }


@pytest.fixture
def repository(db_session) -> AppointmentRepository:
    return AppointmentRepository(db_session)


@pytest.fixture
def service(repository) -> ReconciliationService:
    return ReconciliationService(repository)


@pytest.mark.asyncio
async def test_completed_event_marks_appointment_completed(service, repository, insert_appointment):
    await insert_appointment()

    outcome = await service.apply(json.dumps(completed_event()))

    assert outcome is StatusUpdateOutcome.APPLIED
    row = await repository.get("01234", APPOINTMENT_ID)
    assert row["status"] == "completed"
    assert row["processed_at"] is not None
    assert row["error_details"] is None
    assert row["schedule"]["centerName"] == "Center 4"
    assert row["schedule"]["medicName"] == "Ana Torres"


@pytest.mark.asyncio
async def test_failed_event_marks_appointment_failed(service, repository, insert_appointment):
    await insert_appointment()

    outcome = await service.apply(json.dumps(failed_event()))

    assert outcome is StatusUpdateOutcome.APPLIED
    row = await repository.get("01234", APPOINTMENT_ID)
    assert row["status"] == "failed"
    assert row["error_details"] == "Schedule 100 is not available"
    assert row["processed_at"] is None


@pytest.mark.asyncio
async def test_applying_same_event_twice_is_idempotent(service, repository, insert_appointment):
    """Test a replayed completion leaves the record unchanged."""
    await insert_appointment()
    body = json.dumps(completed_event())

    await service.apply(body)
    first = await repository.get("01234", APPOINTMENT_ID)
    outcome = await service.apply(body)
    second = await repository.get("01234", APPOINTMENT_ID)

    assert outcome is StatusUpdateOutcome.APPLIED
    assert first == second


@pytest.mark.asyncio
async def test_terminal_status_is_never_overwritten(service, repository, insert_appointment):
    """Test the first terminal outcome wins over a later opposite one."""
    await insert_appointment()

    await service.apply(json.dumps(completed_event()))
    outcome = await service.apply(json.dumps(failed_event()))

    assert outcome is StatusUpdateOutcome.REJECTED
    row = await repository.get("01234", APPOINTMENT_ID)
    assert row["status"] == "completed"
    assert row["error_details"] is None


@pytest.mark.asyncio
async def test_completed_from_processing(service, repository, insert_appointment):
    await insert_appointment(status="processing")

    assert await service.apply(completed_event()) is StatusUpdateOutcome.APPLIED


@pytest.mark.asyncio
async def test_unknown_appointment_reports_not_found(service):
    outcome = await service.apply(json.dumps(completed_event(appointment_id="APT-missing")))
    assert outcome is StatusUpdateOutcome.NOT_FOUND


@pytest.mark.asyncio
async def test_bare_and_notification_payloads_are_accepted(service, repository, insert_appointment):
    await insert_appointment(appointment_id="APT-1")
    await insert_appointment(appointment_id="APT-2")

    bare = completed_event(appointment_id="APT-1")["detail"]
    wrapped = {
        "Type": "Notification",
        "Message": json.dumps(failed_event(appointment_id="APT-2")["detail"]),
    }

    assert await service.apply(json.dumps(bare)) is StatusUpdateOutcome.APPLIED
    assert await service.apply(json.dumps(wrapped)) is StatusUpdateOutcome.APPLIED
    assert (await repository.get("01234", "APT-1"))["status"] == "completed"
    assert (await repository.get("01234", "APT-2"))["status"] == "failed"


@pytest.mark.asyncio
async def test_kind_from_detail_type_when_status_missing(service, repository, insert_appointment):
    await insert_appointment()
    event = failed_event()
    del event["detail"]["status"]

    await service.apply(event)

    assert (await repository.get("01234", APPOINTMENT_ID))["status"] == "failed"


@pytest.mark.asyncio
async def test_missing_identity_is_malformed(service, repository, insert_appointment):
    """Test an event without insuredId is rejected and no record changes."""
    await insert_appointment()
    event = completed_event()
    del event["detail"]["insuredId"]

    with pytest.raises(MalformedEvent):
        await service.apply(event)

    assert (await repository.get("01234", APPOINTMENT_ID))["status"] == "pending"


@pytest.mark.asyncio
async def test_unknown_kind_is_ignored(service, repository, insert_appointment):
    await insert_appointment()
    event = completed_event()
    event["detail"]["status"] = "archived"
    event["detail-type"] = "Appointment Archived"

    assert await service.apply(event) is None
    assert (await repository.get("01234", APPOINTMENT_ID))["status"] == "pending"


@pytest.mark.asyncio
async def test_failed_event_without_error_uses_default(service, repository, insert_appointment):
    await insert_appointment()
    event = failed_event()
    del event["detail"]["error"]

    await service.apply(event)

    assert (await repository.get("01234", APPOINTMENT_ID))["error_details"] == "Processing failed"


@pytest.mark.asyncio
async def test_handle_batch_drops_malformed_and_applies_rest(service, repository, insert_appointment):
    await insert_appointment(appointment_id="APT-1")
    await insert_appointment(appointment_id="APT-2")

    result = await service.handle_batch(
        [
            message(completed_event(appointment_id="APT-1"), message_id="m1"),
            message("{broken", message_id="m2"),
            message({"detail": {"status": "completed"}}, message_id="m3"),
            message(failed_event(appointment_id="APT-2"), message_id="m4"),
        ]
    )

    assert result.processed == ["m1", "m4"]
    assert result.dropped == ["m2", "m3"]
    assert (await repository.get("01234", "APT-1"))["status"] == "completed"
    assert (await repository.get("01234", "APT-2"))["status"] == "failed"
