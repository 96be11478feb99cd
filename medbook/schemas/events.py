"""Lifecycle event schemas and envelope handling.

Producers wrap payloads in a transport envelope: scheduling notifications
carry the payload as a JSON string under ``Message``; outcome events carry it
under ``detail`` together with a ``detail-type``. Consumers accept either
envelope as well as the bare payload.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field, ValidationError

from medbook.core.exceptions import MalformedEvent
from medbook.schemas.appointments import CamelModel, MedicalSchedule

NOTIFICATION_WRAPPER_KEY = "Message"
EVENT_WRAPPER_KEY = "detail"


class EventKind(str, Enum):
    """Kinds of lifecycle events."""

    SCHEDULE_REQUESTED = "APPOINTMENT_SCHEDULED"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"


# detail-type values set by the event publisher
DETAIL_TYPES: dict[EventKind, str] = {
    EventKind.COMPLETED: "Appointment Completed",
    EventKind.FAILED: "Appointment Failed",
}

_KIND_BY_MARKER: dict[str, EventKind] = {
    "completed": EventKind.COMPLETED,
    "appointment completed": EventKind.COMPLETED,
    "failed": EventKind.FAILED,
    "appointment failed": EventKind.FAILED,
    "appointment_scheduled": EventKind.SCHEDULE_REQUESTED,
}


class LifecycleEvent(CamelModel):
    """Fields shared by every lifecycle event."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    appointment_id: str = Field(..., min_length=1, alias="appointmentId")
    insured_id: str = Field(..., min_length=1, alias="insuredId")
    country_iso: str = Field(..., min_length=1, alias="countryISO")

    def to_wire(self) -> dict[str, Any]:
        """Serialize with wire field names."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class ScheduleRequested(LifecycleEvent):
    """Published once a pending appointment has been stored."""

    schedule_id: int = Field(..., ge=1, alias="scheduleId")
    schedule: MedicalSchedule | None = None
    created_at: datetime | None = Field(None, alias="createdAt")
    event_type: str = Field(EventKind.SCHEDULE_REQUESTED.value, alias="eventType")


class ProcessingCompleted(LifecycleEvent):
    """Emitted by a country worker after the reservation committed."""

    schedule_id: int | None = Field(None, alias="scheduleId")
    status: str = EventKind.COMPLETED.value
    completed_at: datetime | None = Field(None, alias="completedAt")
    schedule: MedicalSchedule | None = None


class ProcessingFailed(LifecycleEvent):
    """Emitted by a country worker when processing could not complete."""

    schedule_id: int | None = Field(None, alias="scheduleId")
    status: str = EventKind.FAILED.value
    error: str = "Processing failed"
    failed_at: datetime | None = Field(None, alias="failedAt")


def _decode(raw: Any) -> Any:
    if isinstance(raw, bytes | bytearray):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEvent(f"Event body is not valid UTF-8: {e.reason}") from e
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedEvent(f"Event body is not valid JSON: {e.msg}") from e
    return raw


def unwrap_envelope(raw: Any) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Extract the event payload from a channel message body.

    Args:
        raw: Message body as JSON text, bytes or an already decoded dict

    Returns:
        Tuple of (payload, envelope); the envelope is the payload itself for bare messages

    Raises:
        MalformedEvent: If the body or the wrapped payload is not a JSON object
    """
    envelope = _decode(raw)
    if not isinstance(envelope, dict):
        raise MalformedEvent("Event body must be a JSON object")

    for key in (NOTIFICATION_WRAPPER_KEY, EVENT_WRAPPER_KEY):
        if key in envelope:
            payload = _decode(envelope[key])
            if not isinstance(payload, dict):
                raise MalformedEvent(f"Wrapped payload under '{key}' must be a JSON object")
            return payload, envelope

    return envelope, envelope


def resolve_kind(payload: dict[str, Any], envelope: dict[str, Any]) -> EventKind:
    """Classify an event from its payload status, falling back to the envelope type."""
    markers = (
        payload.get("status"),
        envelope.get("detail-type"),
        payload.get("eventType"),
    )
    for marker in markers:
        if isinstance(marker, str) and marker.strip().lower() in _KIND_BY_MARKER:
            return _KIND_BY_MARKER[marker.strip().lower()]
    return EventKind.UNKNOWN


def parse_event(model: type[LifecycleEvent], payload: dict[str, Any]) -> Any:
    """
    Validate a payload against an event model.

    Raises:
        MalformedEvent: If required fields are missing or invalid
    """
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise MalformedEvent(
            f"Invalid {model.__name__} event, check fields: {', '.join(fields)}"
        ) from e
