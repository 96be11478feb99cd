"""Reconciliation of processing outcomes into the appointment store."""

from datetime import UTC, datetime
from typing import Any

import structlog

from medbook.core.exceptions import AppException, MalformedEvent
from medbook.messaging.channel import BatchResult, ChannelMessage
from medbook.repositories.appointment_repository import (
    AppointmentRepository,
    StatusUpdateOutcome,
)
from medbook.schemas.appointments import AppointmentStatus
from medbook.schemas.events import (
    EventKind,
    ProcessingCompleted,
    ProcessingFailed,
    parse_event,
    resolve_kind,
    unwrap_envelope,
)

logger = structlog.get_logger(__name__)


def _require_identity(payload: dict[str, Any]) -> None:
    missing = [key for key in ("insuredId", "appointmentId") if not payload.get(key)]
    if missing:
        raise MalformedEvent(f"Missing required fields: {', '.join(missing)}")


class ReconciliationService:
    """Applies ProcessingCompleted and ProcessingFailed events to appointments."""

    def __init__(self, repository: AppointmentRepository):
        """Initialize service with the appointment repository."""
        self.repository = repository

    async def apply(self, body: Any) -> StatusUpdateOutcome | None:
        """
        Apply one outcome event.

        Terminal fields are overwritten from the event contents only, so the
        same event applied twice leaves the same record.

        Args:
            body: Event body in any supported envelope

        Returns:
            Update outcome, or None for unknown event kinds

        Raises:
            MalformedEvent: If the event cannot be decoded or lacks its identity
            StoreUnavailable: If the appointment store cannot be reached
        """
        payload, envelope = unwrap_envelope(body)
        kind = resolve_kind(payload, envelope)

        if kind is EventKind.COMPLETED:
            _require_identity(payload)
            return await self._apply_completed(parse_event(ProcessingCompleted, payload))
        if kind is EventKind.FAILED:
            _require_identity(payload)
            return await self._apply_failed(parse_event(ProcessingFailed, payload))

        logger.warning(
            "unknown_event_kind",
            status=payload.get("status"),
            detail_type=envelope.get("detail-type"),
            appointment_id=payload.get("appointmentId"),
        )
        return None

    async def _apply_completed(self, event: ProcessingCompleted) -> StatusUpdateOutcome:
        processed_at = event.completed_at or datetime.now(UTC)
        fields: dict[str, Any] = {
            "processed_at": processed_at,
            "updated_at": processed_at,
            "error_details": None,
        }
        if event.schedule is not None:
            fields["schedule"] = event.schedule.model_dump(by_alias=True, mode="json", exclude_none=True)

        outcome = await self.repository.update_status(
            event.insured_id,
            event.appointment_id,
            AppointmentStatus.COMPLETED,
            **fields,
        )
        self._log_outcome(outcome, event.appointment_id, event.country_iso, AppointmentStatus.COMPLETED)
        return outcome

    async def _apply_failed(self, event: ProcessingFailed) -> StatusUpdateOutcome:
        failed_at = event.failed_at or datetime.now(UTC)
        outcome = await self.repository.update_status(
            event.insured_id,
            event.appointment_id,
            AppointmentStatus.FAILED,
            error_details=event.error,
            updated_at=failed_at,
        )
        self._log_outcome(
            outcome,
            event.appointment_id,
            event.country_iso,
            AppointmentStatus.FAILED,
            error=event.error,
        )
        return outcome

    @staticmethod
    def _log_outcome(
        outcome: StatusUpdateOutcome,
        appointment_id: str,
        country_iso: str,
        status: AppointmentStatus,
        **extra: Any,
    ) -> None:
        if outcome is StatusUpdateOutcome.APPLIED:
            logger.info(
                f"appointment_marked_{status.value}",
                appointment_id=appointment_id,
                country=country_iso,
                **extra,
            )
        elif outcome is StatusUpdateOutcome.NOT_FOUND:
            logger.warning("appointment_not_found", appointment_id=appointment_id, country=country_iso)

    async def handle_batch(self, messages: list[ChannelMessage]) -> BatchResult:
        """
        Apply a batch of outcome events, one message at a time.

        Malformed events are logged and dropped; store outages are marked for
        redelivery.

        Returns:
            Message IDs grouped by outcome
        """
        result = BatchResult()
        logger.info("reconciliation_batch_started", message_count=len(messages))

        for message in messages:
            with structlog.contextvars.bound_contextvars(message_id=message.message_id):
                try:
                    await self.apply(message.body)
                    result.processed.append(message.message_id)
                except MalformedEvent as e:
                    logger.error("malformed_event", error=e.message, body=message.body)
                    result.dropped.append(message.message_id)
                except AppException as e:
                    logger.error("outcome_event_failed", error=e.message)
                    if e.retryable:
                        result.retry.append(message.message_id)
                    else:
                        result.failed.append(message.message_id)
                except Exception as e:
                    logger.exception("outcome_event_error", error=str(e))
                    result.retry.append(message.message_id)

        logger.info("reconciliation_batch_completed", **result.summary())
        return result
