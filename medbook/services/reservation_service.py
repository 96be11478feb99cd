"""Country reservation worker."""

from datetime import UTC, datetime
from typing import Any

import structlog

from medbook.core.country_databases import CountryEnginePool
from medbook.core.exceptions import (
    AppException,
    BookingFailed,
    MalformedEvent,
    ScheduleDetailsNotFound,
    ScheduleUnavailable,
    UnsupportedCountry,
)
from medbook.core.lifecycle import ensure_supported_country
from medbook.messaging.channel import BatchResult, ChannelMessage
from medbook.messaging.publishers import EventPublisher
from medbook.repositories.schedule_repository import (
    ScheduleDetails,
    ScheduleNotFound,
    ScheduleRepository,
)
from medbook.schemas.events import (
    ProcessingCompleted,
    ProcessingFailed,
    ScheduleRequested,
    parse_event,
    unwrap_envelope,
)

logger = structlog.get_logger(__name__)


class CountryReservationWorker:
    """
    Books schedule slots for the ScheduleRequested events of one country.

    For every event the worker checks availability, resolves the slot
    details, reserves the slot in one transaction and then reports the
    outcome on the event channel.
    """

    def __init__(
        self,
        country_iso: str,
        engine_pool: CountryEnginePool,
        event_publisher: EventPublisher,
    ):
        """Initialize worker for one country."""
        self.country = ensure_supported_country(country_iso)
        self.engine_pool = engine_pool
        self.event_publisher = event_publisher

    def repository(self) -> ScheduleRepository:
        """Schedule repository on the country's pooled engine."""
        return ScheduleRepository(self.engine_pool.get_engine(self.country), self.country.value)

    def parse(self, body: Any) -> ScheduleRequested:
        """
        Decode a ScheduleRequested event and check it belongs to this worker.

        Raises:
            MalformedEvent: If the body is not a valid scheduling event
            UnsupportedCountry: If the event is for another country
        """
        payload, _ = unwrap_envelope(body)
        event = parse_event(ScheduleRequested, payload)
        if event.country_iso.strip().upper() != self.country.value:
            raise UnsupportedCountry(
                event.country_iso,
                f"Event for {event.country_iso} routed to {self.country.value} worker",
            )
        return event

    async def process(self, event: ScheduleRequested, final_attempt: bool = True) -> ProcessingCompleted:
        """
        Reserve the requested slot and emit the outcome.

        Booking errors always emit ProcessingFailed before being re-raised.
        Other errors, such as an unreachable store, only emit it on the final
        delivery attempt so earlier redeliveries can still succeed.

        Args:
            event: Scheduling request for this worker's country
            final_attempt: Whether the channel will not redeliver this event

        Returns:
            The emitted completion event
        """
        repository = self.repository()
        log = logger.bind(appointment_id=event.appointment_id, schedule_id=event.schedule_id)

        try:
            booked_at, details = await self._reserve(event, repository, log)
        except (ScheduleUnavailable, ScheduleDetailsNotFound, BookingFailed) as e:
            log.warning("reservation_failed", error=e.message)
            await self._emit_failure(event, e.message)
            raise
        except Exception as e:
            log.error("reservation_error", error=str(e), final_attempt=final_attempt)
            if final_attempt:
                reason = e.message if isinstance(e, AppException) else str(e)
                await self._emit_failure(event, reason or "Processing failed")
            raise

        return await self._emit_completed(event, repository, booked_at=booked_at, details=details)

    async def _reserve(
        self,
        event: ScheduleRequested,
        repository: ScheduleRepository,
        log: Any,
    ) -> tuple[datetime, ScheduleDetails | None]:
        if not await repository.is_available(event.schedule_id):
            booked_at = await self._own_booking(event, repository, log)
            if booked_at is None:
                raise ScheduleUnavailable(event.schedule_id, self.country.value)
            return booked_at, None

        lookup = await repository.get_details(event.schedule_id)
        if isinstance(lookup, ScheduleNotFound):
            raise ScheduleDetailsNotFound(event.schedule_id, self.country.value)

        try:
            booked_at = await repository.reserve(
                event.schedule_id,
                event.appointment_id,
                event.insured_id,
                lookup,
                created_at=event.created_at,
            )
        except (ScheduleUnavailable, BookingFailed):
            # A concurrent delivery of the same event may have won the slot
            own_booked_at = await self._own_booking(event, repository, log)
            if own_booked_at is None:
                raise
            return own_booked_at, lookup
        return booked_at, lookup

    async def _own_booking(
        self,
        event: ScheduleRequested,
        repository: ScheduleRepository,
        log: Any,
    ) -> datetime | None:
        """Booking time of the slot if this appointment already holds it."""
        booking = await repository.find_booking(event.schedule_id)
        if booking and booking["appointment_id"] == event.appointment_id:
            log.info("reservation_already_committed")
            return booking["booked_at"]
        return None

    async def _emit_completed(
        self,
        event: ScheduleRequested,
        repository: ScheduleRepository,
        booked_at: datetime,
        details: ScheduleDetails | None = None,
    ) -> ProcessingCompleted:
        if details is None:
            lookup = await repository.get_details(event.schedule_id)
            details = lookup if isinstance(lookup, ScheduleDetails) else None

        completed = ProcessingCompleted(
            appointment_id=event.appointment_id,
            insured_id=event.insured_id,
            schedule_id=event.schedule_id,
            country_iso=self.country.value,
            completed_at=booked_at,
            schedule=details.to_snapshot() if details else None,
        )
        await self.event_publisher.emit_completed(completed)
        return completed

    async def _emit_failure(self, event: ScheduleRequested, reason: str) -> None:
        failed = ProcessingFailed(
            appointment_id=event.appointment_id,
            insured_id=event.insured_id,
            schedule_id=event.schedule_id,
            country_iso=self.country.value,
            error=reason,
            failed_at=datetime.now(UTC),
        )
        try:
            await self.event_publisher.emit_failed(failed)
        except Exception as e:
            logger.error(
                "failure_event_emit_failed",
                appointment_id=event.appointment_id,
                error=str(e),
            )

    async def handle_message(self, message: ChannelMessage) -> None:
        """Parse and process one channel message."""
        event = self.parse(message.body)
        await self.process(event, final_attempt=message.last_delivery)

    async def handle_batch(self, messages: list[ChannelMessage]) -> BatchResult:
        """
        Process a batch, one message at a time.

        A failing message never stops the rest of the batch. The country
        engine is released once the batch is done.

        Returns:
            Message IDs grouped by outcome
        """
        result = BatchResult()
        logger.info("reservation_batch_started", country=self.country.value, message_count=len(messages))

        try:
            for message in messages:
                with structlog.contextvars.bound_contextvars(
                    message_id=message.message_id,
                    country=self.country.value,
                ):
                    try:
                        await self.handle_message(message)
                        result.processed.append(message.message_id)
                    except (MalformedEvent, UnsupportedCountry) as e:
                        logger.error("scheduling_event_dropped", error=e.message)
                        result.dropped.append(message.message_id)
                    except AppException as e:
                        if e.retryable:
                            result.retry.append(message.message_id)
                        else:
                            result.failed.append(message.message_id)
                    except Exception as e:
                        logger.exception("scheduling_event_error", error=str(e))
                        result.retry.append(message.message_id)
        finally:
            await self.engine_pool.release(self.country)

        logger.info("reservation_batch_completed", country=self.country.value, **result.summary())
        return result
