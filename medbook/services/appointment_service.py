"""Appointment lifecycle service."""

from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from medbook.config import settings
from medbook.core.exceptions import DuplicateAppointment
from medbook.core.lifecycle import ensure_supported_country, generate_appointment_id
from medbook.messaging.publishers import NotificationPublisher
from medbook.repositories.appointment_repository import AppointmentRepository
from medbook.schemas.appointments import (
    AppointmentAccepted,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
)
from medbook.schemas.events import ScheduleRequested

logger = structlog.get_logger(__name__)

ACCEPTED_MESSAGE = "Appointment scheduling in progress"
ESTIMATED_PROCESSING_TIME = "2-5 minutes"


class AppointmentService:
    """Service accepting appointment requests and serving the read path."""

    # Fresh IDs tried before a key collision is reported
    max_id_attempts = 3

    def __init__(self, db: AsyncSession, publisher: NotificationPublisher):
        """Initialize service with database session and notification publisher."""
        self.db = db
        self.repository = AppointmentRepository(db)
        self.publisher = publisher

    async def submit(self, data: AppointmentCreate) -> AppointmentAccepted:
        """
        Record a pending appointment and request its scheduling.

        The pending record is written first; the ScheduleRequested event is
        published afterwards. A publish failure is logged and leaves the record
        pending for the stale-pending sweep.

        Args:
            data: Appointment request

        Returns:
            Generated appointment ID with status pending

        Raises:
            UnsupportedCountry: If the country has no schedule store
            DuplicateAppointment: If every generated ID collided
            StoreUnavailable: If the appointment store cannot be reached
        """
        country = ensure_supported_country(data.country_iso)
        now = datetime.now(UTC)

        schedule: dict[str, Any] | None = None
        if data.schedule is not None:
            snapshot = data.schedule.model_copy(update={"schedule_id": data.schedule_id})
            schedule = snapshot.model_dump(by_alias=True, mode="json", exclude_none=True)

        values: dict[str, Any] = {
            "insured_id": data.insured_id,
            "schedule_id": data.schedule_id,
            "country_iso": country.value,
            "schedule": schedule,
            "status": AppointmentStatus.PENDING.value,
            "created_at": now,
            "updated_at": now,
            "expires_at": now + timedelta(days=settings.appointment_retention_days),
        }

        for attempt in range(1, self.max_id_attempts + 1):
            values["appointment_id"] = generate_appointment_id()
            try:
                await self.repository.create(values)
                break
            except DuplicateAppointment:
                logger.warning(
                    "appointment_id_collision",
                    appointment_id=values["appointment_id"],
                    attempt=attempt,
                )
                if attempt == self.max_id_attempts:
                    raise

        appointment_id = values["appointment_id"]
        logger.info(
            "appointment_created",
            appointment_id=appointment_id,
            insured_id=data.insured_id,
            country=country.value,
        )

        event = ScheduleRequested(
            appointment_id=appointment_id,
            insured_id=data.insured_id,
            schedule_id=data.schedule_id,
            country_iso=country.value,
            schedule=data.schedule,
            created_at=now,
        )
        try:
            await self.publisher.publish_schedule_requested(event)
        except Exception as e:
            # Record stays pending until the sweep republishes it
            logger.error(
                "schedule_request_publish_failed",
                appointment_id=appointment_id,
                country=country.value,
                error=str(e),
            )

        return AppointmentAccepted(
            appointment_id=appointment_id,
            status=AppointmentStatus.PENDING,
            message=ACCEPTED_MESSAGE,
            estimated_processing_time=ESTIMATED_PROCESSING_TIME,
        )

    async def list_appointments(
        self,
        insured_id: str,
        filters: AppointmentFilters,
    ) -> AppointmentListResponse:
        """
        List the appointments of an insured person.

        Args:
            insured_id: Owner of the appointments
            filters: Optional status filter and limit

        Returns:
            Appointments, newest first
        """
        rows = await self.repository.list_by_insured(
            insured_id,
            status=filters.status,
            limit=filters.limit,
        )
        items = [AppointmentResponse.model_validate(row) for row in rows]

        logger.info("appointments_retrieved", insured_id=insured_id, count=len(items))
        return AppointmentListResponse(appointments=items, total_count=len(items))

    async def republish_stale_pending(
        self,
        older_than_minutes: int | None = None,
        limit: int = 100,
    ) -> int:
        """
        Republish ScheduleRequested for appointments stuck in pending.

        Args:
            older_than_minutes: Minimum age of a pending record
            limit: Maximum number of records handled

        Returns:
            Number of events republished
        """
        age = settings.pending_sweep_age_minutes if older_than_minutes is None else older_than_minutes
        cutoff = datetime.now(UTC) - timedelta(minutes=age)
        rows = await self.repository.list_stale_pending(cutoff, limit=limit)

        republished = 0
        for row in rows:
            event = ScheduleRequested.model_validate(
                {
                    "appointmentId": row["appointment_id"],
                    "insuredId": row["insured_id"],
                    "scheduleId": row["schedule_id"],
                    "countryISO": row["country_iso"],
                    "schedule": row["schedule"],
                    "createdAt": row["created_at"],
                }
            )
            try:
                await self.publisher.publish_schedule_requested(event)
                republished += 1
            except Exception as e:
                logger.error(
                    "schedule_request_republish_failed",
                    appointment_id=row["appointment_id"],
                    error=str(e),
                )

        logger.info("stale_pending_republished", found=len(rows), republished=republished)
        return republished
