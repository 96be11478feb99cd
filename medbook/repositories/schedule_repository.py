"""Schedule store access for one country."""

from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine

from medbook.core.exceptions import BookingFailed, ScheduleUnavailable
from medbook.models.schedules import (
    doctors,
    medical_centers,
    medical_schedules,
    processed_appointments,
    schedule_bookings,
    specialities,
)
from medbook.repositories.appointment_repository import store_errors
from medbook.schemas.appointments import AppointmentStatus, MedicalSchedule

logger = structlog.get_logger(__name__)


class ScheduleDetails(BaseModel):
    """Slot joined with its center, speciality and doctor."""

    schedule_id: int
    appointment_date: datetime
    center_id: int
    center_name: str
    center_address: str | None = None
    speciality_id: int
    speciality_name: str
    medic_id: int
    medic_first_name: str
    medic_last_name: str

    def to_snapshot(self) -> MedicalSchedule:
        """Build the schedule snapshot stored on the appointment."""
        return MedicalSchedule(
            schedule_id=self.schedule_id,
            center_id=self.center_id,
            speciality_id=self.speciality_id,
            medic_id=self.medic_id,
            date=self.appointment_date,
            center_name=self.center_name,
            speciality_name=self.speciality_name,
            medic_name=f"{self.medic_first_name} {self.medic_last_name}",
        )


class ScheduleNotFound(BaseModel):
    """Slot missing, or one of its join targets missing."""

    schedule_id: int
    country_iso: str


ScheduleLookup = ScheduleDetails | ScheduleNotFound


class ScheduleRepository:
    """Availability checks and reservations against a country's schedule store."""

    def __init__(self, engine: AsyncEngine, country_iso: str):
        """Initialize repository with the country engine."""
        self.engine = engine
        self.country_iso = country_iso

    @property
    def store_name(self) -> str:
        """Name used in logs and errors."""
        return f"schedule_store_{self.country_iso.lower()}"

    async def is_available(self, schedule_id: int) -> bool:
        """
        Check that a slot exists, is flagged available and has no booking.

        Args:
            schedule_id: Slot ID

        Returns:
            True if the slot can be booked
        """
        slot_stmt = select(medical_schedules.c.id).where(
            and_(
                medical_schedules.c.id == schedule_id,
                medical_schedules.c.country_iso == self.country_iso,
                medical_schedules.c.is_available == True,  # noqa: E712
            )
        )
        booking_stmt = (
            select(func.count())
            .select_from(schedule_bookings)
            .where(
                and_(
                    schedule_bookings.c.schedule_id == schedule_id,
                    schedule_bookings.c.country_iso == self.country_iso,
                )
            )
        )

        with store_errors(self.store_name):
            async with self.engine.connect() as conn:
                slot = (await conn.execute(slot_stmt)).first()
                if slot is None:
                    return False
                booking_count = (await conn.execute(booking_stmt)).scalar() or 0

        return booking_count == 0

    async def find_booking(self, schedule_id: int) -> dict[str, Any] | None:
        """Get the booking row holding a slot, if any."""
        stmt = select(schedule_bookings).where(
            and_(
                schedule_bookings.c.schedule_id == schedule_id,
                schedule_bookings.c.country_iso == self.country_iso,
            )
        )
        with store_errors(self.store_name):
            async with self.engine.connect() as conn:
                row = (await conn.execute(stmt)).first()
        return dict(row._mapping) if row else None

    async def get_details(self, schedule_id: int) -> ScheduleLookup:
        """
        Resolve a slot to its center, speciality and doctor.

        Args:
            schedule_id: Slot ID

        Returns:
            Slot details, or ScheduleNotFound if any join target is missing
        """
        stmt = (
            select(
                medical_schedules.c.id.label("schedule_id"),
                medical_schedules.c.appointment_date,
                medical_centers.c.id.label("center_id"),
                medical_centers.c.name.label("center_name"),
                medical_centers.c.address.label("center_address"),
                specialities.c.id.label("speciality_id"),
                specialities.c.name.label("speciality_name"),
                doctors.c.id.label("medic_id"),
                doctors.c.first_name.label("medic_first_name"),
                doctors.c.last_name.label("medic_last_name"),
            )
            .select_from(
                medical_schedules.join(
                    medical_centers, medical_schedules.c.center_id == medical_centers.c.id
                )
                .join(specialities, medical_schedules.c.speciality_id == specialities.c.id)
                .join(doctors, medical_schedules.c.medic_id == doctors.c.id)
            )
            .where(
                and_(
                    medical_schedules.c.id == schedule_id,
                    medical_schedules.c.country_iso == self.country_iso,
                )
            )
        )

        with store_errors(self.store_name):
            async with self.engine.connect() as conn:
                row = (await conn.execute(stmt)).first()

        if row is None:
            return ScheduleNotFound(schedule_id=schedule_id, country_iso=self.country_iso)
        return ScheduleDetails.model_validate(dict(row._mapping))

    async def reserve(
        self,
        schedule_id: int,
        appointment_id: str,
        insured_id: str,
        details: ScheduleDetails,
        created_at: datetime | None = None,
    ) -> datetime:
        """
        Book a slot for an appointment in a single transaction.

        The availability flag is flipped only if it is still set, then the
        booking row and the processed appointment copy are inserted. Either
        every write commits or none does.

        Args:
            schedule_id: Slot ID
            appointment_id: Appointment taking the slot
            insured_id: Owner of the appointment
            details: Resolved slot details
            created_at: Creation time of the appointment

        Returns:
            Commit timestamp of the reservation

        Raises:
            ScheduleUnavailable: If the slot was taken before the transaction locked it
            BookingFailed: If any write failed and the transaction rolled back
            StoreUnavailable: If the store cannot be reached
        """
        booked_at = datetime.now(UTC)

        with store_errors(self.store_name):
            try:
                async with self.engine.begin() as conn:
                    flagged = await conn.execute(
                        update(medical_schedules)
                        .where(
                            and_(
                                medical_schedules.c.id == schedule_id,
                                medical_schedules.c.country_iso == self.country_iso,
                                medical_schedules.c.is_available == True,  # noqa: E712
                            )
                        )
                        .values(is_available=False, updated_at=booked_at)
                    )
                    if flagged.rowcount != 1:
                        raise ScheduleUnavailable(schedule_id, self.country_iso)

                    await conn.execute(
                        insert(schedule_bookings).values(
                            schedule_id=schedule_id,
                            appointment_id=appointment_id,
                            country_iso=self.country_iso,
                            booked_at=booked_at,
                        )
                    )
                    await conn.execute(
                        insert(processed_appointments).values(
                            appointment_id=appointment_id,
                            insured_id=insured_id,
                            schedule_id=schedule_id,
                            country_iso=self.country_iso,
                            center_id=details.center_id,
                            speciality_id=details.speciality_id,
                            medic_id=details.medic_id,
                            appointment_date=details.appointment_date,
                            status=AppointmentStatus.COMPLETED.value,
                            created_at=created_at,
                            processed_at=booked_at,
                        )
                    )
            except IntegrityError as e:
                logger.warning(
                    "booking_constraint_violated",
                    schedule_id=schedule_id,
                    appointment_id=appointment_id,
                    country=self.country_iso,
                )
                raise BookingFailed(schedule_id, self.country_iso, "slot already booked") from e
            except (OperationalError, InterfaceError):
                raise
            except DBAPIError as e:
                raise BookingFailed(schedule_id, self.country_iso, str(e.orig)) from e

        logger.info(
            "schedule_booked",
            schedule_id=schedule_id,
            appointment_id=appointment_id,
            country=self.country_iso,
        )
        return booked_at
