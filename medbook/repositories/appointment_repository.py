"""Appointment store access."""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from medbook.core.exceptions import DuplicateAppointment, StoreUnavailable
from medbook.core.lifecycle import can_transition
from medbook.models.appointments import appointments
from medbook.schemas.appointments import AppointmentStatus

logger = structlog.get_logger(__name__)


class StatusUpdateOutcome(str, Enum):
    """Result of a conditional status update."""

    APPLIED = "applied"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"


@contextmanager
def store_errors(store: str) -> Iterator[None]:
    """Translate connectivity failures into StoreUnavailable."""
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as e:
        logger.error("store_unavailable", store=store, error=str(e))
        raise StoreUnavailable(f"{store} unavailable: {e}") from e


class AppointmentRepository:
    """Repository for the authoritative appointment records."""

    def __init__(self, db: AsyncSession):
        """Initialize repository with database session."""
        self.db = db

    async def create(self, values: dict[str, Any]) -> None:
        """
        Insert a new appointment, failing if the key is already taken.

        Args:
            values: Column values for the new row

        Raises:
            DuplicateAppointment: If the appointment ID already exists
            StoreUnavailable: If the store cannot be reached
        """
        with store_errors("appointment_store"):
            try:
                await self.db.execute(insert(appointments).values(**values))
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                raise DuplicateAppointment(values["appointment_id"]) from e

    async def get(self, insured_id: str, appointment_id: str) -> dict[str, Any] | None:
        """Get one appointment by its composite key."""
        stmt = select(appointments).where(
            and_(
                appointments.c.insured_id == insured_id,
                appointments.c.appointment_id == appointment_id,
            )
        )
        with store_errors("appointment_store"):
            result = await self.db.execute(stmt)
        row = result.fetchone()
        return dict(row._mapping) if row else None

    async def list_by_insured(
        self,
        insured_id: str,
        status: AppointmentStatus | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        List appointments of an insured person, newest first.

        Args:
            insured_id: Owner of the appointments
            status: Optional status filter
            limit: Optional maximum number of rows

        Returns:
            Appointment rows as dicts
        """
        conditions = [appointments.c.insured_id == insured_id]
        if status:
            conditions.append(appointments.c.status == status.value)

        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.created_at.desc(), appointments.c.appointment_id.desc())
        )
        if limit:
            stmt = stmt.limit(limit)

        with store_errors("appointment_store"):
            result = await self.db.execute(stmt)
        return [dict(row._mapping) for row in result.fetchall()]

    async def update_status(
        self,
        insured_id: str,
        appointment_id: str,
        status: AppointmentStatus,
        **fields: Any,
    ) -> StatusUpdateOutcome:
        """
        Overwrite the status and the given fields of one appointment.

        The update only matches rows whose current status may move to the
        target status, so terminal records are never reopened. Re-applying
        the same terminal status overwrites the same fields again.

        Args:
            insured_id: Owner of the appointment
            appointment_id: Appointment ID
            status: Target status
            **fields: Extra columns to overwrite (processed_at, error_details, ...)

        Returns:
            Whether the update was applied, rejected by the state machine or found no record
        """
        sources = [s.value for s in AppointmentStatus if can_transition(s, status)]
        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.insured_id == insured_id,
                    appointments.c.appointment_id == appointment_id,
                    appointments.c.status.in_(sources),
                )
            )
            .values(status=status.value, **fields)
        )

        with store_errors("appointment_store"):
            result = await self.db.execute(stmt)
            await self.db.commit()

        if result.rowcount:
            return StatusUpdateOutcome.APPLIED

        existing = await self.get(insured_id, appointment_id)
        if existing is None:
            return StatusUpdateOutcome.NOT_FOUND

        logger.warning(
            "status_transition_rejected",
            appointment_id=appointment_id,
            current_status=existing["status"],
            target_status=status.value,
        )
        return StatusUpdateOutcome.REJECTED

    async def list_stale_pending(self, older_than: datetime, limit: int = 100) -> list[dict[str, Any]]:
        """List appointments still pending since before a cutoff, oldest first."""
        stmt = (
            select(appointments)
            .where(
                and_(
                    appointments.c.status == AppointmentStatus.PENDING.value,
                    appointments.c.created_at < older_than,
                )
            )
            .order_by(appointments.c.created_at.asc())
            .limit(limit)
        )
        with store_errors("appointment_store"):
            result = await self.db.execute(stmt)
        return [dict(row._mapping) for row in result.fetchall()]

    async def purge_expired(self, now: datetime) -> int:
        """
        Delete appointments past their retention expiry.

        Returns:
            Number of rows deleted
        """
        stmt = delete(appointments).where(appointments.c.expires_at < now)
        with store_errors("appointment_store"):
            result = await self.db.execute(stmt)
            await self.db.commit()
        deleted = result.rowcount or 0
        logger.info("expired_appointments_purged", count=deleted)
        return deleted
