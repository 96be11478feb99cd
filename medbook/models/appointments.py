"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
)

# Metadata for the appointment store
metadata = MetaData()

# Appointments table, addressed by (insured_id, appointment_id)
appointments = Table(
    "appointments",
    metadata,
    Column("insured_id", String(5), nullable=False),
    Column("appointment_id", String(64), nullable=False, unique=True),
    # Slot reference in the country schedule store
    Column("schedule_id", Integer, nullable=False),
    Column("country_iso", String(2), nullable=False),
    # Snapshot fields (provisional until processed)
    Column("schedule", JSON, nullable=True),
    # Status management
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("error_details", Text, nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("processed_at", DateTime(timezone=True), nullable=True),
    # Bounded retention
    Column("expires_at", DateTime(timezone=True), nullable=False),
    # Constraints
    PrimaryKeyConstraint("insured_id", "appointment_id", name="appointments_pkey"),
    CheckConstraint(
        "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
        name="appointments_status_check",
    ),
    CheckConstraint("country_iso IN ('PE', 'CL')", name="appointments_country_check"),
)

Index("idx_appointments_status_created", appointments.c.status, appointments.c.created_at)
Index("idx_appointments_expires_at", appointments.c.expires_at)
