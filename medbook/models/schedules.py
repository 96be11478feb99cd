"""Schedule store tables using SQLAlchemy Core.

Every country runs its own database with this same schema.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    text,
)

metadata = MetaData()

medical_centers = Table(
    "medical_centers",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False),
    Column("address", Text),
    Column("city", String(100)),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
)

specialities = Table(
    "specialities",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(200), nullable=False),
    Column("description", Text),
)

doctors = Table(
    "doctors",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("license_number", String(100), unique=True),
)

medical_schedules = Table(
    "medical_schedules",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("country_iso", String(2), nullable=False),
    Column("center_id", Integer, ForeignKey("medical_centers.id"), nullable=True),
    Column("speciality_id", Integer, ForeignKey("specialities.id"), nullable=True),
    Column("medic_id", Integer, ForeignKey("doctors.id"), nullable=True),
    Column("appointment_date", DateTime(timezone=True), nullable=False),
    Column("is_available", Boolean, nullable=False, server_default=text("true")),
    Column("updated_at", DateTime(timezone=True), nullable=True),
)

# One row per booked slot; the unique constraint backs up the reservation transaction
schedule_bookings = Table(
    "schedule_bookings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("schedule_id", Integer, ForeignKey("medical_schedules.id"), nullable=False),
    Column("appointment_id", String(64), nullable=False),
    Column("country_iso", String(2), nullable=False),
    Column("booked_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("schedule_id", name="schedule_bookings_schedule_id_key"),
    UniqueConstraint("appointment_id", name="schedule_bookings_appointment_id_key"),
)

processed_appointments = Table(
    "processed_appointments",
    metadata,
    Column("appointment_id", String(64), primary_key=True),
    Column("insured_id", String(5), nullable=False),
    Column("schedule_id", Integer, nullable=False),
    Column("country_iso", String(2), nullable=False),
    Column("center_id", Integer, nullable=False),
    Column("speciality_id", Integer, nullable=False),
    Column("medic_id", Integer, nullable=False),
    Column("appointment_date", DateTime(timezone=True), nullable=False),
    Column("status", String(20), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=True),
    Column("processed_at", DateTime(timezone=True), nullable=False),
)
