"""Database models."""

from medbook.models.appointments import appointments
from medbook.models.schedules import (
    doctors,
    medical_centers,
    medical_schedules,
    processed_appointments,
    schedule_bookings,
    specialities,
)

__all__ = [
    "appointments",
    "doctors",
    "medical_centers",
    "medical_schedules",
    "processed_appointments",
    "schedule_bookings",
    "specialities",
]
