"""Appointment schemas for request/response validation."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Values from the published read contract that differ from the stored vocabulary
LEGACY_STATUS_ALIASES: dict[str, AppointmentStatus] = {
    "confirmed": AppointmentStatus.COMPLETED,
}


def normalize_status(value: str | AppointmentStatus) -> AppointmentStatus:
    """
    Map a status string onto the canonical vocabulary.

    Args:
        value: Canonical or legacy status value

    Returns:
        Canonical status

    Raises:
        ValueError: If the value is not a known status
    """
    if isinstance(value, AppointmentStatus):
        return value
    lowered = value.strip().lower()
    if lowered in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[lowered]
    return AppointmentStatus(lowered)


class CountryISO(str, Enum):
    """Countries with their own schedule store."""

    PE = "PE"
    CL = "CL"


class CamelModel(BaseModel):
    """Base model exchanging camelCase field names on the wire."""

    model_config = ConfigDict(populate_by_name=True)


class MedicalSchedule(CamelModel):
    """Snapshot of the slot an appointment refers to."""

    schedule_id: int | None = Field(None, alias="scheduleId")
    center_id: int = Field(..., ge=0, alias="centerId")
    speciality_id: int = Field(..., ge=0, alias="specialityId")
    medic_id: int = Field(..., ge=0, alias="medicId")
    date: datetime
    center_name: str | None = Field(None, alias="centerName")
    speciality_name: str | None = Field(None, alias="specialityName")
    medic_name: str | None = Field(None, alias="medicName")


class AppointmentCreate(CamelModel):
    """Schema for submitting a new appointment."""

    insured_id: str = Field(..., pattern=r"^\d{5}$", alias="insuredId")
    schedule_id: int = Field(..., ge=1, alias="scheduleId")
    country_iso: str = Field(..., alias="countryISO")
    schedule: MedicalSchedule | None = None

    @field_validator("country_iso")
    @classmethod
    def normalize_country(cls, v: str) -> str:
        """Strip and upper-case the country code; membership is checked by the service."""
        return v.strip().upper()


class AppointmentAccepted(CamelModel):
    """Response returned once an appointment has been queued for processing."""

    appointment_id: str = Field(..., alias="appointmentId")
    status: AppointmentStatus
    message: str
    estimated_processing_time: str | None = Field(None, alias="estimatedProcessingTime")


class AppointmentResponse(CamelModel):
    """Schema for appointment response."""

    appointment_id: str = Field(..., alias="appointmentId")
    insured_id: str = Field(..., alias="insuredId")
    schedule_id: int = Field(..., alias="scheduleId")
    country_iso: CountryISO = Field(..., alias="countryISO")
    status: AppointmentStatus
    schedule: MedicalSchedule | None = None
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")
    processed_at: datetime | None = Field(None, alias="processedAt")
    error_details: str | None = Field(None, alias="errorDetails")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class AppointmentListResponse(CamelModel):
    """Schema for the appointments of one insured person."""

    appointments: list[AppointmentResponse]
    total_count: int = Field(..., alias="totalCount")


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    limit: int | None = Field(default=None, ge=1, le=100)

    @field_validator("status", mode="before")
    @classmethod
    def map_legacy_status(cls, v: object) -> object:
        """Accept legacy status values on input."""
        if isinstance(v, str):
            return normalize_status(v)
        return v
