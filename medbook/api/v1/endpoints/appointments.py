"""Appointment endpoints."""

from fastapi import APIRouter, Path, Query, status
from pydantic import ValidationError

from medbook.core.exceptions import ValidationException
from medbook.dependencies import AppointmentServiceDep
from medbook.schemas.appointments import (
    AppointmentAccepted,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
)

router = APIRouter()


@router.post(
    "",
    response_model=AppointmentAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Appointments"],
    summary="Submit appointment request",
)
async def create_appointment(
    data: AppointmentCreate,
    service: AppointmentServiceDep,
) -> AppointmentAccepted:
    """
    Accept an appointment request for asynchronous scheduling.

    The appointment is stored as pending and routed to its country's
    reservation worker. Poll the read endpoint for the final status.

    Args:
        data: Appointment request
        service: Appointment service

    Returns:
        Appointment ID with status pending
    """
    return await service.submit(data)


@router.get(
    "/{insured_id}",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments of an insured person",
)
async def list_appointments(
    service: AppointmentServiceDep,
    insured_id: str = Path(..., pattern=r"^\d{5}$"),
    status_filter: str | None = Query(None, alias="status"),
    limit: int | None = Query(None, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List the appointments of an insured person, newest first.

    Args:
        service: Appointment service
        insured_id: Five digit insured ID
        status_filter: Filter by status (``confirmed`` is read as ``completed``)
        limit: Maximum number of appointments

    Returns:
        Appointments and their count
    """
    try:
        filters = AppointmentFilters(status=status_filter, limit=limit)
    except ValidationError as e:
        raise ValidationException(f"Invalid status filter: {status_filter}") from e

    return await service.list_appointments(insured_id, filters)
