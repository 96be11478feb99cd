"""Appointment lifecycle rules shared by the services."""

import secrets
import time

from medbook.core.exceptions import UnsupportedCountry
from medbook.schemas.appointments import AppointmentStatus, CountryISO

TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.FAILED,
        AppointmentStatus.CANCELLED,
    }
)

# Forward edges of the status state machine
ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {
            AppointmentStatus.PROCESSING,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.FAILED,
            AppointmentStatus.CANCELLED,
        }
    ),
    AppointmentStatus.PROCESSING: frozenset(
        {
            AppointmentStatus.COMPLETED,
            AppointmentStatus.FAILED,
            AppointmentStatus.CANCELLED,
        }
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.FAILED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


def is_terminal(status: AppointmentStatus) -> bool:
    """Check if no further transitions are possible from a status."""
    return status in TERMINAL_STATUSES


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """
    Check whether a status update may be applied.

    Re-applying the current status is always allowed so that replayed
    events overwrite the same terminal fields.

    Args:
        current: Stored status
        target: Requested status

    Returns:
        True if the update keeps the status monotonic
    """
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS[current]


def ensure_supported_country(country_iso: object) -> CountryISO:
    """
    Resolve a country code to a served country.

    Raises:
        UnsupportedCountry: If the code is not one of the served countries
    """
    if isinstance(country_iso, CountryISO):
        return country_iso
    try:
        return CountryISO(str(country_iso).strip().upper())
    except ValueError:
        raise UnsupportedCountry(country_iso) from None


def generate_appointment_id() -> str:
    """
    Generate an appointment ID from a millisecond timestamp and a random suffix.

    Uniqueness is enforced by the conditional create in the appointment store.
    """
    return f"APT-{int(time.time() * 1000)}-{secrets.token_hex(6)}"
