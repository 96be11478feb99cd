"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    retryable = False

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


# Appointment lifecycle errors


class UnsupportedCountry(BadRequestException):
    """Country code is not served, or an event reached the wrong country worker."""

    def __init__(self, country_iso: object, message: str | None = None):
        """Initialize with the offending country code."""
        self.country_iso = country_iso
        super().__init__(message or f"Unsupported country: {country_iso}")


class DuplicateAppointment(ConflictException):
    """An appointment with the same key already exists."""

    def __init__(self, appointment_id: str):
        """Initialize with the colliding appointment ID."""
        self.appointment_id = appointment_id
        super().__init__(f"Appointment already exists: {appointment_id}")


class ScheduleUnavailable(ConflictException):
    """Schedule slot does not exist, is flagged unavailable or is already booked."""

    def __init__(self, schedule_id: int, country_iso: str):
        """Initialize with the slot reference."""
        self.schedule_id = schedule_id
        self.country_iso = country_iso
        super().__init__(f"Schedule {schedule_id} is not available in {country_iso}")


class ScheduleDetailsNotFound(NotFoundException):
    """Slot details could not be joined to center, speciality and doctor."""

    def __init__(self, schedule_id: int, country_iso: str):
        """Initialize with the slot reference."""
        self.schedule_id = schedule_id
        self.country_iso = country_iso
        super().__init__(f"No details found for schedule {schedule_id} in {country_iso}")


class BookingFailed(AppException):
    """Reservation transaction was rolled back."""

    def __init__(self, schedule_id: int, country_iso: str, reason: str = ""):
        """Initialize with the slot reference and the underlying reason."""
        self.schedule_id = schedule_id
        self.country_iso = country_iso
        message = f"Failed to book schedule {schedule_id} in {country_iso}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, status_code=500)


class MalformedEvent(ValidationException):
    """Lifecycle event is missing required fields or cannot be decoded."""

    def __init__(self, message: str = "Malformed event"):
        """Initialize with 422 status code."""
        super().__init__(message)


class StoreUnavailable(AppException):
    """A store or channel could not be reached."""

    retryable = True

    def __init__(self, message: str = "Store unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)
