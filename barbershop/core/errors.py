"""Failure kinds raised by the booking engine.

Routes translate these into HTTP responses; nothing below the routes layer
knows about status codes.
"""


class BookingError(Exception):
    """Base class for every failure the booking engine reports."""


class ValidationError(BookingError):
    """Malformed or out-of-range input."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(BookingError):
    """A referenced barber, service, appointment or record does not exist."""


class ConflictError(BookingError):
    """The requested interval overlaps a confirmed appointment for the barber."""


class UpstreamUnavailableError(BookingError):
    """The persistence layer could not be reached."""
