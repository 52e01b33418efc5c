"""
Domain-specific exception hierarchy for the booking core.

Each error carries the HTTP status the web layer should answer with.
"""


class BookingError(Exception):
    """Base class for all application-level errors."""

    http_status = 500


class NotFoundError(BookingError):
    """Raised when a referenced salon, client, professional, service or appointment is missing."""

    http_status = 404


class ConflictError(BookingError):
    """Raised when a booking interval overlaps an existing non-cancelled appointment."""

    http_status = 400

    def __init__(self, message: str, conflicting_ids: tuple = ()):
        super().__init__(message)
        self.conflicting_ids = tuple(conflicting_ids)


class ValidationError(BookingError):
    """Raised for malformed input, e.g. an interval whose end is not after its start."""

    http_status = 400


class InvalidTransitionError(ValidationError):
    """Raised when an appointment status change is not allowed."""


class InfrastructureError(BookingError):
    """Raised when storage or a transaction fails."""

    http_status = 500


class DeliveryError(InfrastructureError):
    """Raised when the message relay cannot be reached or rejects a notification."""
