"""
Service layer that orchestrates the store and the domain logic.
"""

from .availability import Availability, AvailabilityService, CatalogProtocol
from .booking import AppointmentInput, AppointmentPatch, BookingResult, BookingService
from .dispatch import DispatchReport, NotificationDispatcher
from .notifications import NotificationScheduler, NotificationSchedulerProtocol

__all__ = [
    "AppointmentInput",
    "AppointmentPatch",
    "Availability",
    "AvailabilityService",
    "BookingResult",
    "BookingService",
    "CatalogProtocol",
    "DispatchReport",
    "NotificationDispatcher",
    "NotificationScheduler",
    "NotificationSchedulerProtocol",
]
