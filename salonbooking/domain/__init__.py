"""
Domain layer - Pure business logic without external dependencies.
"""

from .booking import (
    Appointment,
    AppointmentStatus,
    Notification,
    NotificationPayload,
    NotificationStatus,
    NotificationType,
)
from .conflict_detector import ConflictDetector
from .models import BookableSlot, DaySchedule, TimeRange, WorkingHours
from .slot_calculator import SlotCalculator

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "BookableSlot",
    "ConflictDetector",
    "DaySchedule",
    "Notification",
    "NotificationPayload",
    "NotificationStatus",
    "NotificationType",
    "SlotCalculator",
    "TimeRange",
    "WorkingHours",
]
