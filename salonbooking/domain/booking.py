"""
Domain types for appointments, notifications and the catalog entries they reference.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

import pendulum
from pendulum import DateTime

from .models import TimeRange, WorkingHours


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "AppointmentStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]


TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


class NotificationType(str, Enum):
    CONFIRMATION = "CONFIRMATION"
    REMINDER = "REMINDER"
    CANCELLATION = "CANCELLATION"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


@dataclass
class Appointment:
    id: str
    salon_id: str
    client_id: str
    professional_id: str
    service_id: str
    start_time: DateTime
    end_time: DateTime
    status: AppointmentStatus
    price: Decimal
    notes: Optional[str] = None
    created_at: Optional[DateTime] = None
    updated_at: Optional[DateTime] = None

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start_time, end=self.end_time)

    @property
    def is_active(self) -> bool:
        """Cancelled appointments no longer hold their interval."""
        return self.status != AppointmentStatus.CANCELLED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "salonId": self.salon_id,
            "clientId": self.client_id,
            "professionalId": self.professional_id,
            "serviceId": self.service_id,
            "startTime": self.start_time.to_iso8601_string(),
            "endTime": self.end_time.to_iso8601_string(),
            "status": self.status.value,
            "price": str(self.price),
            "notes": self.notes,
        }


@dataclass(frozen=True)
class NotificationPayload:
    """
    Names and start time captured when a notification is scheduled.

    Later renames of the client, professional, service or salon do not
    change messages that were already scheduled.
    """
    appointment_id: str
    start_time: str
    client_name: str
    professional_name: str
    service_name: str
    salon_name: str
    client_phone: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "appointmentId": self.appointment_id,
            "startTime": self.start_time,
            "clientName": self.client_name,
            "clientPhone": self.client_phone,
            "professionalName": self.professional_name,
            "serviceName": self.service_name,
            "salonName": self.salon_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationPayload":
        return cls(
            appointment_id=data["appointmentId"],
            start_time=data["startTime"],
            client_name=data["clientName"],
            client_phone=data.get("clientPhone"),
            professional_name=data["professionalName"],
            service_name=data["serviceName"],
            salon_name=data["salonName"],
        )

    @property
    def start(self) -> DateTime:
        return pendulum.parse(self.start_time)


@dataclass
class Notification:
    id: str
    salon_id: str
    appointment_id: str
    type: NotificationType
    status: NotificationStatus
    payload: NotificationPayload
    scheduled_for: Optional[DateTime] = None
    sent_at: Optional[DateTime] = None
    last_error: Optional[str] = None

    def is_due(self, now: DateTime) -> bool:
        if self.status != NotificationStatus.PENDING:
            return False
        return self.scheduled_for is None or self.scheduled_for <= now


@dataclass(frozen=True)
class Salon:
    id: str
    name: str
    business_hours: WorkingHours = field(default_factory=WorkingHours, compare=False)
    appointment_interval: Optional[int] = None


@dataclass(frozen=True)
class Client:
    id: str
    salon_id: str
    name: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class Professional:
    id: str
    salon_id: str
    name: str
    active: bool = True
    service_ids: FrozenSet[str] = frozenset()
    working_hours: Optional[WorkingHours] = field(default=None, compare=False)

    def is_qualified_for(self, service_id: str) -> bool:
        return service_id in self.service_ids


@dataclass(frozen=True)
class Service:
    id: str
    salon_id: str
    name: str
    duration_minutes: int
    price: Decimal
    active: bool = True
